import tempfile
import unittest
from pathlib import Path

from learnbridge.highlights import (
    Section,
    Sections,
    extract_book_title,
    extract_chapters,
    extract_sections,
    join_sections,
    load_kindle_html,
    parse_highlights,
)

EXPORT = """
<html><body>
<div class="bookTitle">Deep Work</div>
<div class="bodyContainer">
  <div class="sectionHeading">Introduction</div>
  <div class="noteHeading">Highlight(yellow) - Page 2 &gt; Location 30</div>
  <div class="noteText">Focus is rare.</div>
  <div class="sectionHeading">Chapter 1</div>
  <div class="noteHeading">Highlight(yellow) - Rule One &gt; Page 12</div>
  <div class="noteText">Work deeply.</div>
  <div class="noteHeading">Highlight(blue) - Rule One &gt; Page 13</div>
  <div class="noteText">Schedule it.</div>
  <div class="noteHeading">Note - Page 14</div>
  <div class="noteHeading">Highlight(yellow) - Rule Two &gt; Page 20</div>
  <div class="noteText">  </div>
  <div class="noteHeading">Highlight(pink) - Rule Two &gt; Page 21</div>
  <div class="noteText">Embrace boredom.</div>
</div>
</body></html>
"""


class KindleExportTests(unittest.TestCase):
    def test_chapters_and_title(self) -> None:
        self.assertEqual(extract_chapters(EXPORT), ["Introduction", "Chapter 1"])
        self.assertEqual(extract_book_title(EXPORT), "Deep Work")

    def test_missing_container_yields_nothing(self) -> None:
        self.assertEqual(extract_chapters("<html></html>"), [])
        self.assertEqual(parse_highlights(""), "")
        self.assertIsNone(extract_book_title(""))

    def test_single_chapter_with_subsections(self) -> None:
        text = parse_highlights(EXPORT, "Chapter 1")
        self.assertEqual(
            text,
            "## Chapter 1\n\n### Rule One\nWork deeply.\n\nSchedule it.\n\n### Rule Two\nEmbrace boredom.",
        )

    def test_all_chapters_when_none_selected(self) -> None:
        text = parse_highlights(EXPORT)
        self.assertTrue(text.startswith("## Introduction"))
        self.assertIn("## Chapter 1", text)
        self.assertIn("Focus is rare.", text)

    def test_unknown_chapter_is_empty(self) -> None:
        self.assertEqual(parse_highlights(EXPORT, "Chapter 9"), "")

    def test_load_from_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "export.html"
            path.write_text(EXPORT, encoding="utf-8")
            self.assertEqual(load_kindle_html(str(path)), EXPORT)
            with self.assertRaises(SystemExit):
                load_kindle_html(str(Path(tmp) / "missing.html"))


class SectionTests(unittest.TestCase):
    def test_extract_sections(self) -> None:
        parsed = extract_sections("## Chapter 1\n\nIntro line\n\n### Rule One\nWork deeply.\n\n### Rule Two\nBoredom.")
        self.assertEqual(parsed.title, "Chapter 1")
        self.assertEqual(
            parsed.sections,
            [
                Section(heading=None, body="Intro line"),
                Section(heading="Rule One", body="Work deeply."),
                Section(heading="Rule Two", body="Boredom."),
            ],
        )

    def test_empty_sections_are_dropped(self) -> None:
        parsed = extract_sections("### Empty\n\n### Full\ntext")
        self.assertEqual(parsed.sections, [Section(heading="Full", body="text")])

    def test_non_string_input(self) -> None:
        self.assertEqual(extract_sections(None), Sections())

    def test_join_sections(self) -> None:
        parsed = Sections(title="Chapter 1", sections=[Section(None, "Intro"), Section("Rule One", "Body")])
        self.assertEqual(join_sections(parsed), "## Chapter 1\n\nIntro\n\n### Rule One\n\nBody")


if __name__ == "__main__":
    unittest.main()
