import unittest

from fake_apps import FakeNotebookApp
from fake_dom import el, fast_timings

from learnbridge.constants import ACTION_CREATE_FLASHCARDS, ACTION_EXPORT_SOURCE, ACTION_LIST_NOTEBOOKS
from learnbridge.web_notebook_scripts import (
    export_source_script,
    flashcards_script,
    list_notebooks_script,
    notebook_scripts,
    pick_by_name,
)

EXPORT = {
    "bookName": "Book",
    "content": "# Chapter 1\n\nThe first highlight.",
    "sourceName": "Chapter 1",
    "chapterName": "Chapter 1",
}


class PickByNameTests(unittest.TestCase):
    def test_exact_match_beats_earlier_partial_match(self) -> None:
        partial, exact = el("div"), el("div")
        candidates = [(partial, "Deep Work notes"), (exact, "Deep Work")]
        self.assertIs(pick_by_name(candidates, "deep  work"), exact)

    def test_partial_match_in_either_direction(self) -> None:
        item = el("div")
        self.assertIs(pick_by_name([(item, "Deep Work: Rules for Focus")], "Deep Work"), item)
        self.assertIs(pick_by_name([(item, "Deep Work")], "Deep Work (2016)"), item)

    def test_empty_name_matches_nothing(self) -> None:
        self.assertIsNone(pick_by_name([(el("div"), "Anything")], "  "))


class ExportSourceTests(unittest.IsolatedAsyncioTestCase):
    async def test_existing_notebook_gets_named_source(self) -> None:
        app = FakeNotebookApp({"Book": ["Intro"]})
        response = await export_source_script().run(app.page, EXPORT, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        self.assertEqual(app.sources("Book"), ["Chapter 1", "Intro"])
        self.assertEqual(app.notebooks["Book"][0]["content"], EXPORT["content"])
        self.assertFalse(response.data["created"])
        self.assertFalse(response.data["replaced"])
        self.assertEqual(response.message, "Exported to notebook 'Book' as source 'Chapter 1'")

    async def test_only_the_inserted_source_is_renamed(self) -> None:
        app = FakeNotebookApp({"Book": ["Intro", "Appendix"]})
        response = await export_source_script().run(app.page, EXPORT, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        contents = {source["title"]: source["content"] for source in app.notebooks["Book"]}
        self.assertEqual(contents, {"Chapter 1": EXPORT["content"], "Intro": "", "Appendix": ""})

    async def test_second_export_replaces_the_first(self) -> None:
        app = FakeNotebookApp({"Book": ["Intro"]})
        await export_source_script().run(app.page, EXPORT, timings=fast_timings())
        app.go_home()
        updated = dict(EXPORT, content="# Chapter 1\n\nRevised.")
        response = await export_source_script().run(app.page, updated, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        self.assertTrue(response.data["replaced"])
        self.assertEqual(app.sources("Book"), ["Chapter 1", "Intro"])
        self.assertEqual(app.notebooks["Book"][0]["content"], "# Chapter 1\n\nRevised.")
        self.assertIn("(replaced previous copy)", response.message)

    async def test_missing_notebook_is_created_and_named(self) -> None:
        app = FakeNotebookApp({"Other": ["x"]})
        response = await export_source_script().run(app.page, EXPORT, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        self.assertTrue(response.data["created"])
        self.assertNotIn("Untitled notebook", app.notebooks)
        self.assertEqual(app.sources("Book"), ["Chapter 1"])

    async def test_without_source_name_the_pasted_text_keeps_its_default_title(self) -> None:
        app = FakeNotebookApp({"Book": []})
        payload = {"bookName": "Book", "content": "Some text"}
        response = await export_source_script().run(app.page, payload, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        self.assertEqual(app.sources("Book"), ["Pasted Text"])

    async def test_missing_book_name_fails_the_first_step(self) -> None:
        app = FakeNotebookApp({"Book": []})
        response = await export_source_script().run(app.page, {"content": "x"}, timings=fast_timings())
        self.assertFalse(response.success)
        self.assertEqual(response.data["step"], "open notebook")


class FlashcardsTests(unittest.IsolatedAsyncioTestCase):
    async def test_flashcards_for_selected_source(self) -> None:
        app = FakeNotebookApp({"Book": ["Intro", "Chapter 1", "Chapter 2"]})
        app._open("Book")
        payload = {"bookName": "Book", "sourceName": "Chapter 1", "chapterName": "Chapter 1"}
        script = flashcards_script()
        response = await script.run(app.page, payload, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        self.assertEqual(app.selected, ["Chapter 1"])
        self.assertEqual(app.artifacts[0]["title"], "Chapter 1")
        self.assertTrue(any(note.startswith("wait for generation: generation finished") for note in script.last_run.notes))

    async def test_generation_timeout_still_counts_as_success(self) -> None:
        app = FakeNotebookApp({"Book": ["Chapter 1"]}, generation_ms=None)
        app._open("Book")
        script = flashcards_script()
        timings = fast_timings(generation_max_wait_ms=40)
        response = await script.run(app.page, {"bookName": "Book"}, timings=timings)
        self.assertTrue(response.success, response.error)
        self.assertIn("wait for generation: still generating after 40ms; continuing", script.last_run.notes)

    async def test_opens_notebook_from_the_list_when_needed(self) -> None:
        app = FakeNotebookApp({"Book": ["Chapter 1"]})
        response = await flashcards_script().run(app.page, {"bookName": "Book"}, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        self.assertEqual(app.current, "Book")
        self.assertEqual(len(app.artifacts), 1)

    async def test_falls_back_to_most_recent_source(self) -> None:
        app = FakeNotebookApp({"Book": ["Pasted Text", "Intro"]})
        app._open("Book")
        payload = {"bookName": "Book", "sourceName": "Missing chapter"}
        response = await flashcards_script().run(app.page, payload, timings=fast_timings())
        self.assertTrue(response.success, response.error)
        self.assertEqual(app.selected, ["Pasted Text"])


class ListNotebooksTests(unittest.IsolatedAsyncioTestCase):
    async def test_collects_own_notebook_titles(self) -> None:
        app = FakeNotebookApp({"Book": [], "Deep Work": []})
        response = await list_notebooks_script().run(app.page, {}, timings=fast_timings())
        self.assertTrue(response.success)
        self.assertEqual(response.data, {"notebooks": ["Book", "Deep Work"]})
        self.assertEqual(response.message, "Found 2 notebooks")


class CatalogueTests(unittest.TestCase):
    def test_scripts_are_keyed_by_action(self) -> None:
        self.assertEqual(
            set(notebook_scripts()), {ACTION_EXPORT_SOURCE, ACTION_CREATE_FLASHCARDS, ACTION_LIST_NOTEBOOKS}
        )


if __name__ == "__main__":
    unittest.main()
