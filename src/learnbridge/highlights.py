"""Kindle highlight export parsing and section splitting."""

from __future__ import annotations

import re
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup

_SUBSECTION_RE = re.compile(r"Highlight\([^)]+\) - (.+?) >")
_CHAPTER_RE = re.compile(r"^##\s+(.+)$")
_SECTION_RE = re.compile(r"^###\s+(.+)$")


@dataclass(frozen=True)
class Section:
    heading: str | None
    body: str


@dataclass(frozen=True)
class Sections:
    title: str | None = None
    sections: list[Section] = field(default_factory=list)


def extract_sections(raw_text: Any) -> Sections:
    text = raw_text if isinstance(raw_text, str) else ""
    title: str | None = None
    sections: list[Section] = []
    heading: str | None = None
    body: list[str] = []
    started = False

    def flush() -> None:
        content = "\n".join(body).strip()
        if content:
            sections.append(Section(heading=heading, body=content))

    for line in text.split("\n"):
        section_match = _SECTION_RE.match(line)
        if section_match:
            if started:
                flush()
            heading = section_match.group(1).strip()
            body = []
            started = True
            continue
        chapter_match = _CHAPTER_RE.match(line)
        if chapter_match:
            title = chapter_match.group(1).strip()
            continue
        body.append(line)
        started = True
    if started:
        flush()
    return Sections(title=title, sections=sections)


def join_sections(parsed: Sections) -> str:
    parts: list[str] = []
    if parsed.title:
        parts.append(f"## {parsed.title}")
    for section in parsed.sections:
        if section.heading:
            parts.append(f"### {section.heading}")
        if section.body:
            parts.append(section.body)
    return "\n\n".join(parts).strip()


def extract_chapters(html: str) -> list[str]:
    container = _body_container(html)
    if container is None:
        return []
    chapters: list[str] = []
    for element in container.find_all(recursive=False):
        if "sectionHeading" in (element.get("class") or []):
            name = element.get_text().strip()
            if name:
                chapters.append(name)
    return chapters


def extract_book_title(html: str) -> str | None:
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    node = soup.select_one(".bookTitle")
    if node is None:
        return None
    return node.get_text().strip() or None


def parse_highlights(html: str, chapter: str | None = None) -> str:
    """Render one chapter (or all of them) as ``##``/``###`` markdown."""
    container = _body_container(html)
    if container is None:
        return ""
    children = container.find_all(recursive=False)
    lines: list[str] = []
    current_subsection = ""
    in_chapter = False
    idx = 0
    while idx < len(children):
        element = children[idx]
        classes = element.get("class") or []
        if "sectionHeading" in classes:
            section_title = element.get_text().strip()
            in_chapter = section_title == chapter if chapter else True
            if in_chapter and section_title:
                lines.append(f"\n## {section_title}\n\n")
        elif "noteHeading" in classes and in_chapter:
            note = children[idx + 1] if idx + 1 < len(children) else None
            if note is not None and "noteText" in (note.get("class") or []):
                highlight = note.get_text().strip()
                if highlight:
                    match = _SUBSECTION_RE.search(element.get_text().strip())
                    subsection = match.group(1).strip() if match else ""
                    if subsection and subsection != current_subsection:
                        lines.append(f"### {subsection}\n")
                        current_subsection = subsection
                    lines.append(f"{highlight}\n\n")
                idx += 1
        idx += 1
    return "".join(lines).strip()


def load_kindle_html(location: str) -> str:
    if location.startswith(("http://", "https://", "file://")):
        try:
            with urllib.request.urlopen(location, timeout=30) as resp:
                return resp.read().decode("utf-8", errors="replace")
        except (urllib.error.URLError, TimeoutError) as exc:
            raise SystemExit(f"Could not fetch Kindle export {location}: {exc}") from exc
    path = Path(location).expanduser()
    if not path.exists():
        raise SystemExit(f"Kindle export not found: {path}")
    return path.read_text(encoding="utf-8", errors="replace")


def _body_container(html: str) -> Any:
    if not html:
        return None
    return BeautifulSoup(html, "html.parser").select_one(".bodyContainer")
