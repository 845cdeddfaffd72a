"""Markdown subset (## / ### headings and paragraphs) to notes-API blocks."""

from __future__ import annotations

from typing import Any


def _rich_text(content: str) -> list[dict[str, Any]]:
    return [{"type": "text", "text": {"content": content}}]


def _block(kind: str, content: str) -> dict[str, Any]:
    return {"object": "block", "type": kind, kind: {"rich_text": _rich_text(content)}}


def markdown_to_blocks(text: Any) -> list[dict[str, Any]]:
    if not isinstance(text, str):
        return []
    blocks: list[dict[str, Any]] = []
    for raw in text.split("\n"):
        line = raw.strip()
        if line.startswith("## "):
            blocks.append(_block("heading_2", line[3:]))
        elif line.startswith("### "):
            blocks.append(_block("heading_3", line[4:]))
        elif line:
            blocks.append(_block("paragraph", line))
    return blocks


def chunked(blocks: list[dict[str, Any]], size: int) -> list[list[dict[str, Any]]]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [blocks[i:i + size] for i in range(0, len(blocks), size)]
