"""Notion notes-database client: schema lookup and chunked page creation."""

from __future__ import annotations

import json
import re
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable

from learnbridge.markdown_blocks import chunked

API_BASE = "https://api.notion.com/v1"
API_VERSION = "2022-06-28"
BLOCK_BATCH_SIZE = 100
BATCH_DELAY_SECONDS = 0.5
BOOK_NAME_VARIANTS = ("Book Name", "Book", "Book Title", "BookName")

_ID_RE = re.compile(r"([a-f0-9]{32})$")


class NotesApiError(RuntimeError):
    pass


@dataclass(frozen=True)
class DatabaseSchema:
    database_id: str
    data_source_id: str | None
    title_property: str
    book_property: str | None = None
    book_property_type: str | None = None


def database_id_from_url(url: str) -> str | None:
    bare = str(url or "").split("?")[0].rstrip("/")
    match = _ID_RE.search(bare)
    if not match:
        return None
    raw = match.group(1)
    return f"{raw[:8]}-{raw[8:12]}-{raw[12:16]}-{raw[16:20]}-{raw[20:32]}"


class NotesClient:
    def __init__(self, token: str, *, timeout_seconds: float = 30.0, batch_delay: float = BATCH_DELAY_SECONDS) -> None:
        if not token:
            raise ValueError("notes token is required")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self.batch_delay = batch_delay

    def fetch_schema(self, database_id: str) -> DatabaseSchema:
        database = self._request("GET", f"/databases/{database_id}")
        data_source_id = None
        properties = database.get("properties") or {}
        sources = database.get("data_sources")
        if isinstance(sources, list) and sources:
            data_source_id = str(sources[0].get("id", "")) or None
            if data_source_id:
                try:
                    source = self._request("GET", f"/data_sources/{data_source_id}")
                except NotesApiError:
                    # Older workspaces expose properties on the database only.
                    source = {}
                properties = source.get("properties") or properties
        if not properties:
            raise NotesApiError("Could not find database properties")

        title_property = "Name"
        for name, prop in properties.items():
            if isinstance(prop, dict) and prop.get("type") == "title":
                title_property = name
                break
        book_property = None
        book_type = None
        for name, prop in properties.items():
            if name in BOOK_NAME_VARIANTS and isinstance(prop, dict):
                book_property = name
                book_type = str(prop.get("type", "")) or None
                break
        return DatabaseSchema(
            database_id=database_id,
            data_source_id=data_source_id,
            title_property=title_property,
            book_property=book_property,
            book_property_type=book_type,
        )

    def create_page(
        self,
        schema: DatabaseSchema,
        title: str,
        blocks: list[dict[str, Any]],
        *,
        book_name: str = "",
        progress: Callable[[str], None] | None = None,
    ) -> str:
        parent = (
            {"data_source_id": schema.data_source_id}
            if schema.data_source_id
            else {"database_id": schema.database_id}
        )
        properties: dict[str, Any] = {
            schema.title_property: {"type": "title", "title": [_text(title)]},
        }
        if book_name and schema.book_property and schema.book_property_type in ("rich_text", "title"):
            kind = schema.book_property_type
            properties[schema.book_property] = {"type": kind, kind: [_text(book_name)]}
        payload: dict[str, Any] = {"parent": parent, "properties": properties}
        batches = chunked(blocks, BLOCK_BATCH_SIZE) if blocks else []
        if batches:
            payload["children"] = batches[0]
        if progress:
            progress(f"Creating page {title!r}...")
        created = self._request("POST", "/pages", payload)
        page_id = str(created.get("id", ""))
        if not page_id:
            raise NotesApiError("Page creation returned no id")
        if len(batches) > 1:
            self.append_blocks(page_id, [block for batch in batches[1:] for block in batch], progress=progress)
        return page_id

    def append_blocks(
        self,
        page_id: str,
        blocks: list[dict[str, Any]],
        *,
        progress: Callable[[str], None] | None = None,
    ) -> None:
        batches = chunked(blocks, BLOCK_BATCH_SIZE)
        if progress:
            progress(f"Adding remaining {len(blocks)} blocks in {len(batches)} batches...")
        for idx, batch in enumerate(batches):
            self._request("PATCH", f"/blocks/{page_id}/children", {"children": batch})
            if progress:
                progress(f"Added batch {idx + 1}/{len(batches)} ({len(batch)} blocks)")
            if idx < len(batches) - 1:
                time.sleep(self.batch_delay)

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(
            f"{API_BASE}{path}",
            data=data,
            method=method,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json",
                "Notion-Version": API_VERSION,
            },
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                body = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            reason = exc.read().decode("utf-8", errors="replace")
            raise NotesApiError(f"Notes API error {exc.code} on {method} {path}: {_api_message(reason)}") from exc
        except (urllib.error.URLError, TimeoutError) as exc:
            raise NotesApiError(f"Notes API unreachable ({method} {path}): {exc}") from exc
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError as exc:
            raise NotesApiError(f"Notes API returned invalid JSON ({method} {path})") from exc
        if not isinstance(parsed, dict):
            raise NotesApiError(f"Notes API returned invalid payload ({method} {path})")
        return parsed


def page_url(page_id: str) -> str:
    return f"https://www.notion.so/{page_id.replace('-', '')}"


def _text(content: str) -> dict[str, Any]:
    return {"type": "text", "text": {"content": content}}


def _api_message(body: str) -> str:
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return body[:200]
    if isinstance(parsed, dict) and parsed.get("message"):
        return str(parsed["message"])
    return body[:200]
