"""Section-by-section highlight rewriting through the Gemini generateContent API."""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Any, Callable

from learnbridge.highlights import Section, Sections, extract_sections, join_sections

API_BASE = "https://generativelanguage.googleapis.com/v1beta"
MODEL = "gemini-2.5-flash"

PROMPT = (
    "I will give you a text that contains a list of highlights I copied from a Kindle book. "
    "Please parse this content in order to make it more readable. The result should be properly "
    "formatted, in complete sentences and paragraphs, and with headings when necessary. Don't make "
    "too many changes, the actual content (information that the text provides) should remain the "
    "same. Respond only with the formatted text. Here is the original text:\n\n"
)

Progress = Callable[[str, int, int], None]


class RewriteError(RuntimeError):
    pass


class RewriteClient:
    def __init__(self, api_key: str, *, model: str = MODEL, timeout_seconds: float = 120.0) -> None:
        if not api_key:
            raise ValueError("rewrite API key is required")
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.failures: list[str] = []

    def rewrite(self, text: str, progress: Progress | None = None) -> str:
        """Rewrite every section; a section that fails keeps its original body."""
        if not isinstance(text, str) or not text.strip():
            raise ValueError("highlights text is required")
        parsed = extract_sections(text)
        sections = parsed.sections or [Section(heading=None, body=text.strip())]
        self.failures = []
        rewritten: list[Section] = []
        for idx, section in enumerate(sections):
            if progress:
                progress(section.heading or "Introduction", idx + 1, len(sections))
            try:
                body = self.rewrite_section(section.body)
            except RewriteError as exc:
                self.failures.append(f"{section.heading or 'Introduction'}: {exc}")
                body = section.body
            rewritten.append(Section(heading=section.heading, body=body or section.body))
        return join_sections(Sections(title=parsed.title, sections=rewritten))

    def rewrite_section(self, body: str) -> str:
        if not body.strip():
            return ""
        request_body = {
            "contents": [{"parts": [{"text": PROMPT + body}]}],
            "generationConfig": {"thinkingConfig": {"thinkingBudget": 0}},
        }
        data = self._post(f"/models/{self.model}:generateContent", request_body)
        return _candidate_text(data)

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        req = urllib.request.Request(
            f"{API_BASE}{path}",
            data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            method="POST",
            headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                body = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            raise RewriteError(f"Rewrite API error {exc.code}: {_error_message(exc)}") from exc
        except (urllib.error.URLError, TimeoutError) as exc:
            raise RewriteError(f"Rewrite API unreachable: {exc}") from exc
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError as exc:
            raise RewriteError("Rewrite API returned invalid JSON") from exc
        if not isinstance(parsed, dict):
            raise RewriteError("Rewrite API returned invalid payload")
        return parsed


def _candidate_text(data: dict[str, Any]) -> str:
    candidates = data.get("candidates")
    if isinstance(candidates, list) and candidates:
        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if isinstance(parts, list):
            return "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict)).strip()
    raise RewriteError("Invalid response format from rewrite API")


def _error_message(exc: urllib.error.HTTPError) -> str:
    raw = exc.read().decode("utf-8", errors="replace")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return raw[:200] or str(exc.reason)
    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if parsed.get("message"):
            return str(parsed["message"])
    return raw[:200]
