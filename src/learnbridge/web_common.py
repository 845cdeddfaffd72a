"""Shared helpers for web automation modules."""

from __future__ import annotations

from urllib.parse import urlparse


def collapse_ws(value: object) -> str:
    return " ".join(str(value or "").split())


def normalize_text(value: object) -> str:
    return collapse_ws(value)


def text_matches(candidate: object, target: object, *, exact: bool) -> bool:
    have = normalize_text(candidate)
    want = normalize_text(target)
    if not have or not want:
        return False
    have_low = have.casefold()
    want_low = want.casefold()
    if exact:
        return have_low == want_low
    # Either side may be truncated or decorated by the target UI.
    return want_low in have_low or have_low in want_low


def is_valid_url(text: str) -> bool:
    try:
        parsed = urlparse(text)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def same_origin(current_url: str, target_url: str) -> bool:
    try:
        current = urlparse(current_url)
        target = urlparse(target_url)
    except ValueError:
        return False
    if not current.scheme or not current.netloc:
        return False
    return current.scheme == target.scheme and _host_key(current.netloc) == _host_key(target.netloc)


def _host_key(netloc: str) -> str:
    low = netloc.lower()
    if low.startswith("localhost"):
        return "127.0.0.1" + low[len("localhost"):]
    return low
