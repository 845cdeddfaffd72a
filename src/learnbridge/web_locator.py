"""Ordered-fallback element locator with polling and a reactive grace phase."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Union

import soupsieve

from learnbridge.constants import (
    DEFAULT_DISAPPEAR_POLL_MS,
    DEFAULT_DISAPPEAR_TIMEOUT_MS,
    DEFAULT_LOCATOR_TIMEOUT_MS,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_REACTIVE_GRACE_MS,
)
from learnbridge.models import WaitOutcome
from learnbridge.web_common import normalize_text, text_matches


@dataclass(frozen=True)
class Structural:
    selector: str

    def __post_init__(self) -> None:
        if not self.selector.strip():
            raise ValueError("Empty selector")
        if len(split_selector_list(self.selector)) > 1:
            raise ValueError(f"Use structural() for selector lists: {self.selector!r}")
        try:
            soupsieve.compile(self.selector)
        except soupsieve.SelectorSyntaxError as exc:
            raise ValueError(f"Invalid selector {self.selector!r}: {exc}") from exc

    def describe(self) -> str:
        return f"css:{self.selector}"


@dataclass(frozen=True)
class Semantic:
    role: str = ""
    label: str = ""
    exact: bool = False

    def describe(self) -> str:
        return f"role:{self.role or '*'} label:{self.label!r}"


@dataclass(frozen=True)
class Content:
    within: Union[Structural, Semantic]
    text: str
    exact: bool = False
    attribute: str = ""

    def describe(self) -> str:
        where = f"@{self.attribute}" if self.attribute else "text"
        mode = "==" if self.exact else "~"
        return f"{self.within.describe()} {where}{mode}{self.text!r}"


Rule = Union[Structural, Semantic, Content]


@dataclass(frozen=True)
class LocatorSpec:
    rules: tuple[Rule, ...]
    name: str = ""

    def __post_init__(self) -> None:
        if not self.rules:
            raise ValueError("LocatorSpec needs at least one rule")

    def describe(self) -> str:
        label = self.name or "target"
        return f"{label} [{' | '.join(rule.describe() for rule in self.rules)}]"


def split_selector_list(text: str) -> list[str]:
    """Split ``a, b`` at top-level commas; commas inside brackets or quotes stay."""
    chunks: list[str] = []
    depth = 0
    quote = ""
    current: list[str] = []
    for ch in str(text or ""):
        if quote:
            current.append(ch)
            if ch == quote:
                quote = ""
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch in ("[", "("):
            depth += 1
        elif ch in ("]", ")"):
            depth -= 1
        elif ch == "," and depth == 0:
            chunks.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    chunks.append("".join(current).strip())
    return [chunk for chunk in chunks if chunk]


def structural(css: str) -> tuple[Structural, ...]:
    selectors = split_selector_list(css)
    if not selectors:
        raise ValueError(f"Empty selector: {css!r}")
    return tuple(Structural(selector) for selector in selectors)


def css(selector: str) -> Structural:
    return Structural(selector.strip())


def spec(*rules: Rule | tuple[Rule, ...], name: str = "") -> LocatorSpec:
    flat: list[Rule] = []
    for item in rules:
        if isinstance(item, tuple):
            flat.extend(item)
        else:
            flat.append(item)
    return LocatorSpec(rules=tuple(flat), name=name)


def by_text(selector: str, text: str, *, exact: bool = False) -> tuple[Content, ...]:
    return tuple(Content(within=rule, text=text, exact=exact) for rule in structural(selector))


def by_attribute(selector: str, attribute: str, text: str, *, exact: bool = False) -> tuple[Content, ...]:
    return tuple(
        Content(within=rule, text=text, exact=exact, attribute=attribute) for rule in structural(selector)
    )


async def find_now(page: Any, locator: LocatorSpec, *, root: Any = None) -> Any:
    for rule in locator.rules:
        node = await _evaluate_rule(page, rule, root)
        if node is not None:
            return node
    return None


async def find_all_now(page: Any, rule: Structural | Semantic, *, root: Any = None) -> list[Any]:
    try:
        return list(await page.query_all(rule, root=root))
    except Exception:
        return []


async def node_text(page: Any, node: Any, attribute: str = "") -> str:
    try:
        if attribute:
            return normalize_text(await page.attribute(node, attribute))
        return normalize_text(await page.text_of(node))
    except Exception:
        return ""


async def locate(
    page: Any,
    locator: LocatorSpec,
    *,
    timeout_ms: int = DEFAULT_LOCATOR_TIMEOUT_MS,
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    grace_ms: int = DEFAULT_REACTIVE_GRACE_MS,
    root: Any = None,
) -> WaitOutcome:
    started = time.monotonic()
    deadline = started + max(0, timeout_ms) / 1000.0
    poll_s = max(1, poll_interval_ms) / 1000.0

    node = await find_now(page, locator, root=root)
    while node is None:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        await asyncio.sleep(min(poll_s, remaining))
        node = await find_now(page, locator, root=root)

    if node is None and grace_ms > 0:
        node = await _reactive_phase(page, locator, grace_ms=grace_ms, root=root)

    elapsed_ms = int((time.monotonic() - started) * 1000)
    if node is None:
        return WaitOutcome(found=None, elapsed_ms=max(elapsed_ms, timeout_ms))
    return WaitOutcome(found=node, elapsed_ms=elapsed_ms)


async def await_disappearance(
    page: Any,
    locator: LocatorSpec,
    *,
    timeout_ms: int = DEFAULT_DISAPPEAR_TIMEOUT_MS,
    poll_interval_ms: int = DEFAULT_DISAPPEAR_POLL_MS,
    root: Any = None,
) -> bool:
    deadline = time.monotonic() + max(0, timeout_ms) / 1000.0
    poll_s = max(1, poll_interval_ms) / 1000.0
    while True:
        if await find_now(page, locator, root=root) is None:
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            # Timeout is not an error here; the caller proceeds optimistically.
            return False
        await asyncio.sleep(min(poll_s, remaining))


async def _reactive_phase(page: Any, locator: LocatorSpec, *, grace_ms: int, root: Any) -> Any:
    deadline = time.monotonic() + grace_ms / 1000.0
    while True:
        remaining_ms = int((deadline - time.monotonic()) * 1000)
        if remaining_ms <= 0:
            return None
        try:
            changed = await page.wait_for_mutation(remaining_ms)
        except Exception:
            return None
        if not changed:
            return None
        node = await find_now(page, locator, root=root)
        if node is not None:
            return node


async def _evaluate_rule(page: Any, rule: Rule, root: Any) -> Any:
    if isinstance(rule, Content):
        for candidate in await find_all_now(page, rule.within, root=root):
            if text_matches(await node_text(page, candidate, rule.attribute), rule.text, exact=rule.exact):
                return candidate
        return None
    candidates = await find_all_now(page, rule, root=root)
    return candidates[0] if candidates else None
