"""Single UI interactions with synthetic event dispatch and verification."""

from __future__ import annotations

import asyncio
from typing import Any

from learnbridge.constants import (
    DEFAULT_LOCATOR_TIMEOUT_MS,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_REACTIVE_GRACE_MS,
    DEFAULT_SETTLE_MS,
    ERR_EVENT_REJECTED,
    ERR_LOCATOR_TIMEOUT,
    HOVER_EVENT_SEQUENCE,
    TEXT_EVENT_SEQUENCE,
)
from learnbridge.models import StepResult
from learnbridge.web_common import collapse_ws
from learnbridge.web_locator import LocatorSpec, locate


async def click(page: Any, node: Any) -> StepResult:
    try:
        await page.click(node)
    except Exception as exc:
        return StepResult.failure(ERR_EVENT_REJECTED, f"click failed: {exc}")
    return StepResult.success("clicked")


async def focus(page: Any, node: Any) -> StepResult:
    try:
        await page.focus(node)
    except Exception as exc:
        return StepResult.failure(ERR_EVENT_REJECTED, f"focus failed: {exc}")
    return StepResult.success("focused")


async def hover(page: Any, node: Any) -> StepResult:
    try:
        for event_type in HOVER_EVENT_SEQUENCE:
            await page.dispatch(node, event_type)
    except Exception as exc:
        return StepResult.failure(ERR_EVENT_REJECTED, f"hover failed: {exc}")
    return StepResult.success("hovered")


async def set_text(page: Any, node: Any, value: str, *, settle_ms: int = DEFAULT_SETTLE_MS) -> StepResult:
    wanted = str(value or "")
    try:
        await page.focus(node)
        await page.select_contents(node)
        await page.assign_value(node, wanted)
        await _dispatch_all(page, node, TEXT_EVENT_SEQUENCE)
        await asyncio.sleep(max(0, settle_ms) / 1000.0)
        if _same_text(await page.read_value(node), wanted):
            return StepResult.success("value set")

        # Bulk assignment was intercepted; replay the value one character at a time.
        await page.assign_value(node, "")
        await page.dispatch(node, "input")
        typed = ""
        for ch in wanted:
            typed += ch
            await page.assign_value(node, typed)
            await page.dispatch(node, "input")
        await page.dispatch(node, "change")
        await asyncio.sleep(max(0, settle_ms) / 1000.0)
        observed = await page.read_value(node)
    except Exception as exc:
        return StepResult.failure(ERR_EVENT_REJECTED, f"text entry failed: {exc}")
    if _same_text(observed, wanted):
        return StepResult.success("value set incrementally")
    return StepResult.failure(
        ERR_EVENT_REJECTED,
        f"value not accepted by page (wanted {len(wanted)} chars, read back {len(observed)})",
    )


async def set_checked(page: Any, node: Any, checked: bool, *, settle_ms: int = DEFAULT_SETTLE_MS) -> StepResult:
    try:
        if await page.is_checked(node) == checked:
            return StepResult.success("already in requested state")
        await page.click(node)
        await asyncio.sleep(max(0, settle_ms) / 1000.0)
        state = await page.is_checked(node)
    except Exception as exc:
        return StepResult.failure(ERR_EVENT_REJECTED, f"toggle failed: {exc}")
    if state != checked:
        return StepResult.failure(ERR_EVENT_REJECTED, "checked state did not change")
    return StepResult.success("checked" if checked else "unchecked")


async def locate_and_click(
    page: Any,
    locator: LocatorSpec,
    *,
    timeout_ms: int = DEFAULT_LOCATOR_TIMEOUT_MS,
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    grace_ms: int = DEFAULT_REACTIVE_GRACE_MS,
) -> StepResult:
    outcome = await locate(
        page, locator, timeout_ms=timeout_ms, poll_interval_ms=poll_interval_ms, grace_ms=grace_ms
    )
    if not outcome.ok:
        return _not_found(locator, outcome.elapsed_ms)
    return await click(page, outcome.found)


async def locate_and_set_text(
    page: Any,
    locator: LocatorSpec,
    value: str,
    *,
    timeout_ms: int = DEFAULT_LOCATOR_TIMEOUT_MS,
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    grace_ms: int = DEFAULT_REACTIVE_GRACE_MS,
    settle_ms: int = DEFAULT_SETTLE_MS,
) -> StepResult:
    outcome = await locate(
        page, locator, timeout_ms=timeout_ms, poll_interval_ms=poll_interval_ms, grace_ms=grace_ms
    )
    if not outcome.ok:
        return _not_found(locator, outcome.elapsed_ms)
    return await set_text(page, outcome.found, value, settle_ms=settle_ms)


def _not_found(locator: LocatorSpec, elapsed_ms: int) -> StepResult:
    return StepResult.failure(ERR_LOCATOR_TIMEOUT, f"{locator.name or 'target'} not found after {elapsed_ms}ms")


async def _dispatch_all(page: Any, node: Any, event_types: tuple[str, ...]) -> None:
    for event_type in event_types:
        await page.dispatch(node, event_type)


def _same_text(observed: Any, wanted: str) -> bool:
    return collapse_ws(observed) == collapse_ws(wanted)
