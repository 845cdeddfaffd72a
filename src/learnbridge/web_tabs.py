"""Browser tabs for the orchestrator: open, find, poll readiness, close."""

from __future__ import annotations

import asyncio
import itertools
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from learnbridge.constants import DEFAULT_TAB_MAX_ATTEMPTS, DEFAULT_TAB_POLL_MS, DEFAULT_TAB_SETTLE_MS
from learnbridge.page_agent import AgentRegistry
from learnbridge.web_common import same_origin
from learnbridge.web_page import PlaywrightPageContext


class TabClosedError(RuntimeError):
    pass


class Tabs(Protocol):
    async def open(self, url: str) -> str: ...

    async def find(self, url: str) -> str | None: ...

    async def ready_state(self, tab_id: str) -> str: ...

    async def close(self, tab_id: str) -> None: ...


async def wait_for_tab_ready(
    tabs: Tabs,
    tab_id: str,
    *,
    poll_ms: int = DEFAULT_TAB_POLL_MS,
    max_attempts: int = DEFAULT_TAB_MAX_ATTEMPTS,
    settle_ms: int = DEFAULT_TAB_SETTLE_MS,
) -> bool:
    """Poll until the tab reports ``complete``; give up quietly after ``max_attempts``."""
    for attempt in range(max(1, max_attempts)):
        if await tabs.ready_state(tab_id) == "complete":
            await asyncio.sleep(max(0, settle_ms) / 1000.0)
            return True
        if attempt + 1 < max_attempts:
            await asyncio.sleep(max(1, poll_ms) / 1000.0)
    return False


class PlaywrightTabs:
    def __init__(self, context: Any, registry: AgentRegistry) -> None:
        self.context = context
        self.registry = registry
        self._pages: dict[str, Any] = {}
        self._ids = itertools.count(1)

    async def open(self, url: str) -> str:
        try:
            page = await self.context.new_page()
            await page.goto(url, wait_until="commit")
        except PlaywrightError as exc:
            raise TabClosedError(f"Could not open {url}: {exc}") from exc
        return self._register(page)

    async def find(self, url: str) -> str | None:
        for tab_id, page in self._pages.items():
            if not page.is_closed() and same_origin(page.url, url):
                return tab_id
        for page in self.context.pages:
            if page.is_closed() or page in self._pages.values():
                continue
            if same_origin(page.url, url):
                return self._register(page)
        return None

    async def ready_state(self, tab_id: str) -> str:
        page = self._page(tab_id)
        try:
            return str(await page.evaluate("document.readyState"))
        except PlaywrightError as exc:
            if page.is_closed():
                raise TabClosedError(f"Tab {tab_id} was closed") from exc
            # Navigation in progress destroys the execution context.
            return "loading"

    async def close(self, tab_id: str) -> None:
        page = self._pages.pop(tab_id, None)
        self.registry.teardown(tab_id)
        if page is not None and not page.is_closed():
            await page.close()

    def _page(self, tab_id: str) -> Any:
        page = self._pages.get(tab_id)
        if page is None or page.is_closed():
            raise TabClosedError(f"Tab {tab_id} is not open")
        return page

    def _register(self, page: Any) -> str:
        tab_id = f"tab-{next(self._ids)}"
        self._pages[tab_id] = page
        self.registry.install(tab_id, PlaywrightPageContext(page))
        page.on("close", lambda _page: self.registry.teardown(tab_id))
        return tab_id


@asynccontextmanager
async def connect_tabs(port: int, registry: AgentRegistry) -> AsyncIterator[PlaywrightTabs]:
    async with async_playwright() as p:
        browser = await p.chromium.connect_over_cdp(f"http://127.0.0.1:{port}")
        context = browser.contexts[0] if browser.contexts else await browser.new_context()
        yield PlaywrightTabs(context, registry)
