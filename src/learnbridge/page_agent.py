"""Page agents: per-tab workers that run Action Scripts on request."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlparse

from learnbridge.config import TimeoutSettings
from learnbridge.constants import ACTION_PING, PONG_MESSAGE
from learnbridge.context_bridge import Channel, ChannelClosed, Envelope, LocalChannel
from learnbridge.models import ActionRequest, ActionResponse
from learnbridge.storage import append_log
from learnbridge.web_action_script import ActionScript
from learnbridge.web_chat_scripts import chat_scripts
from learnbridge.web_notebook_scripts import notebook_scripts

ScriptResolver = Callable[[str], "dict[str, ActionScript] | None"]

_HOST_SCRIPTS: dict[str, Callable[[], dict[str, ActionScript]]] = {
    "notebooklm.google.com": notebook_scripts,
    "gemini.google.com": chat_scripts,
}


def scripts_for_url(url: str) -> dict[str, ActionScript] | None:
    host = (urlparse(str(url or "")).hostname or "").lower()
    factory = _HOST_SCRIPTS.get(host)
    return factory() if factory is not None else None


class PageAgent:
    def __init__(
        self,
        target_id: str,
        page: Any,
        channel: Channel,
        *,
        resolver: ScriptResolver = scripts_for_url,
        timings: TimeoutSettings | None = None,
        log_path: Path | None = None,
    ) -> None:
        self.target_id = target_id
        self.page = page
        self.channel = channel
        self.timings = timings or TimeoutSettings()
        self._resolver = resolver
        self._log_path = log_path
        self.scripts: dict[str, ActionScript] | None = None
        self.handled = 0

    @property
    def loaded(self) -> bool:
        return self.scripts is not None

    async def serve(self) -> None:
        while True:
            try:
                envelope = await self.channel.receive()
            except ChannelClosed:
                self._log("channel closed; agent stopping")
                return
            response = await self.handle(envelope.body)
            if response is None:
                continue
            try:
                await self.channel.send(Envelope(seq=envelope.seq, body=response.to_dict()))
            except ChannelClosed:
                self._log("channel closed before reply; agent stopping")
                return

    async def handle(self, body: dict[str, Any]) -> ActionResponse | None:
        try:
            request = ActionRequest.from_dict(body)
        except ValueError as exc:
            return ActionResponse.failed(f"Invalid request: {exc}")
        if not self._ensure_loaded():
            # Scripts are not active on this page yet; stay silent so the caller retries.
            self._log(f"ignored {request.action}: scripts not loaded for {self._page_url()}")
            return None
        if request.action == ACTION_PING:
            return ActionResponse.ok(message=PONG_MESSAGE)
        script = (self.scripts or {}).get(request.action)
        if script is None:
            return ActionResponse.failed(f"Unsupported action: {request.action}")
        self._log(f"run {request.action} keys={sorted(request.payload)}")
        try:
            response = await script.run(self.page, request.payload, timings=self.timings)
        except Exception as exc:
            response = ActionResponse.failed(f"{request.action} crashed: {exc}")
        self.handled += 1
        status = "ok" if response.success else f"failed ({response.error or response.error_kind})"
        self._log(f"done {request.action}: {status}")
        return response

    def _ensure_loaded(self) -> bool:
        if self.scripts is None:
            self.scripts = self._resolver(self._page_url())
        return self.scripts is not None

    def _page_url(self) -> str:
        return str(getattr(self.page, "url", "") or "")

    def _log(self, message: str) -> None:
        if self._log_path is None:
            return
        stamp = datetime.now(timezone.utc).isoformat()
        append_log(self._log_path, f"[{stamp}] agent {self.target_id}: {message}")


class AgentRegistry:
    """Target-side bookkeeping: one page and at most one live agent per tab."""

    def __init__(
        self,
        *,
        resolver: ScriptResolver = scripts_for_url,
        timings: TimeoutSettings | None = None,
        log_path: Path | None = None,
    ) -> None:
        self._resolver = resolver
        self.timings = timings or TimeoutSettings()
        self.log_path = log_path
        self._pages: dict[str, Any] = {}
        self._agents: dict[str, PageAgent] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def install(self, target_id: str, page: Any) -> None:
        self.teardown(target_id)
        self._pages[target_id] = page

    def has(self, target_id: str) -> bool:
        return target_id in self._pages

    def agent(self, target_id: str) -> PageAgent | None:
        return self._agents.get(target_id)

    async def connect(self, target_id: str) -> Channel:
        page = self._pages.get(target_id)
        if page is None:
            raise ChannelClosed(f"no page registered for {target_id}")
        self._stop_agent(target_id)
        controller_end, agent_end = LocalChannel.pair()
        agent = PageAgent(
            target_id,
            page,
            agent_end,
            resolver=self._resolver,
            timings=self.timings,
            log_path=self.log_path,
        )
        self._agents[target_id] = agent
        self._tasks[target_id] = asyncio.create_task(agent.serve(), name=f"page-agent-{target_id}")
        return controller_end

    def teardown(self, target_id: str) -> None:
        self._stop_agent(target_id)
        self._pages.pop(target_id, None)

    async def aclose(self) -> None:
        tasks = list(self._tasks.values())
        for target_id in list(self._pages):
            self.teardown(target_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _stop_agent(self, target_id: str) -> None:
        agent = self._agents.pop(target_id, None)
        if agent is not None:
            agent.channel.close()
        task = self._tasks.pop(target_id, None)
        if task is not None and not task.done():
            task.cancel()
