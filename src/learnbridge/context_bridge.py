"""Correlated request/response messaging between controller and page agents.

Each target (one browser tab) gets one channel. A channel carries at most one
request at a time; every envelope has a channel-local sequence number so a late
reply to an abandoned request (typically a ping that timed out) is dropped
instead of being mistaken for the answer to the next request.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from learnbridge.config import TimeoutSettings
from learnbridge.constants import (
    ACTION_PING,
    ERR_CHANNEL_LOST,
    ERR_HANDSHAKE_TIMEOUT,
    ERR_RESPONSE_TIMEOUT,
    PONG_MESSAGE,
)
from learnbridge.models import ActionRequest, ActionResponse


@dataclass(frozen=True)
class Envelope:
    seq: int
    body: dict[str, Any]


class ChannelClosed(Exception):
    pass


class Channel(Protocol):
    async def send(self, envelope: Envelope) -> None: ...

    async def receive(self) -> Envelope: ...

    def close(self) -> None: ...

    @property
    def closed(self) -> bool: ...


class BridgeError(RuntimeError):
    kind = ""

    def __init__(self, target_id: str, message: str) -> None:
        super().__init__(message)
        self.target_id = target_id


class ChannelLostError(BridgeError):
    kind = ERR_CHANNEL_LOST


class ResponseTimeoutError(BridgeError):
    kind = ERR_RESPONSE_TIMEOUT


class HandshakeTimeoutError(BridgeError):
    kind = ERR_HANDSHAKE_TIMEOUT


_CLOSED = object()


class _PairState:
    def __init__(self) -> None:
        self.closed = False


class LocalChannel:
    """One end of an in-process duplex channel backed by two asyncio queues."""

    def __init__(self, inbox: asyncio.Queue, outbox: asyncio.Queue, state: _PairState) -> None:
        self._inbox = inbox
        self._outbox = outbox
        self._state = state

    @classmethod
    def pair(cls) -> tuple["LocalChannel", "LocalChannel"]:
        left: asyncio.Queue = asyncio.Queue()
        right: asyncio.Queue = asyncio.Queue()
        state = _PairState()
        return cls(left, right, state), cls(right, left, state)

    @property
    def closed(self) -> bool:
        return self._state.closed

    async def send(self, envelope: Envelope) -> None:
        if self._state.closed:
            raise ChannelClosed("channel closed")
        self._outbox.put_nowait(envelope)

    async def receive(self) -> Envelope:
        if self._state.closed and self._inbox.empty():
            raise ChannelClosed("channel closed")
        item = await self._inbox.get()
        if item is _CLOSED:
            self._inbox.put_nowait(_CLOSED)
            raise ChannelClosed("channel closed")
        return item

    def close(self) -> None:
        if self._state.closed:
            return
        self._state.closed = True
        self._inbox.put_nowait(_CLOSED)
        self._outbox.put_nowait(_CLOSED)


Connector = Callable[[str], Awaitable[Channel]]


@dataclass
class _Link:
    channel: Channel
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    next_seq: int = 1
    handshaken: bool = False
    degraded: bool = False


class ContextBridge:
    def __init__(self, connector: Connector, *, timings: TimeoutSettings | None = None) -> None:
        self._connector = connector
        self.timings = timings or TimeoutSettings()
        self._links: dict[str, _Link] = {}

    async def send(self, target_id: str, request: ActionRequest, timeout_ms: int | None = None) -> ActionResponse:
        link = await self._link(target_id)
        if not link.handshaken:
            await self.handshake(target_id)
        wait_ms = self.timings.response_timeout_ms if timeout_ms is None else timeout_ms
        async with link.lock:
            try:
                return await self._exchange(target_id, link, request, wait_ms)
            except ResponseTimeoutError as exc:
                if link.degraded:
                    raise HandshakeTimeoutError(
                        target_id, f"Page {target_id} never answered the readiness check; {exc}"
                    ) from exc
                raise

    async def handshake(self, target_id: str) -> bool:
        link = await self._link(target_id)
        ping = ActionRequest(action=ACTION_PING)
        attempts = max(1, self.timings.ping_attempts)
        async with link.lock:
            for attempt in range(attempts):
                try:
                    response = await self._exchange(target_id, link, ping, self.timings.ping_timeout_ms)
                except ResponseTimeoutError:
                    response = None
                if response is not None and response.success and response.message == PONG_MESSAGE:
                    link.handshaken = True
                    link.degraded = False
                    return True
                if attempt + 1 < attempts:
                    await asyncio.sleep(max(0, self.timings.ping_interval_ms) / 1000.0)
            # Proceed without a pong; the payload send may still succeed.
            link.handshaken = True
            link.degraded = True
            return False

    def forget(self, target_id: str) -> None:
        link = self._links.pop(target_id, None)
        if link is not None:
            link.channel.close()

    def is_degraded(self, target_id: str) -> bool:
        link = self._links.get(target_id)
        return bool(link and link.degraded)

    async def _link(self, target_id: str) -> _Link:
        link = self._links.get(target_id)
        if link is not None and not link.channel.closed:
            return link
        try:
            channel = await self._connector(target_id)
        except ChannelClosed as exc:
            raise ChannelLostError(target_id, f"Page {target_id} is gone: {exc}") from exc
        link = _Link(channel=channel)
        self._links[target_id] = link
        return link

    async def _exchange(self, target_id: str, link: _Link, request: ActionRequest, timeout_ms: int) -> ActionResponse:
        seq = link.next_seq
        link.next_seq += 1
        deadline = time.monotonic() + max(0, timeout_ms) / 1000.0
        try:
            await link.channel.send(Envelope(seq=seq, body=request.to_dict()))
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise asyncio.TimeoutError
                envelope = await asyncio.wait_for(link.channel.receive(), timeout=remaining)
                if envelope.seq == seq:
                    break
        except ChannelClosed as exc:
            raise ChannelLostError(target_id, f"Page {target_id} closed during '{request.action}'") from exc
        except asyncio.TimeoutError as exc:
            raise ResponseTimeoutError(
                target_id, f"No response to '{request.action}' within {timeout_ms}ms"
            ) from exc
        try:
            return ActionResponse.from_dict(envelope.body)
        except ValueError as exc:
            return ActionResponse.failed(f"Malformed response to '{request.action}': {exc}")
