"""Update channels delivering snapshots to connected viewers."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from starlette.websockets import WebSocket, WebSocketState

from mdsync.errors import ChannelError
from mdsync.models import Snapshot

LOGGER = logging.getLogger(__name__)

PING_MESSAGE: dict[str, Any] = {"type": "ping"}


def noop_message(version: int, instance: str = "") -> dict[str, Any]:
    message: dict[str, Any] = {"type": "noop", "version": version}
    if instance:
        message["instance"] = instance
    return message


class UpdateChannel(ABC):
    """Delivers updates in version order and tracks client liveness.

    Subclasses implement ``_deliver`` and ``_ping``; ordering, locking and
    heartbeat bookkeeping live here.
    """

    def __init__(self, *, timeout: float) -> None:
        self.timeout = timeout
        self.sent_version = -1
        self.last_heartbeat = time.monotonic()
        self.closed = False
        self._lock = asyncio.Lock()

    async def send_update(self, snapshot: Snapshot) -> bool:
        """Deliver ``snapshot`` unless a same or newer version already went out."""
        async with self._lock:
            if self.closed:
                raise ChannelError("Channel is closed")
            if snapshot.version <= self.sent_version:
                return False
            await self._deliver(snapshot)
            self.sent_version = snapshot.version
            return True

    async def send_ping(self) -> None:
        async with self._lock:
            if self.closed:
                raise ChannelError("Channel is closed")
            await self._ping()

    def heartbeat(self) -> None:
        self.last_heartbeat = time.monotonic()

    def is_alive(self, now: float | None = None) -> bool:
        if self.closed:
            return False
        now = time.monotonic() if now is None else now
        return now - self.last_heartbeat <= self.timeout

    async def close(self) -> None:
        self.closed = True

    @abstractmethod
    async def _deliver(self, snapshot: Snapshot) -> None: ...

    @abstractmethod
    async def _ping(self) -> None: ...


class WebSocketChannel(UpdateChannel):
    """Push-mode channel over a WebSocket."""

    def __init__(self, websocket: WebSocket, *, timeout: float) -> None:
        super().__init__(timeout=timeout)
        self.websocket = websocket

    async def _send(self, message: dict[str, Any]) -> None:
        try:
            await self.websocket.send_json(message)
        except Exception as exc:
            raise ChannelError(f"WebSocket send failed: {exc}") from exc

    async def _deliver(self, snapshot: Snapshot) -> None:
        await self._send(snapshot.to_message())

    async def _ping(self) -> None:
        await self._send(PING_MESSAGE)

    async def close(self) -> None:
        if self.closed:
            return
        await super().close()
        if self.websocket.client_state == WebSocketState.CONNECTED:
            try:
                await self.websocket.close()
            except Exception as exc:  # pragma: no cover - already torn down
                LOGGER.debug("Error closing websocket: %s", exc)


class PollChannel(UpdateChannel):
    """Poll-mode channel: a mailbox the client drains on each request.

    Broadcasts only store the newest snapshot. Liveness comes from the
    client's polls, so pings are not sent.
    """

    def __init__(self, *, timeout: float) -> None:
        super().__init__(timeout=timeout)
        self.latest: Snapshot | None = None

    async def _deliver(self, snapshot: Snapshot) -> None:
        self.latest = snapshot

    async def _ping(self) -> None:
        return None

    def collect(self, stated_version: int | None) -> Snapshot | None:
        """Answer a poll: the newest snapshot if it differs from what the client has."""
        self.heartbeat()
        if self.latest is None or self.latest.version == stated_version:
            return None
        return self.latest
