"""Render cycle and fan-out of snapshots to connected viewers."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List

from mdsync.errors import ChannelError, RenderError, TransientReadError
from mdsync.models import EMPTY_SNAPSHOT, Document, Snapshot
from mdsync.session.channels import PollChannel, UpdateChannel

LOGGER = logging.getLogger(__name__)

Renderer = Callable[[str], str]


def _log_cycle_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        LOGGER.error("Render cycle failed", exc_info=task.exception())


class CoordinatorState(str, enum.Enum):
    IDLE = "idle"
    RENDERING = "rendering"
    BROADCASTING = "broadcasting"


@dataclass(slots=True, eq=False)
class ClientSession:
    """One connected viewer."""

    channel: UpdateChannel
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    acked_version: int = 0


class SessionCoordinator:
    """Owns the current snapshot and the registry of client sessions.

    Only one render cycle runs at a time. Change signals that arrive during a
    cycle set a single "render owed" flag, which makes the running cycle loop
    exactly once more when it finishes.
    """

    def __init__(self, document: Document, renderer: Renderer, *, send_timeout: float = 5.0) -> None:
        self.document = document
        self.renderer = renderer
        self.send_timeout = send_timeout
        self.instance = uuid.uuid4().hex
        self.state = CoordinatorState.IDLE
        self.render_count = 0
        self._snapshot = EMPTY_SNAPSHOT
        self._sessions: Dict[str, ClientSession] = {}
        self._cycle_lock = asyncio.Lock()
        self._render_owed = False
        self._cycle_task: asyncio.Task | None = None

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def sessions(self) -> List[ClientSession]:
        return list(self._sessions.values())

    @property
    def render_owed(self) -> bool:
        return self._render_owed

    def get_session(self, session_id: str | None) -> ClientSession | None:
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    async def initialize(self) -> Snapshot:
        """Render the document for the first time."""
        await self.on_file_changed()
        if self._snapshot is EMPTY_SNAPSHOT:
            LOGGER.warning("Initial render of %s failed, serving an empty page", self.document.path)
        return self._snapshot

    async def connect(self, channel: UpdateChannel) -> ClientSession:
        """Register a viewer and hand it the current snapshot right away."""
        session = ClientSession(channel=channel)
        self._sessions[session.id] = session
        LOGGER.info("Client %s connected (%d active)", session.id[:8], len(self._sessions))
        try:
            await self._send(channel.send_update(self._snapshot))
        except ChannelError:
            await self.disconnect(session)
            raise
        return session

    async def disconnect(self, session: ClientSession) -> None:
        """Drop ``session`` and release its channel. Safe to call twice."""
        if self._sessions.pop(session.id, None) is None:
            return
        await session.channel.close()
        LOGGER.info("Client %s disconnected (%d active)", session.id[:8], len(self._sessions))

    def acknowledge(self, session: ClientSession, version: int) -> None:
        if version > session.acked_version:
            session.acked_version = version
        session.channel.heartbeat()

    async def poll(self, session: ClientSession, stated_version: int | None) -> Snapshot | None:
        channel = session.channel
        if not isinstance(channel, PollChannel):
            raise TypeError("poll() requires a poll-mode session")
        return channel.collect(stated_version)

    def request_render(self) -> None:
        """Signal a change without waiting for the render cycle to finish."""
        if self._cycle_task is not None and not self._cycle_task.done():
            self._render_owed = True
            LOGGER.debug("Render in flight, one more render owed")
            return
        self._cycle_task = asyncio.create_task(self.on_file_changed())
        self._cycle_task.add_done_callback(_log_cycle_failure)

    async def on_file_changed(self) -> None:
        """Handle a change signal, coalescing it into a running cycle if any."""
        if self._cycle_lock.locked():
            self._render_owed = True
            LOGGER.debug("Render in flight, one more render owed")
            return

        async with self._cycle_lock:
            self._render_owed = True
            try:
                while self._render_owed:
                    self._render_owed = False
                    snapshot = await self._render()
                    if snapshot is not None:
                        await self._broadcast(snapshot)
            finally:
                self.state = CoordinatorState.IDLE

    async def _render(self) -> Snapshot | None:
        self.state = CoordinatorState.RENDERING
        self.render_count += 1
        try:
            html = await asyncio.to_thread(self._read_and_render)
        except (TransientReadError, RenderError) as exc:
            LOGGER.warning("Keeping version %d: %s", self._snapshot.version, exc)
            return None
        self._snapshot = Snapshot(version=self._snapshot.version + 1, html=html, instance=self.instance)
        LOGGER.debug("Rendered version %d", self._snapshot.version)
        return self._snapshot

    def _read_and_render(self) -> str:
        text = self.document.read()
        try:
            return self.renderer(text)
        except RenderError:
            raise
        except Exception as exc:
            raise RenderError(str(exc)) from exc

    async def _send(self, send: Awaitable[object]) -> None:
        try:
            await asyncio.wait_for(send, timeout=self.send_timeout)
        except asyncio.TimeoutError as exc:
            raise ChannelError(f"Send timed out after {self.send_timeout}s") from exc

    async def _broadcast(self, snapshot: Snapshot) -> None:
        self.state = CoordinatorState.BROADCASTING
        sessions = self.sessions
        if not sessions:
            return
        results = await asyncio.gather(
            *(self._send(session.channel.send_update(snapshot)) for session in sessions),
            return_exceptions=True,
        )
        for session, result in zip(sessions, results):
            if isinstance(result, BaseException):
                LOGGER.info("Dropping client %s: %s", session.id[:8], result)
                await self.disconnect(session)

    async def check_liveness(self, now: float | None = None) -> int:
        """Disconnect silent sessions and ping the rest. Returns how many were dropped."""
        now = time.monotonic() if now is None else now
        dropped = 0
        for session in self.sessions:
            if not session.channel.is_alive(now):
                LOGGER.info("Client %s timed out", session.id[:8])
                await self.disconnect(session)
                dropped += 1
                continue
            try:
                await self._send(session.channel.send_ping())
            except ChannelError as exc:
                LOGGER.info("Dropping client %s: %s", session.id[:8], exc)
                await self.disconnect(session)
                dropped += 1
        return dropped

    async def run_liveness(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.check_liveness()

    async def close(self) -> None:
        if self._cycle_task is not None and not self._cycle_task.done():
            self._cycle_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cycle_task
        for session in self.sessions:
            await self.disconnect(session)
