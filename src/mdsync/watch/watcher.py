"""Filesystem watching with trailing-edge debounce."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import AsyncIterator, Callable

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from mdsync.errors import WatchSetupError
from mdsync.utils.files import FileSignature, file_signature

LOGGER = logging.getLogger(__name__)

# Open/close-without-write events are excluded, otherwise hashing the file
# after a burst would itself start a new burst.
QUALIFYING_EVENTS = frozenset(
    {
        EVENT_TYPE_CREATED,
        EVENT_TYPE_MODIFIED,
        EVENT_TYPE_MOVED,
        EVENT_TYPE_DELETED,
        EVENT_TYPE_CLOSED,
    }
)


async def coalesce(events: asyncio.Queue, window: float) -> AsyncIterator[int]:
    """Collapse bursts of queued events into single signals.

    Waits for an event, then keeps absorbing events until ``window`` seconds
    pass without one. Yields the number of events folded into the signal.
    """
    while True:
        await events.get()
        count = 1
        while True:
            try:
                await asyncio.wait_for(events.get(), timeout=window)
            except asyncio.TimeoutError:
                break
            count += 1
        yield count


class _DocumentEventHandler(FileSystemEventHandler):
    """Forwards events touching one file, ignoring the rest of its directory."""

    def __init__(self, target: Path, notify: Callable[[], None]) -> None:
        super().__init__()
        self.target = os.path.normcase(str(target))
        self.notify = notify

    def _touches_target(self, event: FileSystemEvent) -> bool:
        paths = [event.src_path, getattr(event, "dest_path", "")]
        return any(
            path and os.path.normcase(os.path.abspath(os.fsdecode(path))) == self.target
            for path in paths
        )

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in QUALIFYING_EVENTS:
            return
        if self._touches_target(event):
            self.notify()


class Watcher:
    """Lazy, non-restartable stream of change signals for one file.

    The parent directory is watched rather than the file itself so that
    editors replacing the file by rename keep being observed.
    """

    def __init__(self, path: Path, *, debounce: float = 0.1) -> None:
        self.path = Path(path).resolve()
        self.debounce = debounce
        self._observer: Observer | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._events: asyncio.Queue[float] | None = None
        self._last_signature: FileSignature | None = file_signature(self.path)
        self._consumed = False

    def check(self) -> None:
        """Raise ``WatchSetupError`` if the path can never be watched."""
        parent = self.path.parent
        if not parent.exists():
            raise WatchSetupError(f"Directory '{parent}' does not exist")
        if not parent.is_dir():
            raise WatchSetupError(f"'{parent}' is not a directory")
        if not os.access(parent, os.R_OK | os.X_OK):
            raise WatchSetupError(f"Permission denied watching '{parent}'")

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if self._observer is not None:
            return
        self.check()
        self._loop = loop or asyncio.get_running_loop()
        self._events = asyncio.Queue()

        observer = Observer()
        handler = _DocumentEventHandler(self.path, self._notify)
        try:
            observer.schedule(handler, str(self.path.parent), recursive=False)
            observer.start()
        except OSError as exc:
            LOGGER.error("Unable to watch %s: %s", self.path, exc)
            raise WatchSetupError(f"Unable to watch '{self.path}': {exc}") from exc
        self._observer = observer
        LOGGER.debug("Watching %s (debounce %.3fs)", self.path, self.debounce)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None

    def _notify(self) -> None:
        # Runs on the observer thread
        if self._loop is None or self._events is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._events.put_nowait, time.monotonic())
        except RuntimeError:
            # Loop already closed during shutdown
            pass

    async def changes(self) -> AsyncIterator[FileSignature]:
        """Yield once per settled change of the file's content or mtime."""
        if self._consumed:
            raise RuntimeError("Watcher.changes() can only be iterated once")
        self._consumed = True
        if self._observer is None:
            self.start()
        assert self._events is not None

        async for burst in coalesce(self._events, self.debounce):
            signature = file_signature(self.path)
            if signature is None:
                LOGGER.debug("%s is missing, waiting for it to reappear", self.path)
                continue
            if signature == self._last_signature:
                continue
            LOGGER.debug("Change detected in %s (%d events)", self.path, burst)
            self._last_signature = signature
            yield signature
