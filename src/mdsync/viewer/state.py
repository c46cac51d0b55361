"""Client-side model of what a viewer is displaying."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from mdsync.models import Snapshot
from mdsync.viewer.search import SearchEngine

LOGGER = logging.getLogger(__name__)


class ViewerState:
    """Applies update messages in version order and keeps search in sync."""

    def __init__(self, instance: str | None = None) -> None:
        self.snapshot: Snapshot | None = None
        self.instance = instance
        self.search = SearchEngine()

    @property
    def stated_version(self) -> int:
        """Version a poll-mode client reports to the server."""
        return self.snapshot.version if self.snapshot is not None else 0

    def _follow_instance(self, instance: str) -> None:
        if instance == self.instance:
            return
        if self.instance is not None and self.snapshot is not None:
            LOGGER.info("Server restarted, resynchronising from version 0")
            # Keep showing the old page until the new server's snapshot arrives
            self.snapshot = Snapshot(version=0, html=self.snapshot.html)
        self.instance = instance

    def apply(self, message: Mapping[str, Any]) -> bool:
        """Apply ``message`` if it carries a newer snapshot; return whether it did."""
        instance = message.get("instance")
        if instance:
            self._follow_instance(str(instance))
        if message.get("type") != "update":
            return False
        version = int(message["version"])
        if self.snapshot is not None and version <= self.snapshot.version:
            LOGGER.debug("Ignoring stale update %d (showing %d)", version, self.snapshot.version)
            return False
        self.snapshot = Snapshot(version=version, html=str(message.get("html", "")), instance=self.instance or "")
        self.search.reindex(self.snapshot.text)
        return True
