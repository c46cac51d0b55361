"""Document change detection."""

from mdsync.watch.watcher import Watcher, coalesce

__all__ = ["Watcher", "coalesce"]
