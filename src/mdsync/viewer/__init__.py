"""Client-side viewer model and search."""

from mdsync.viewer.search import SearchEngine, find_matches
from mdsync.viewer.state import ViewerState

__all__ = ["SearchEngine", "ViewerState", "find_matches"]
