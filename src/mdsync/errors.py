"""Exception hierarchy for MDSync."""

from __future__ import annotations


class MDSyncError(Exception):
    """Base class for every MDSync error."""


class ConfigError(MDSyncError):
    """Invalid configuration, reported before any server starts."""


class WatchSetupError(MDSyncError):
    """The document path cannot be watched at all."""


class TransientReadError(MDSyncError):
    """The document vanished or was locked while being read."""


class RenderError(MDSyncError):
    """The renderer could not handle the document content."""


class ChannelError(MDSyncError):
    """A client's update channel broke."""
