"""Snapshot ownership and delivery to connected viewers."""

from mdsync.session.channels import PollChannel, UpdateChannel, WebSocketChannel
from mdsync.session.coordinator import ClientSession, CoordinatorState, SessionCoordinator

__all__ = [
    "ClientSession",
    "CoordinatorState",
    "PollChannel",
    "SessionCoordinator",
    "UpdateChannel",
    "WebSocketChannel",
]
