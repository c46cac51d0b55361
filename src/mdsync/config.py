"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from mdsync.errors import ConfigError

DeliveryMode = Literal["push", "poll"]

DELIVERY_MODES: tuple[str, ...] = ("push", "poll")


@dataclass(slots=True)
class AppConfig:
    file_path: Path | None = None
    mode: DeliveryMode = "push"
    poll_interval: float = 2.0
    host: str = "127.0.0.1"
    port: int | None = 0
    debounce: float = 0.1
    ping_interval: float = 10.0
    heartbeat_timeout: float = 30.0
    send_timeout: float = 5.0

    def __post_init__(self) -> None:
        if self.file_path is not None:
            self.file_path = Path(self.file_path).expanduser()

    @property
    def document_path(self) -> Path:
        """Absolute path of the watched document."""
        if self.file_path is None:
            raise ConfigError("No document path given")
        return self.file_path.resolve()

    @property
    def stale_after(self) -> float:
        """Seconds of client silence after which a session is dropped."""
        if self.mode == "poll":
            return max(self.heartbeat_timeout, 3 * self.poll_interval)
        return self.heartbeat_timeout

    def validate(self) -> AppConfig:
        """Check every value, raising ``ConfigError`` on the first bad one."""
        if self.file_path is None:
            raise ConfigError("No document path given")
        if not self.file_path.exists():
            raise ConfigError(f"File '{self.file_path}' does not exist")
        if not self.file_path.is_file():
            raise ConfigError(f"'{self.file_path}' is not a file")
        if self.mode not in DELIVERY_MODES:
            raise ConfigError(f"Unknown delivery mode '{self.mode}' (expected push or poll)")
        if self.poll_interval <= 0:
            raise ConfigError("Poll interval must be greater than zero")
        if self.port is None:
            self.port = 0
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"Invalid port {self.port}")
        if self.debounce <= 0:
            raise ConfigError("Debounce window must be greater than zero")
        if self.ping_interval <= 0:
            raise ConfigError("Ping interval must be greater than zero")
        if self.heartbeat_timeout <= self.ping_interval:
            raise ConfigError("Heartbeat timeout must be longer than the ping interval")
        if self.send_timeout <= 0:
            raise ConfigError("Send timeout must be greater than zero")
        return self
