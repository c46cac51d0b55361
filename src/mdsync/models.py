"""Core MDSync data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path

from mdsync.errors import TransientReadError
from mdsync.utils.text import html_to_text


class Document:
    """The watched file: a fixed absolute path and its last-read content."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path).resolve()
        self.content: bytes = b""

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> str:
        """Re-read the file from disk and return it as text.

        Invalid UTF-8 sequences are replaced rather than rejected.
        """
        try:
            data = self._path.read_bytes()
        except OSError as exc:
            raise TransientReadError(f"Unable to read {self._path}: {exc}") from exc
        self.content = data
        return data.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class Snapshot:
    """Immutable versioned rendering of the document.

    ``instance`` names the server process that produced it. Versions restart
    at 1 with every process, so clients compare it to notice a restart.
    """

    version: int
    html: str
    instance: str = field(default="", compare=False)

    @cached_property
    def text(self) -> str:
        return html_to_text(self.html)

    def to_message(self) -> dict[str, object]:
        message: dict[str, object] = {"type": "update", "version": self.version, "html": self.html}
        if self.instance:
            message["instance"] = self.instance
        return message


EMPTY_SNAPSHOT = Snapshot(version=0, html="")


@dataclass(slots=True)
class Match:
    """One search hit as a half-open ``[start, end)`` range of the text."""

    start: int
    end: int

    def as_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass(slots=True)
class SearchState:
    query: str = ""
    matches: list[Match] = field(default_factory=list)
    cursor: int | None = None

    @property
    def current(self) -> Match | None:
        if self.cursor is None:
            return None
        return self.matches[self.cursor]
