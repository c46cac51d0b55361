"""Tests for core data models."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from mdsync.errors import TransientReadError
from mdsync.models import EMPTY_SNAPSHOT, Document, Match, SearchState, Snapshot


class TestDocument:
    """Test Document class."""

    def test_path_is_absolute(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should store an absolute path even when given a relative one."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / "doc.md").write_text("x")

        document = Document(Path("doc.md"))

        assert document.path.is_absolute()
        assert document.path == (tmp_path / "doc.md").resolve()

    def test_read_updates_content(self, tmp_path: Path) -> None:
        """Should return text and remember the raw bytes."""
        path = tmp_path / "doc.md"
        path.write_text("héllo", encoding="utf-8")
        document = Document(path)

        assert document.read() == "héllo"
        assert document.content == "héllo".encode("utf-8")

    def test_read_invalid_utf8(self, tmp_path: Path) -> None:
        """Should replace undecodable bytes instead of failing."""
        path = tmp_path / "doc.md"
        path.write_bytes(b"ok \xff\xfe end")

        text = Document(path).read()

        assert text.startswith("ok ")
        assert text.endswith(" end")
        assert "�" in text

    def test_read_missing_file(self, tmp_path: Path) -> None:
        """Should raise TransientReadError when the file is gone."""
        document = Document(tmp_path / "gone.md")

        with pytest.raises(TransientReadError):
            document.read()

    def test_failed_read_keeps_previous_content(self, tmp_path: Path) -> None:
        """Should not clear content when a re-read fails."""
        path = tmp_path / "doc.md"
        path.write_text("first")
        document = Document(path)
        document.read()
        path.unlink()

        with pytest.raises(TransientReadError):
            document.read()
        assert document.content == b"first"


class TestSnapshot:
    """Test Snapshot dataclass."""

    def test_immutable(self) -> None:
        """Should not allow mutation."""
        snapshot = Snapshot(version=1, html="<p>a</p>")

        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.version = 2  # type: ignore[misc]

    def test_text(self) -> None:
        """Should expose the visible text of its HTML."""
        snapshot = Snapshot(version=1, html="<p>Hello <b>there</b></p>")

        assert snapshot.text == "Hello there"

    def test_to_message(self) -> None:
        """Should serialize as an update message."""
        snapshot = Snapshot(version=3, html="<p>x</p>")

        assert snapshot.to_message() == {"type": "update", "version": 3, "html": "<p>x</p>"}

    def test_to_message_carries_instance(self) -> None:
        """Should name the producing server when it is known."""
        snapshot = Snapshot(version=3, html="<p>x</p>", instance="abc")

        assert snapshot.to_message()["instance"] == "abc"

    def test_empty_snapshot(self) -> None:
        """Should start from version zero with no content."""
        assert EMPTY_SNAPSHOT.version == 0
        assert EMPTY_SNAPSHOT.html == ""

    def test_equality_by_value(self) -> None:
        """Should compare by version and html."""
        assert Snapshot(1, "a") == Snapshot(1, "a")
        assert Snapshot(1, "a") != Snapshot(2, "a")
        assert Snapshot(1, "a", instance="x") == Snapshot(1, "a", instance="y")


class TestSearchState:
    """Test SearchState dataclass."""

    def test_default_is_empty(self) -> None:
        """Should start with no query and no cursor."""
        state = SearchState()

        assert state.query == ""
        assert state.matches == []
        assert state.cursor is None
        assert state.current is None

    def test_current(self) -> None:
        """Should return the match under the cursor."""
        state = SearchState(query="a", matches=[Match(0, 1), Match(4, 5)], cursor=1)

        assert state.current == Match(4, 5)

    def test_match_as_dict(self) -> None:
        """Should serialize offsets."""
        assert Match(2, 4).as_dict() == {"start": 2, "end": 4}
