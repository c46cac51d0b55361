"""Incremental in-document search over the displayed text."""

from __future__ import annotations

import html
from typing import List

from mdsync.models import Match, SearchState

MATCH_CLASS = "mdsync-match"
CURRENT_CLASS = "mdsync-current"


def _fold(value: str) -> str:
    """Lower-case ``value`` one character at a time, keeping its length.

    Characters whose lower-case form is longer (e.g. ``İ``) are left alone so
    that offsets into the folded string are offsets into the original.
    """
    return "".join(ch.lower() if len(ch.lower()) == 1 else ch for ch in value)


def find_matches(text: str, query: str) -> List[Match]:
    """All non-overlapping, case-insensitive occurrences of ``query``, left to right."""
    if not query:
        return []
    haystack = _fold(text)
    needle = _fold(query)
    matches: List[Match] = []
    start = haystack.find(needle)
    while start != -1:
        end = start + len(needle)
        matches.append(Match(start, end))
        start = haystack.find(needle, end)
    return matches


class SearchEngine:
    """Holds the search state for one viewer."""

    def __init__(self, text: str = "") -> None:
        self.text = text
        self.state = SearchState()

    @property
    def query(self) -> str:
        return self.state.query

    @property
    def matches(self) -> List[Match]:
        return list(self.state.matches)

    @property
    def cursor(self) -> int | None:
        return self.state.cursor

    @property
    def current(self) -> Match | None:
        return self.state.current

    @property
    def active(self) -> bool:
        return bool(self.state.query)

    def set_query(self, query: str) -> Match | None:
        if not query:
            self.state = SearchState()
            return None
        matches = find_matches(self.text, query)
        self.state = SearchState(query=query, matches=matches, cursor=0 if matches else None)
        return self.state.current

    def next(self) -> Match | None:
        if self.state.cursor is not None:
            self.state.cursor = (self.state.cursor + 1) % len(self.state.matches)
        return self.state.current

    def previous(self) -> Match | None:
        if self.state.cursor is not None:
            self.state.cursor = (self.state.cursor - 1) % len(self.state.matches)
        return self.state.current

    def reindex(self, text: str) -> None:
        """Swap in new text, re-running an active query.

        The cursor stays on the previously current match when a match still
        starts at the same offset, otherwise it goes back to the first match.
        """
        self.text = text
        if not self.active:
            return
        previous = self.state.current
        self.set_query(self.state.query)
        if previous is None:
            return
        for index, match in enumerate(self.state.matches):
            if match.start == previous.start:
                self.state.cursor = index
                break

    def highlight(self) -> str:
        """Escaped text with every match wrapped in ``<mark>``."""
        if not self.state.matches:
            return html.escape(self.text)
        parts: List[str] = []
        position = 0
        for index, match in enumerate(self.state.matches):
            parts.append(html.escape(self.text[position : match.start]))
            classes = MATCH_CLASS
            if index == self.state.cursor:
                classes += f" {CURRENT_CLASS}"
            parts.append(f'<mark class="{classes}">{html.escape(self.text[match.start : match.end])}</mark>')
            position = match.end
        parts.append(html.escape(self.text[position:]))
        return "".join(parts)
