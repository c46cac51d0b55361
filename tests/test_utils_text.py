"""Tests for text utility functions."""

from __future__ import annotations

from mdsync.utils.text import html_to_text


class TestHtmlToText:
    """Test html_to_text function."""

    def test_empty(self) -> None:
        """Should return an empty string for empty HTML."""
        assert html_to_text("") == ""

    def test_strips_tags(self) -> None:
        """Should keep only text nodes in order."""
        assert html_to_text("<h1>Title</h1>\n<p>Some <em>body</em> text</p>") == "Title\nSome body text"

    def test_decodes_entities(self) -> None:
        """Should decode HTML entities."""
        assert html_to_text("<p>a &amp; b &lt;c&gt;</p>") == "a & b <c>"

    def test_drops_script_and_style(self) -> None:
        """Should ignore script and style contents."""
        html = "<style>p {}</style><p>shown</p><script>var hidden = 1;</script>"

        assert html_to_text(html) == "shown"

    def test_plain_text_passthrough(self) -> None:
        """Should return plain text unchanged."""
        assert html_to_text("just text") == "just text"
