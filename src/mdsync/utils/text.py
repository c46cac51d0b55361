"""Text helpers for rendered HTML."""

from __future__ import annotations

from bs4 import BeautifulSoup


def html_to_text(html: str) -> str:
    """Return the visible text of an HTML fragment.

    Text nodes are concatenated in document order, the same way the browser
    exposes ``textContent``, so offsets line up with the client's index.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for node in soup(["script", "style"]):
        node.decompose()
    return soup.get_text()
