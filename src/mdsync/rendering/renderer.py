"""Markdown to HTML conversion with link rewriting."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath

import markdown
from bs4 import BeautifulSoup

from mdsync.errors import RenderError

LOGGER = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ("extra", "toc", "sane_lists")
MARKDOWN_SUFFIXES = {".md", ".markdown"}

_PASSTHROUGH_PREFIXES = ("http://", "https://", "//", "/", "#", "mailto:", "data:")


def rewrite_url(url: str) -> str:
    """Map a document-relative URL onto the server's linked-file routes."""
    if not url or url.startswith(_PASSTHROUGH_PREFIXES):
        return url

    path, sep, fragment = url.partition("#")
    if PurePosixPath(path).suffix.lower() in MARKDOWN_SUFFIXES:
        return f"/md/{path}{sep}{fragment}"
    return f"/files/{url}"


def _rewrite_links(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    touched = False
    for tag, attr in (("a", "href"), ("img", "src")):
        for node in soup.find_all(tag):
            original = node.get(attr)
            if not original:
                continue
            rewritten = rewrite_url(original)
            if rewritten != original:
                node[attr] = rewritten
                touched = True
    return str(soup) if touched else html


def render(text: str) -> str:
    """Render Markdown ``text`` to an HTML fragment.

    Pure and deterministic. A fresh converter is built per call because
    ``markdown.Markdown`` instances carry state between conversions.
    """
    try:
        converter = markdown.Markdown(extensions=list(MARKDOWN_EXTENSIONS))
        html = converter.convert(text)
        return _rewrite_links(html)
    except Exception as exc:
        LOGGER.debug("Renderer failed", exc_info=True)
        raise RenderError(f"Unable to render document: {exc}") from exc
