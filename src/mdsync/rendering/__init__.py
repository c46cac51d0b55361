"""Rendering of Markdown documents to HTML."""

from mdsync.rendering.renderer import render, rewrite_url

__all__ = ["render", "rewrite_url"]
