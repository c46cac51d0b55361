"""MDSync - live Markdown viewer with in-document search."""

__version__ = "0.1.0"
