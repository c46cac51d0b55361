"""HTML shell for the MDSync viewer."""

from __future__ import annotations

import html
import json
import re
from importlib.resources import files
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

router = APIRouter()

_MARKER = re.compile(r"\{\{ (title|settings|content) \}\}")


def _load_template() -> str:
    template = files("mdsync.web").joinpath("templates", "index.html")
    return template.read_text(encoding="utf-8")


def render_page(content: str, *, title: str, settings: dict[str, Any]) -> str:
    """Fill the shell template with rendered ``content`` and client ``settings``."""
    # "</" is escaped so the JSON cannot close the surrounding <script> tag
    settings_json = json.dumps(settings).replace("</", "<\\/")
    values = {"title": html.escape(title), "settings": settings_json, "content": content}
    # One pass, so inserted text is never scanned for markers again
    return _MARKER.sub(lambda match: values[match.group(1)], _load_template())


@router.get("/", response_class=HTMLResponse)
async def index(request: Request) -> HTMLResponse:
    config = request.app.state.config
    coordinator = request.app.state.coordinator
    snapshot = coordinator.snapshot
    settings = {
        "live": True,
        "mode": config.mode,
        "pollInterval": config.poll_interval,
        "version": snapshot.version,
        "instance": coordinator.instance,
    }
    page = render_page(snapshot.html, title=config.document_path.name, settings=settings)
    return HTMLResponse(content=page)
