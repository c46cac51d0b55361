"""FastAPI application serving the live MDSync viewer."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, HTMLResponse
from pydantic import BaseModel

from mdsync import __version__
from mdsync.config import AppConfig
from mdsync.errors import ChannelError, MDSyncError
from mdsync.models import Document
from mdsync.rendering import render
from mdsync.rendering.renderer import MARKDOWN_SUFFIXES
from mdsync.session import ClientSession, PollChannel, SessionCoordinator, WebSocketChannel
from mdsync.session.channels import noop_message
from mdsync.session.coordinator import Renderer
from mdsync.utils.files import resolve_within
from mdsync.viewer.search import SearchEngine
from mdsync.watch import Watcher
from mdsync.web.frontend import render_page, router as frontend_router

LOGGER = logging.getLogger(__name__)

# WebSocket close code for "policy violation"
WS_POLICY_VIOLATION = 1008


class SearchPayload(BaseModel):
    query: str


def _resolve_linked(base_dir: Path, path: str) -> Path:
    try:
        return resolve_within(base_dir, path)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid path: {exc}") from exc


def _handle_client_message(
    coordinator: SessionCoordinator, session: ClientSession, raw: str
) -> None:
    session.channel.heartbeat()
    try:
        message = json.loads(raw)
    except ValueError:
        LOGGER.debug("Ignoring malformed message from %s", session.id[:8])
        return
    if not isinstance(message, dict):
        return
    if message.get("type") == "ack":
        try:
            coordinator.acknowledge(session, int(message.get("version", 0)))
        except (TypeError, ValueError):
            LOGGER.debug("Ignoring ack without a valid version from %s", session.id[:8])


async def _pump_changes(watcher: Watcher, coordinator: SessionCoordinator) -> None:
    # Not awaited, so a signal seen mid-render marks a render as owed
    async for _ in watcher.changes():
        coordinator.request_render()


def create_app(
    config: AppConfig,
    *,
    renderer: Renderer = render,
    watch: bool = True,
) -> FastAPI:
    """Build the viewer application for one document.

    With ``watch`` disabled no filesystem observer is started, re-renders then
    only happen through ``app.state.coordinator.on_file_changed()``.
    """
    document = Document(config.document_path)
    coordinator = SessionCoordinator(document, renderer, send_timeout=config.send_timeout)

    app = FastAPI(title="MDSync", version=__version__)
    app.state.config = config
    app.state.coordinator = coordinator
    app.state.watcher = None
    app.state.tasks = []
    app.include_router(frontend_router)

    @app.on_event("startup")
    async def startup_event() -> None:
        tasks: list[asyncio.Task] = app.state.tasks
        watcher = None
        if watch:
            # The watcher takes its baseline and starts observing before the
            # first read, so no edit can fall between the two.
            watcher = Watcher(document.path, debounce=config.debounce)
            watcher.start()
            app.state.watcher = watcher
        await coordinator.initialize()
        if watcher is not None:
            tasks.append(asyncio.create_task(_pump_changes(watcher, coordinator)))
        tasks.append(asyncio.create_task(coordinator.run_liveness(config.ping_interval)))
        LOGGER.info("Serving %s in %s mode", document.path, config.mode)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        for task in app.state.tasks:
            task.cancel()
        for task in app.state.tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        app.state.tasks = []
        if app.state.watcher is not None:
            app.state.watcher.stop()
            app.state.watcher = None
        await coordinator.close()

    @app.get("/snapshot")
    async def get_snapshot() -> dict[str, Any]:
        snapshot = coordinator.snapshot
        return {"version": snapshot.version, "html": snapshot.html}

    @app.websocket("/ws")
    async def updates(websocket: WebSocket) -> None:
        if config.mode != "push":
            await websocket.close(code=WS_POLICY_VIOLATION)
            return
        await websocket.accept()
        channel = WebSocketChannel(websocket, timeout=config.stale_after)
        try:
            session = await coordinator.connect(channel)
        except ChannelError as exc:
            LOGGER.info("Client dropped during first delivery: %s", exc)
            return
        try:
            while not channel.closed:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    LOGGER.debug("Ignoring binary frame from %s", session.id[:8])
                    continue
                _handle_client_message(coordinator, session, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await coordinator.disconnect(session)

    @app.get("/poll")
    async def poll(session: str | None = None, version: int | None = None) -> dict[str, Any]:
        if config.mode != "poll":
            raise HTTPException(status_code=404, detail="Poll mode is not enabled")
        client = coordinator.get_session(session)
        if client is None:
            client = await coordinator.connect(PollChannel(timeout=config.stale_after))
        if version is not None:
            coordinator.acknowledge(client, version)
        snapshot = await coordinator.poll(client, version)
        if snapshot is None:
            body = noop_message(coordinator.snapshot.version, coordinator.instance)
        else:
            body = snapshot.to_message()
        body["session"] = client.id
        return body

    @app.post("/search")
    async def search_document(payload: SearchPayload) -> dict[str, Any]:
        if not payload.query.strip():
            raise HTTPException(status_code=400, detail="Empty query")
        snapshot = coordinator.snapshot
        engine = SearchEngine(snapshot.text)
        engine.set_query(payload.query)
        return {
            "version": snapshot.version,
            "query": payload.query,
            "total": len(engine.matches),
            "matches": [match.as_dict() for match in engine.matches],
        }

    @app.get("/md/{path:path}", response_class=HTMLResponse)
    async def linked_markdown(path: str) -> HTMLResponse:
        target = _resolve_linked(document.path.parent, path)
        if target.suffix.lower() not in MARKDOWN_SUFFIXES:
            raise HTTPException(status_code=404, detail="Not a Markdown document")
        if not target.is_file():
            raise HTTPException(status_code=404, detail=f"File not found: {path}")
        try:
            text = await asyncio.to_thread(Document(target).read)
            body = await asyncio.to_thread(renderer, text)
        except MDSyncError as exc:
            LOGGER.warning("Unable to render %s: %s", target, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        page = render_page(body, title=target.name, settings={"live": False})
        return HTMLResponse(content=page)

    @app.get("/files/{path:path}")
    async def linked_file(path: str) -> FileResponse:
        target = _resolve_linked(document.path.parent, path)
        if not target.is_file():
            raise HTTPException(status_code=404, detail=f"File not found: {path}")
        return FileResponse(target, headers={"Cache-Control": "public, max-age=3600"})

    return app
