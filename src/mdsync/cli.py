"""Command line interface for MDSync."""

from __future__ import annotations

import logging
import socket
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console

from mdsync.config import AppConfig
from mdsync.errors import ConfigError, WatchSetupError
from mdsync.watch import Watcher
from mdsync.web.app import create_app


LOGGER = logging.getLogger(__name__)

console = Console()
app = typer.Typer(help="MDSync - live Markdown viewer")

# Trailing "&" makes webbrowser launch these in the background
BROWSER_COMMANDS: dict[str, str] = {
    "chrome": "google-chrome %s &",
    "chrome-incognito": "google-chrome --incognito %s &",
    "firefox": "firefox %s &",
    "firefox-private": "firefox --private-window %s &",
    "chromium": "chromium %s &",
    "chromium-incognito": "chromium --incognito %s &",
}
BROWSER_CHOICES: tuple[str, ...] = ("default", *BROWSER_COMMANDS)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _find_free_port(host: str) -> int:
    """Find a free port on ``host``."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        s.listen(1)
        port = s.getsockname()[1]
    return port


def _wait_for_server(host: str, port: int, timeout: float = 10.0) -> bool:
    """Wait for the server to become available."""
    start_time = time.time()
    while time.time() - start_time < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _launch_named_browser(url: str, browser: str) -> bool:
    try:
        return webbrowser.get(BROWSER_COMMANDS[browser]).open(url)
    except webbrowser.Error as exc:
        LOGGER.debug("Launching %s failed: %s", browser, exc)
        return False


def _open_browser(url: str, host: str, port: int, browser: str = "default") -> None:
    if not _wait_for_server(host, port):
        return
    opened = False
    if browser != "default":
        opened = _launch_named_browser(url, browser)
        if not opened:
            console.print(f"Failed to open {browser}, falling back to the default browser")
    if not opened:
        try:
            opened = webbrowser.open(url, new=1)
        except webbrowser.Error as exc:
            LOGGER.debug("Browser launch failed: %s", exc)
    if not opened:
        console.print(f"Please open [bold]{url}[/bold] in your browser", soft_wrap=True)


@app.command()
def view(
    file: Path = typer.Argument(..., help="The Markdown file to display"),
    port: int = typer.Option(0, "--port", "-p", help="Port to serve on (random if 0)"),
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    mode: str = typer.Option("push", help="Delivery mode: push (WebSocket) or poll"),
    refresh: Optional[float] = typer.Option(
        None, "--refresh", "-r", help="Poll for updates every SECONDS (implies --mode poll)"
    ),
    debounce: float = typer.Option(AppConfig().debounce, help="Seconds of quiet before re-rendering"),
    browser: str = typer.Option(
        "default", "--browser", "-b", help=f"Browser to open ({', '.join(BROWSER_CHOICES)})"
    ),
    no_browser: bool = typer.Option(False, "--no-browser", help="Do not open a browser"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Serve FILE as HTML and keep the page in sync with the file."""
    _setup_logging(verbose)
    config = AppConfig(file_path=file, mode=mode, host=host, port=port, debounce=debounce)  # type: ignore[arg-type]
    if refresh is not None:
        config.mode = "poll"
        config.poll_interval = refresh

    try:
        config.validate()
        if browser not in BROWSER_CHOICES:
            raise ConfigError(f"Unknown browser '{browser}' (expected one of: {', '.join(BROWSER_CHOICES)})")
        Watcher(config.document_path, debounce=config.debounce).check()
    except (ConfigError, WatchSetupError) as exc:
        console.print(f"[red]Error:[/red] {exc}", soft_wrap=True)
        raise typer.Exit(code=1) from exc

    if not config.port:
        config.port = _find_free_port(config.host)

    url = f"http://{config.host}:{config.port}"
    console.print(f"Serving [bold]{config.document_path}[/bold] at {url} ({config.mode} mode)", soft_wrap=True)
    if not no_browser:
        threading.Thread(
            target=_open_browser, args=(url, config.host, config.port, browser), daemon=True
        ).start()

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        reload=False,
        log_level="debug" if verbose else "warning",
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
