"""
main.py — ingest-switcher application entrypoint.

CLI:
  python run.py start              start the API server (connects to OBS once)
  python run.py init-config        create a default config.yaml
  python run.py list-links         print configured link presets
  python run.py check              test OBS connectivity and list switchable sources
  python run.py switch LINK_ID     one-shot: point a source at a link and exit
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ingest_switcher import __version__
from ingest_switcher.api import create_app
from ingest_switcher.config import Settings, reload_settings
from ingest_switcher.controller import SwitcherController
from ingest_switcher.core import ConnectError, FetchError, SwitchError

console = Console()
app = typer.Typer(name="ingest-switcher", help="Switch OBS media inputs between preset ingest links")


def setup_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


async def build_and_run(config_path: Optional[Path] = None) -> None:
    settings = reload_settings(config_path)
    setup_logging(settings.api.log_level)
    log = logging.getLogger("ingest_switcher")

    console.rule(f"[bold blue]ingest-switcher v{__version__}[/bold blue]")

    controller = SwitcherController.from_settings(settings)

    # Single attempt; a failure leaves the server up so /connect can retry
    obs_line = "[yellow]not connected[/yellow] (POST /connect)"
    if settings.sources.auto_connect:
        try:
            await controller.connect()
            obs_line = f"connected, {len(controller.registry)} switchable sources"
        except ConnectError as e:
            obs_line = f"[red]{e.reason.value}[/red] {e.message}"

    fast_app = create_app(controller, settings)

    console.print(f"\n[green]✓ OBS[/green]       {settings.obs.host}:{settings.obs.port} ({obs_line})")
    console.print(f"[green]✓ Links[/green]     {len(controller.links)} presets")
    console.print(f"[green]✓ API[/green]       http://{settings.api.host}:{settings.api.port}")
    console.print(f"[green]✓ WS[/green]        ws://{settings.api.host}:{settings.api.port}/ws")
    if settings.api.api_key:
        console.print("[green]✓ Auth[/green]      API key set — Bearer token required")
    else:
        console.print("[yellow]⚠ Auth[/yellow]      No API key set — open access (fine for LAN, not internet)")
    console.print(f"[green]✓ Docs[/green]      http://{settings.api.host}:{settings.api.port}/docs\n")

    config = uvicorn.Config(
        fast_app,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.api.log_level,
        loop="asyncio",
    )
    server = uvicorn.Server(config)

    loop = asyncio.get_running_loop()

    def shutdown():
        log.info("Shutdown signal received.")
        server.should_exit = True

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown)
        except NotImplementedError:
            pass  # Windows

    await server.serve()


# ──────────────────────────────────────────────────────────────────────────────
# CLI commands
# ──────────────────────────────────────────────────────────────────────────────

@app.command()
def start(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    host: Optional[str] = typer.Option(None, "--host", help="API bind host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="API port"),
    obs_host: Optional[str] = typer.Option(None, "--obs-host", help="OBS WebSocket host"),
    obs_port: Optional[int] = typer.Option(None, "--obs-port", help="OBS WebSocket port"),
    obs_password: Optional[str] = typer.Option(None, "--obs-password", help="OBS WebSocket password"),
):
    """Start the ingest-switcher API server."""
    if host:
        os.environ["API_HOST"] = host
    if port:
        os.environ["API_PORT"] = str(port)
    if obs_host:
        os.environ["OBS_HOST"] = obs_host
    if obs_port:
        os.environ["OBS_PORT"] = str(obs_port)
    if obs_password:
        os.environ["OBS_PASSWORD"] = obs_password
    asyncio.run(build_and_run(config))


@app.command("init-config")
def init_config(
    output: Path = typer.Option(Path("config.yaml"), "--output", "-o"),
):
    """Generate a default config.yaml."""
    s = Settings.load()
    if not s.links:
        s.links = [{"name": "Example stream", "url": "rtmp://localhost/live/stream"}]
    s.to_yaml(output)
    console.print(f"[green]✓[/green] Config written to [bold]{output}[/bold]")


@app.command("list-links")
def list_links_cmd(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Print the configured link presets."""
    from ingest_switcher.links import LinkStore
    from ingest_switcher.switching import is_network_url

    settings = reload_settings(config)
    store = LinkStore.from_list(settings.links)
    table = Table(title="Link Presets", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("URL")
    table.add_column("Type", style="yellow")
    for link in store:
        table.add_row(link.id, link.name, link.url, "network" if is_network_url(link.url) else "local file")
    console.print(table)


@app.command("check")
def check_obs(
    host: str = typer.Option("localhost", "--host"),
    port: int = typer.Option(4455, "--port"),
    password: str = typer.Option("", "--password"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Test OBS WebSocket connectivity and list switchable sources."""
    from ingest_switcher.core import ConnectionConfig

    async def _check():
        settings = reload_settings(config)
        controller = SwitcherController.from_settings(settings)
        try:
            await controller.connect(ConnectionConfig(host, port, password, settings.obs.timeout))
        except ConnectError as e:
            console.print(f"[red]✗ Could not connect to OBS at {host}:{port} ({e.reason.value}): {e.message}[/red]")
            sys.exit(1)
        version = await controller.connection.require_client().get_version()
        console.print("[green]✓ Connected to OBS[/green]")
        console.print(f"  OBS version:       {version.get('obs_version')}")
        console.print(f"  WebSocket version: {version.get('obs_web_socket_version')}")
        console.print(f"  Platform:          {version.get('platform')}")

        table = Table(title="Switchable Sources", show_header=True)
        table.add_column("Name", style="cyan")
        table.add_column("Kind", style="green")
        table.add_column("Current target")
        for source in controller.registry.sources:
            try:
                target = await controller.tracker.reconcile(source.name)
            except FetchError as e:
                target = f"[red]{e}[/red]"
            table.add_row(source.name, source.kind, target if target is not None else "[dim](gone)[/dim]")
        console.print(table)
        await controller.disconnect()

    asyncio.run(_check())


@app.command("switch")
def switch_cmd(
    link_id: str = typer.Argument(..., help="Link preset id (see list-links)"),
    source: Optional[str] = typer.Option(None, "--source", "-s", help="OBS input name (default: first switchable)"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Point an OBS source at a link preset, then exit."""

    async def _switch():
        settings = reload_settings(config)
        setup_logging(settings.api.log_level)
        controller = SwitcherController.from_settings(settings)
        try:
            await controller.connect()
            if source:
                if source not in controller.registry:
                    await controller.registry.refresh()
                if source not in controller.registry:
                    console.print(f"[red]✗ Source '{source}' not found or not a supported kind[/red]")
                    sys.exit(1)
                controller.registry.select(source)
            result = await controller.switch_to_link(link_id)
            await controller.tracker.drain()
        except (ConnectError, FetchError, SwitchError, KeyError) as e:
            console.print(f"[red]✗ {type(e).__name__}: {e}[/red]")
            sys.exit(1)
        finally:
            await controller.disconnect()
        console.print(f"[green]✓[/green] '{result['source']}' → {result['url']}")

    asyncio.run(_switch())


if __name__ == "__main__":
    app()
