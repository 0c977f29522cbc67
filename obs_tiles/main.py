"""
main.py — obs-tiles dev host entrypoint.

Bootstraps:
  1. Config loading
  2. Property store (YAML file)
  3. Connection manager + plugin, startup connection check
  4. FastAPI server (uvicorn)

CLI:
  python run.py start          start the dev host
  python run.py init-config    create a default config.yaml
  python run.py check          test OBS connectivity and list scenes/profiles
  python run.py list-actions   print the tile actions and their choices
  python run.py panels         print stored panel properties
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from obs_tiles import __version__
from obs_tiles.config import Settings, reload_settings
from obs_tiles.core import (
    AuthCredentials,
    ConnectionManager,
    OBSAuthError,
    OBSClient,
    OBSConnectionError,
)
from obs_tiles.plugin import ObsPlugin
from obs_tiles.properties import PropertyStore, YamlPropertyFile
from obs_tiles.api import create_app, set_plugin

console = Console()
app = typer.Typer(name="obs-tiles", help="OBS control tiles — dev host")


def setup_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def build_plugin(settings: Settings) -> ObsPlugin:
    """Property store, connection manager and plugin, wired from settings."""
    store = PropertyStore.load(YamlPropertyFile(settings.plugin.properties_file))
    manager = ConnectionManager(
        connect_timeout=settings.obs.connect_timeout,
        retry_policy=settings.obs.retry_policy(),
    )
    return ObsPlugin(manager, store, default_auth=settings.obs.credentials())


async def build_and_run(config_path: Optional[Path] = None) -> None:
    settings = reload_settings(config_path)
    setup_logging(settings.api.log_level)
    log = logging.getLogger("obs_tiles")

    console.rule(f"[bold blue]obs-tiles v{__version__}[/bold blue]")

    # 1. Properties, connection manager + plugin
    plugin = build_plugin(settings)
    store = plugin.store

    # 2. Startup connection check (non-fatal)
    state = await plugin.on_properties()
    stored = store.get_auth()
    if stored is None:
        console.print("[yellow]⚠ No saved OBS credentials — connect from a panel or POST /connect[/yellow]")

    # 3. Wire plugin into API
    set_plugin(plugin)
    fast_app = create_app()

    # 4. Startup summary
    target = stored.address if stored else settings.obs.credentials().address
    console.print(f"\n[green]✓ OBS[/green]       {target} ({state.value})")
    console.print(f"[green]✓ Panels[/green]    {len(store.panel_ids())} stored in {settings.plugin.properties_file}")
    console.print(f"[green]✓ API[/green]       http://{settings.api.host}:{settings.api.port}")
    console.print(f"[green]✓ WS[/green]        ws://{settings.api.host}:{settings.api.port}/ws/inspector/{{panel_id}}")
    if settings.api.api_key:
        console.print("[green]✓ Auth[/green]      API key set — Bearer token required")
    else:
        console.print("[yellow]⚠ Auth[/yellow]      No API key set — open access (fine for localhost)")
    console.print(f"[green]✓ Docs[/green]      http://{settings.api.host}:{settings.api.port}/docs\n")

    # 5. uvicorn
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
        loop.create_task(plugin.shutdown())

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
    obs_host: Optional[str] = typer.Option(None, "--obs-host", help="Default OBS WebSocket host"),
    obs_port: Optional[int] = typer.Option(None, "--obs-port", help="Default OBS WebSocket port"),
    properties: Optional[Path] = typer.Option(None, "--properties", help="Properties file"),
):
    """Start the obs-tiles dev host."""
    import os
    if host:
        os.environ["API_HOST"] = host
    if port:
        os.environ["API_PORT"] = str(port)
    if obs_host:
        os.environ["OBS_HOST"] = obs_host
    if obs_port:
        os.environ["OBS_PORT"] = str(obs_port)
    if properties:
        os.environ["PLUGIN_PROPERTIES_FILE"] = str(properties)
    asyncio.run(build_and_run(config))


@app.command("init-config")
def init_config(
    output: Path = typer.Option(Path("config.yaml"), "--output", "-o"),
):
    """Generate a default config.yaml."""
    s = Settings.load()
    s.to_yaml(output)
    console.print(f"[green]✓[/green] Config written to [bold]{output}[/bold]")


@app.command("list-actions")
def list_actions_cmd():
    """Print the tile actions and the property each one edits."""
    from obs_tiles.actions import ACTION_BINDINGS
    table = Table(title="Tile Actions", show_header=True)
    table.add_column("Action", style="cyan")
    table.add_column("Property", style="green")
    table.add_column("Choices")
    for action, binding in ACTION_BINDINGS.items():
        if binding.category is not None:
            choices = f"[dim]OBS {binding.category.value}[/dim]"
        else:
            choices = ", ".join(o.value for o in binding.static_options)
        table.add_row(action.value, binding.key, choices)
    console.print(table)


@app.command("panels")
def panels_cmd(
    properties: Path = typer.Option(Path("properties.yaml"), "--properties", "-f"),
):
    """Print stored panel properties."""
    store = PropertyStore.load(YamlPropertyFile(properties))
    auth = store.get_auth()
    console.print(f"OBS credentials: {auth.address if auth else '[dim]none saved[/dim]'}")
    table = Table(title=f"Panels ({properties})", show_header=True)
    table.add_column("Panel", style="cyan")
    table.add_column("Properties")
    for panel_id in store.panel_ids():
        props = store.get_properties(panel_id)
        table.add_row(panel_id, ", ".join(f"{k}={v}" for k, v in props.items()) or "-")
    console.print(table)


@app.command("check")
def check_obs(
    host: str = typer.Option("localhost", "--host"),
    port: int = typer.Option(4455, "--port"),
    password: str = typer.Option("", "--password"),
    timeout: float = typer.Option(5.0, "--timeout"),
):
    """Test OBS WebSocket connectivity."""
    async def _check():
        auth = AuthCredentials(host=host, port=port, password=password)
        client = OBSClient.from_credentials(auth)
        try:
            await asyncio.wait_for(client.connect(), timeout=timeout)
        except OBSAuthError as e:
            console.print(f"[red]✗ OBS rejected the password ({e})[/red]")
            sys.exit(2)
        except (OBSConnectionError, asyncio.TimeoutError) as e:
            console.print(f"[red]✗ Could not connect to OBS at {auth.address} ({str(e) or 'timed out'})[/red]")
            sys.exit(1)

        version = await client.get_version()
        console.print("[green]✓ Connected to OBS[/green]")
        console.print(f"  OBS version:       {version.get('obs_version')}")
        console.print(f"  WebSocket version: {version.get('obs_web_socket_version')}")
        console.print(f"  Platform:          {version.get('platform')}")
        scenes = await client.get_scenes()
        console.print(f"  Scenes ({len(scenes)}): {', '.join(s.label for s in scenes)}")
        profiles = await client.get_profiles()
        console.print(f"  Profiles ({len(profiles)}): {', '.join(p.label for p in profiles)}")
        await client.disconnect()
    asyncio.run(_check())


if __name__ == "__main__":
    app()
