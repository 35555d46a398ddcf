"""Command-line interface for taskbridge."""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from taskbridge import __version__
from taskbridge.core.config import AppConfig, load_config
from taskbridge.core.errors import TaskBridgeError
from taskbridge.core.models import SyncResult
from taskbridge.core.services import SERVICES, build_engine, enabled_services, poll_interval
from taskbridge.utils.logging import setup_logging

# Create Typer app
app = typer.Typer(
    name="taskbridge",
    help="Mirror Google Tasks, Alexa reminders/shopping and Microsoft To-Do into Todoist",
    add_completion=False,
)

# Create console for rich output
console = Console()

logger = logging.getLogger(__name__)


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
        exists=True,
        dir_okay=False,
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    ),
) -> None:
    """taskbridge - keep Todoist in step with your other task apps."""
    ctx.ensure_object(dict)
    cfg = load_config(config_file)
    ctx.obj["config"] = cfg
    setup_logging(cfg, level_name=log_level)


@app.command()
def version() -> None:
    """Show version information."""
    import platform

    table = Table(title="taskbridge Version Information")
    table.add_column("Property", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    table.add_row("Version", __version__)
    table.add_row("Python", platform.python_version())
    table.add_row("Platform", platform.platform())

    console.print(table)


@app.command()
def config(
    ctx: typer.Context,
    show: bool = typer.Option(
        False,
        "--show",
        "-s",
        help="Show current configuration",
    ),
    init: bool = typer.Option(
        False,
        "--init",
        "-i",
        help="Create a default configuration file",
    ),
) -> None:
    """Manage configuration."""
    cfg: AppConfig = ctx.obj["config"]

    if init:
        config_path = cfg.general.config_file or cfg.default_config_path

        if config_path.exists():
            console.print(f"[yellow]Config file already exists:[/yellow] {config_path}")
            overwrite = typer.confirm("Overwrite existing config?")
            if not overwrite:
                console.print("[dim]Config creation cancelled[/dim]")
                raise typer.Exit(0)

        cfg.save_to_file(config_path)
        console.print(f"[green]✓ Config file created:[/green] {config_path}")
        console.print("[yellow]Edit this file to enable sources and map lists to Todoist projects.[/yellow]")
        return

    if show:
        table = Table(title="taskbridge Configuration")
        table.add_column("Setting", style="cyan", no_wrap=True)
        table.add_column("Value", style="green")

        table.add_row("Data Directory", str(cfg.general.data_dir))
        table.add_row("Config File", str(cfg.general.config_file or "Not set"))
        table.add_row("Database", str(cfg.db_path))
        table.add_row("Log Level", cfg.general.log_level)
        table.add_row("Todoist Token", "✓ configured" if cfg.todoist.get_api_token() else "✗ missing")

        sections = (
            ("Google Tasks", cfg.google.enabled, cfg.google.lists, "google"),
            ("Alexa Reminders", cfg.alexa.enabled, cfg.alexa.lists, "alexa_reminders"),
            ("Microsoft To-Do", cfg.microsoft.enabled, cfg.microsoft.lists, "microsoft"),
        )
        for title, enabled, mappings, service in sections:
            table.add_row("", "")
            table.add_row(f"[bold]{title}[/bold]", "")
            table.add_row("Enabled", "✓" if enabled else "✗")
            table.add_row("Poll Interval", f"{poll_interval(cfg, service)} min")
            for mapping in mappings:
                tags = f" [dim]({', '.join(mapping.tags)})[/dim]" if mapping.tags else ""
                table.add_row(f"  {mapping.scope_label}", f"→ {mapping.todoist_project_id}{tags}")

        shopping = cfg.alexa.sync_shopping_list
        table.add_row("", "")
        table.add_row("[bold]Alexa Shopping List[/bold]", "")
        table.add_row("Enabled", "✓" if shopping.enabled else "✗")
        table.add_row("Project", shopping.todoist_project_id or "inbox")
        table.add_row("", "")
        table.add_row("Conflict Policy", cfg.microsoft.conflict_policy)

        console.print(table)
    else:
        console.print(f"[yellow]Configuration file:[/yellow] {cfg.general.config_file or 'Not set'}")
        console.print(f"[yellow]Data directory:[/yellow] {cfg.general.data_dir}")
        console.print("\n[dim]Use --show to display full configuration[/dim]")
        console.print("[dim]Use --init to create a default config file[/dim]")


@app.command("db-path")
def db_path(ctx: typer.Context) -> None:
    """Show the snapshot database location."""
    cfg: AppConfig = ctx.obj["config"]
    path = cfg.db_path
    status = "✓ exists" if path.exists() else "✗ not created yet"
    console.print(f"{path} [dim]({status})[/dim]")


def _print_result(service: str, result: SyncResult) -> None:
    table = Table(title=f"{service} sync")
    table.add_column("Counter", style="cyan", no_wrap=True)
    table.add_column("Value", style="green", justify="right")
    for key, value in result.to_dict().items():
        if key in ("success", "errors"):
            continue
        table.add_row(key, str(value))
    console.print(table)

    if result.errors:
        console.print(f"[yellow]{len(result.errors)} error(s):[/yellow]")
        for error in result.errors:
            console.print(f"  [red]•[/red] {error}")
    if not result.success:
        console.print(f"[red]✗ {service} sync failed[/red]")


@app.command()
def sync(
    ctx: typer.Context,
    service: Annotated[
        Optional[str],
        typer.Argument(help=f"Source to sync ({', '.join(SERVICES)}); all enabled sources if omitted"),
    ] = None,
) -> None:
    """Run one sync pass now."""
    cfg: AppConfig = ctx.obj["config"]

    if service is not None and service not in SERVICES:
        console.print(f"[red]Unknown service: {service}[/red]")
        console.print(f"[dim]Expected one of: {', '.join(SERVICES)}[/dim]")
        raise typer.Exit(1)

    services = [service] if service else enabled_services(cfg)
    if not services:
        console.print("[yellow]No sources enabled[/yellow]")
        raise typer.Exit(0)

    async def run_sync() -> bool:
        ok = True
        for name in services:
            engine = build_engine(name, cfg)
            try:
                await engine.initialize()
                result = await engine.sync()
            finally:
                await engine.close()
            _print_result(name, result)
            ok = ok and result.success
        return ok

    try:
        ok = asyncio.run(run_sync())
    except TaskBridgeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not ok:
        raise typer.Exit(1)


@app.command()
def status(ctx: typer.Context) -> None:
    """Show per-source snapshot counts and last sync time."""
    cfg: AppConfig = ctx.obj["config"]
    enabled = set(enabled_services(cfg))

    from taskbridge.core.engine import ENGINE_KINDS
    from taskbridge.utils.db import SnapshotStore, SyncStateDB

    async def collect() -> list[tuple[str, dict, str | None]]:
        rows = []
        state = SyncStateDB(cfg.db_path)
        await state.initialize()
        for name in SERVICES:
            store = SnapshotStore(cfg.db_path, ENGINE_KINDS[name])
            await store.initialize()
            rows.append((name, await store.get_stats(), await state.get_last_sync_at(name)))
        return rows

    table = Table(title="taskbridge Status")
    table.add_column("Source", style="cyan", no_wrap=True)
    table.add_column("Enabled")
    table.add_column("Snapshots", justify="right")
    table.add_column("Linked", justify="right")
    table.add_column("Last Sync", style="green")

    for name, stats, last_sync in asyncio.run(collect()):
        table.add_row(
            name,
            "✓" if name in enabled else "✗",
            str(stats["total"]),
            str(stats["linked"]),
            last_sync or "never",
        )

    console.print(table)


@app.command()
def reset(
    ctx: typer.Context,
    service: Annotated[str, typer.Argument(help=f"Source to reset ({', '.join(SERVICES)})")],
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt",
    ),
) -> None:
    """Reset the sync state of a source (clear all snapshots)."""
    cfg: AppConfig = ctx.obj["config"]

    if service not in SERVICES:
        console.print(f"[red]Unknown service: {service}[/red]")
        raise typer.Exit(1)

    if not yes:
        console.print(f"[yellow]This will clear all {service} sync snapshots from the database.[/yellow]")
        console.print("[dim]Your tasks will NOT be deleted, only the sync tracking.[/dim]\n")
        confirmed = typer.confirm("Are you sure you want to continue?")
        if not confirmed:
            console.print("[dim]Cancelled[/dim]")
            raise typer.Exit(0)

    from taskbridge.core.engine import ENGINE_KINDS
    from taskbridge.utils.db import SnapshotStore, SyncStateDB

    async def reset_db():
        store = SnapshotStore(cfg.db_path, ENGINE_KINDS[service])
        state = SyncStateDB(cfg.db_path)
        await store.initialize()
        await state.initialize()
        await store.clear()
        await state.clear(service)
        console.print("[green]✓ Sync state reset[/green]")

    asyncio.run(reset_db())


@app.command("set-token")
def set_token() -> None:
    """Store the Todoist API token securely in system keyring."""
    from taskbridge.utils.credentials import CredentialStore

    token = typer.prompt("Enter Todoist API token", hide_input=True)
    if not token.strip():
        console.print("[red]Token must not be empty[/red]")
        raise typer.Exit(1)

    try:
        CredentialStore().set_todoist_token(token.strip())
        console.print("[green]✓ Todoist token stored securely[/green]")
        console.print("[dim]You can now remove TASKBRIDGE_TODOIST__API_TOKEN from your config/environment[/dim]")
    except Exception as e:
        console.print(f"[red]Failed to store token: {e}[/red]")
        raise typer.Exit(1)


@app.command("delete-token")
def delete_token(
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt",
    ),
) -> None:
    """Delete the Todoist API token from system keyring."""
    from taskbridge.utils.credentials import CredentialStore

    if not yes:
        confirmed = typer.confirm("Delete stored Todoist token?")
        if not confirmed:
            console.print("[dim]Cancelled[/dim]")
            raise typer.Exit(0)

    try:
        if CredentialStore().delete_todoist_token():
            console.print("[green]✓ Todoist token deleted[/green]")
        else:
            console.print("[yellow]No Todoist token stored[/yellow]")
    except Exception as e:
        console.print(f"[red]Failed to delete token: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def run(ctx: typer.Context) -> None:
    """Run the sync daemon (scheduler only, no HTTP API)."""
    from taskbridge.api.scheduler import SchedulerManager

    cfg: AppConfig = ctx.obj["config"]

    async def run_daemon() -> None:
        scheduler = SchedulerManager(cfg)
        stop_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

        await scheduler.start()
        console.print(f"[green]taskbridge running with {len(scheduler.engines)} source(s). Press Ctrl+C to stop.[/green]")
        try:
            await stop_event.wait()
        finally:
            logger.info("Shutdown requested")
            await scheduler.stop()

    try:
        asyncio.run(run_daemon())
    except TaskBridgeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print("[yellow]taskbridge stopped[/yellow]")


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[Optional[str], typer.Option("--host", "-h", help="Host to bind to")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Port to bind to")] = None,
) -> None:
    """Run the sync daemon together with the HTTP health/status API."""
    import uvicorn

    from taskbridge.api.app import create_app

    cfg: AppConfig = ctx.obj["config"]
    host = host or cfg.api.host
    port = port or cfg.api.port

    console.print(Panel.fit(
        f"[bold cyan]taskbridge API Server[/bold cyan]\n\n"
        f"[white]Starting server on {host}:{port}[/white]",
        border_style="cyan"
    ))

    try:
        uvicorn.run(create_app(cfg), host=host, port=port, log_level="info")
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped[/yellow]")


def main_entry() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        logging.exception("Unhandled exception")
        sys.exit(1)


if __name__ == "__main__":
    main_entry()
