"""CLI commands for scalecron."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from scalecron import __logo__, __version__

app = typer.Typer(
    name="scalecron",
    help=f"{__logo__} scalecron - scheduled on/off scaling for hosted services",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} scalecron v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """scalecron - scheduled on/off scaling for hosted services."""
    pass


# ============================================================================
# Server
# ============================================================================


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default from settings)"),
    port: int = typer.Option(None, "--port", "-p", help="Port (default from settings)"),
):
    """Run the HTTP API and the scheduler."""
    import uvicorn

    from scalecron.api.app import create_app
    from scalecron.config.settings import get_settings
    from scalecron.logs.setup import setup_logging

    settings = get_settings()
    setup_logging(settings.log_level)

    bind_host = host or settings.host
    bind_port = port or settings.port
    store = str(settings.store_path) if settings.store_path else "memory"
    console.print(f"{__logo__} Starting scalecron on {bind_host}:{bind_port} (store: {store})")

    uvicorn.run(
        create_app(settings),
        host=bind_host,
        port=bind_port,
        log_level=settings.log_level.lower(),
    )


# ============================================================================
# Durable schedules
# ============================================================================


@app.command("schedules")
def schedules_list():
    """List schedules persisted in the configured store."""
    from scalecron.config.settings import get_settings
    from scalecron.errors import PersistenceError
    from scalecron.store.base import open_store

    settings = get_settings()
    store = open_store(settings.store_path)
    if store is None:
        console.print("[yellow]No schedule store configured (SCALECRON_STORE_PATH).[/yellow]")
        raise typer.Exit(1)

    try:
        rows = store.list_schedules()
    except PersistenceError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    if not rows:
        console.print("No stored schedules.")
        return

    table = Table(title="Stored Schedules")
    table.add_column("Handle", style="cyan")
    table.add_column("Service")
    table.add_column("Type")
    table.add_column("Action")
    table.add_column("Cron")

    for row in rows:
        action = "[green]on[/green]" if row.action == "on" else "[dim]off[/dim]"
        table.add_row(str(row.job_handle), row.service_name, row.service_type, action, row.cron_expression)

    console.print(table)


# ============================================================================
# Control plane
# ============================================================================


def _resolve_token(token: str | None) -> str:
    from scalecron.config.settings import get_settings

    resolved = token or get_settings().api_token
    if not resolved:
        console.print("[red]Error: --token or SCALECRON_API_TOKEN is required[/red]")
        raise typer.Exit(1)
    return resolved


@app.command()
def projects(
    token: str = typer.Option(None, "--token", "-t", help="API token"),
):
    """List projects and their current scale."""
    from scalecron.config.settings import get_settings
    from scalecron.control.client import ControlPlaneClient
    from scalecron.errors import ControlPlaneError

    settings = get_settings()
    client = ControlPlaneClient(settings.api_base, timeout=settings.request_timeout)
    try:
        items = asyncio.run(client.list_projects(_resolve_token(token)))
    except ControlPlaneError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    table = Table(title="Projects")
    table.add_column("Project", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Scale")
    for p in items:
        table.add_row(p.project_id, p.type, p.status, str(p.scale))
    console.print(table)


@app.command()
def databases(
    token: str = typer.Option(None, "--token", "-t", help="API token"),
):
    """List databases and their current scale."""
    from scalecron.config.settings import get_settings
    from scalecron.control.client import ControlPlaneClient
    from scalecron.errors import ControlPlaneError

    settings = get_settings()
    client = ControlPlaneClient(settings.api_base, timeout=settings.request_timeout)
    try:
        items = asyncio.run(client.list_databases(_resolve_token(token)))
    except ControlPlaneError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    table = Table(title="Databases")
    table.add_column("Database", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Scale")
    for d in items:
        table.add_row(d.db_id or d.id, d.type, d.status, str(d.scale))
    console.print(table)
