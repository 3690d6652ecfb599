"""CLI entry point for zotsync.

Provides commands:
  - sync: Incrementally sync every Zotero library into the search index
  - clear: Remove every zotsync entry from the index and forget all cursors
  - reset: Restore default configuration, then clear
  - status: Show stored library versions and index size
  - libraries: List discovered libraries and whether they are excluded
  - resolve: Print the zotero:// link for an index identifier
  - search: Query the local index
  - config: Manage configuration (settings, API key)
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated

import keyring
import typer
from keyring.errors import KeyringError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from zotsync.config import (
    KEY_NAME,
    SERVICE_NAME,
    default_config_path,
    export_config,
    import_config,
    load_config,
    set_config_value,
)
from zotsync.exceptions import ZotsyncError
from zotsync.index.port import item_url, parse_identifier
from zotsync.index.sqlite import SQLiteIndex
from zotsync.logging_setup import configure_logging
from zotsync.models import FleetSyncReport, SyncOutcome
from zotsync.services import SyncService

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="zotsync - keep a local search index in step with your Zotero libraries",
    rich_markup_mode="rich",
)
console = Console()

config_app = typer.Typer(help="Manage configuration (settings, API key)")
app.add_typer(config_app, name="config")


@app.callback()
def app_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr"),
    ] = False,
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", help="Append JSON-lines logs to this file"),
    ] = None,
) -> None:
    """Configure logging for every command."""
    configure_logging(verbose=verbose, log_file=log_file)


def _print_report(report: FleetSyncReport, dry_run: bool) -> None:
    table = Table(title="Dry Run" if dry_run else "Libraries")
    table.add_column("Library", style="bold")
    table.add_column("Outcome")
    table.add_column("Mode")
    table.add_column("Version", justify="right")
    table.add_column("Upserted", justify="right")
    table.add_column("Deleted", justify="right")
    table.add_column("Note", style="dim")

    for r in report.results:
        style = {
            SyncOutcome.SUCCEEDED: "green",
            SyncOutcome.FAILED: "red",
            SyncOutcome.SKIPPED: "yellow",
        }[r.outcome]
        if r.outcome is SyncOutcome.SKIPPED:
            mode = version = "-"
        else:
            mode = "incremental" if r.incremental else "full"
            version = f"v{r.previous_version} -> v{r.new_version}"
        table.add_row(
            f"{r.library_name} ({r.library_id})",
            f"[{style}]{r.outcome.value}[/{style}]",
            mode,
            version,
            str(r.upserted),
            str(r.deleted),
            r.error or "",
        )
    console.print(table)

    color = "green" if report.ok else "red"
    console.print(
        Panel(
            f"[{color}]{report.summary}[/{color}]",
            title="Dry Run Results" if dry_run else "Sync Results",
        )
    )


@app.command()
def sync(
    full: Annotated[
        bool,
        typer.Option("--full", help="Ignore stored versions and re-fetch every item"),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Fetch and render only; index and versions untouched"),
    ] = False,
) -> None:
    """Sync every non-excluded library into the search index.

    Each library is fetched from its last stored version; only items changed
    or deleted since then touch the index. A failing library is reported and
    retried on the next run without affecting the others.

    Examples:
      zotsync sync                 # Incremental sync
      zotsync sync --full          # Re-index everything
      zotsync sync --dry-run       # Preview changes
    """
    service = SyncService(load_config())
    try:
        report = asyncio.run(
            service.run_sync(force_full=full, dry_run=dry_run, handle_signals=True)
        )
    except ZotsyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    _print_report(report, dry_run)
    if report.failed:
        raise typer.Exit(code=1)


@app.command()
def clear(
    confirm: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt"),
    ] = False,
) -> None:
    """Remove every zotsync entry from the index and forget all versions."""
    if not confirm:
        proceed = typer.confirm("Remove all indexed items and stored versions?")
        if not proceed:
            console.print("[yellow]Clear cancelled.[/yellow]")
            return

    service = SyncService(load_config())
    try:
        removed = asyncio.run(service.clear_index_and_cursors())
    except ZotsyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(
        f"[green]Index cleared.[/green] Forgot {removed} library version(s); "
        "the next sync is a full sync."
    )


@app.command()
def reset(
    confirm: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt"),
    ] = False,
) -> None:
    """Restore default configuration, then clear the index and versions."""
    if not confirm:
        proceed = typer.confirm("Reset configuration and clear the index?")
        if not proceed:
            console.print("[yellow]Reset cancelled.[/yellow]")
            return

    service = SyncService(load_config())
    try:
        asyncio.run(service.reset())
    except (ZotsyncError, OSError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print("[green]Configuration reset and index cleared.[/green]")


@app.command()
def status() -> None:
    """Show stored library versions and the number of indexed items."""
    config = load_config()
    service = SyncService(config)
    versions = service.cursor_status()
    index_path = config.resolved_index_path

    console.print(
        Panel(
            f"Endpoint: [bold]{config.api_endpoint_base}[/bold]\n"
            f"Index: [bold]{index_path}[/bold]",
            title="zotsync Status",
        )
    )

    table = Table(title="Library Versions")
    table.add_column("Library", style="bold")
    table.add_column("Version", justify="right")
    for key, version in sorted(versions.items()):
        table.add_row(key, str(version))
    if versions:
        console.print(table)
    else:
        console.print("[yellow]No libraries synced yet.[/yellow]")

    if not index_path.exists():
        console.print("[bold]Indexed items:[/bold] 0")
        return

    async def _count() -> int:
        async with SQLiteIndex(index_path) as index:
            return await index.count()

    try:
        total = asyncio.run(_count())
    except ZotsyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    console.print(f"[bold]Indexed items:[/bold] {total}")


@app.command()
def libraries() -> None:
    """List the libraries the catalog exposes and whether each is excluded."""
    service = SyncService(load_config())
    try:
        found = asyncio.run(service.list_libraries())
    except ZotsyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    table = Table(title="Libraries")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Sync")
    for library, excluded in found:
        table.add_row(
            library.id,
            library.name,
            "[yellow]excluded[/yellow]" if excluded else "[green]yes[/green]",
        )
    console.print(table)


@app.command()
def resolve(
    identifier: Annotated[
        str,
        typer.Argument(help="Index identifier, e.g. org.zotsync.item.users/0.ABCD1234"),
    ],
    open_item: Annotated[
        bool | None,
        typer.Option(
            "--open/--select",
            help="Open the item's attachment instead of selecting it (default from config)",
        ),
    ] = None,
) -> None:
    """Print the zotero:// link for an index identifier."""
    try:
        library_id, item_key = parse_identifier(identifier)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if open_item is None:
        open_item = load_config().open_on_click
    # Plain print so the URL can be piped.
    typer.echo(item_url(library_id, item_key, open_item=open_item))


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Full-text query")],
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of results", min=1),
    ] = 20,
) -> None:
    """Search the local index by title, description and keywords."""
    index_path = load_config().resolved_index_path
    if not index_path.exists():
        console.print(
            f"[yellow]Index not found:[/yellow] {index_path}\n"
            "Run [bold]zotsync sync[/bold] first."
        )
        raise typer.Exit(code=1)

    async def _search():
        async with SQLiteIndex(index_path) as index:
            return await index.search(query, limit=limit)

    try:
        results = asyncio.run(_search())
    except ZotsyncError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if not results:
        console.print("[yellow]No matches.[/yellow]")
        return

    table = Table(title=f"Results for {query!r}")
    table.add_column("Title", style="bold")
    table.add_column("Description")
    table.add_column("Link", style="dim")
    for entry in results:
        table.add_row(entry.title, entry.description, entry.link)
    console.print(table)


# ---------------------------------------------------------------------------
# config subcommands
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show() -> None:
    """Display the effective configuration (file values over defaults)."""
    config = load_config()
    table = Table(title=str(default_config_path()))
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in sorted(config.to_dict().items()):
        table.add_row(key, json.dumps(value, ensure_ascii=False))
    console.print(table)


@config_app.command("set")
def config_set(
    key: Annotated[str, typer.Argument(help="Config field name")],
    value: Annotated[
        str,
        typer.Argument(help="New value (comma-separated for excluded_libraries)"),
    ],
) -> None:
    """Set one configuration value."""
    try:
        set_config_value(key, value)
    except KeyError:
        console.print(f"[red]Error:[/red] Unknown config key: {key}")
        raise typer.Exit(code=1)
    except ValueError as e:
        console.print(f"[red]Error:[/red] Invalid value for {key}: {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] {key} updated")


@config_app.command("export")
def config_export(
    path: Annotated[Path, typer.Argument(help="Destination JSON file")],
) -> None:
    """Write the effective configuration to a JSON file."""
    try:
        written = export_config(path)
    except OSError as e:
        console.print(f"[red]Error:[/red] Failed to export config: {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Configuration exported to {written}")


@config_app.command("import")
def config_import(
    path: Annotated[Path, typer.Argument(help="Source JSON file")],
) -> None:
    """Replace the active configuration with a JSON file."""
    try:
        import_config(path)
    except (OSError, ValueError, TypeError) as e:
        console.print(f"[red]Error:[/red] Failed to import config: {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Configuration imported from {path}")


@config_app.command("set-api-key")
def set_api_key(
    key: Annotated[
        str,
        typer.Argument(help="Zotero web API key to store in system keyring"),
    ],
) -> None:
    """Store the Zotero web API key in the system keyring (service: zotsync)."""
    if not key or key.strip() == "":
        console.print("[red]Error:[/red] API key cannot be empty")
        raise typer.Exit(code=1)

    try:
        keyring.set_password(SERVICE_NAME, KEY_NAME, key)
    except KeyringError as e:
        console.print(f"[red]Error:[/red] Failed to store API key: {e}")
        raise typer.Exit(code=1)
    console.print(
        f"[green]✓[/green] API key stored in system keyring (service: {SERVICE_NAME})"
    )


def _stored_api_key() -> str | None:
    try:
        return keyring.get_password(SERVICE_NAME, KEY_NAME)
    except KeyringError as e:
        console.print(f"[red]Error:[/red] System keyring unavailable: {e}")
        raise typer.Exit(code=1)


@config_app.command("get-api-key")
def show_api_key() -> None:
    """Display the stored Zotero web API key (masked)."""
    api_key = _stored_api_key()
    if not api_key:
        console.print(
            "[yellow]No API key found in keyring.[/yellow]\n"
            "The local Zotero API needs none; for the web API set one with: "
            "[bold]zotsync config set-api-key YOUR_KEY[/bold]"
        )
        raise typer.Exit(code=1)

    if len(api_key) > 8:
        masked = api_key[:8] + "*" * (len(api_key) - 8)
    else:
        masked = api_key[:2] + "*" * max(1, len(api_key) - 2)

    console.print(f"[green]API key:[/green] {masked}")
    console.print(f"[dim](stored in service: {SERVICE_NAME})[/dim]")


@config_app.command("remove-api-key")
def remove_api_key() -> None:
    """Delete the stored Zotero web API key from the system keyring."""
    if not _stored_api_key():
        console.print(
            "[yellow]Warning:[/yellow] No API key found in keyring.\n"
            "Nothing to remove."
        )
        return

    try:
        keyring.delete_password(SERVICE_NAME, KEY_NAME)
    except KeyringError as e:
        console.print(f"[red]Error:[/red] Failed to remove API key: {e}")
        raise typer.Exit(code=1)
    console.print(
        f"[green]✓[/green] API key removed from system keyring (service: {SERVICE_NAME})"
    )
