"""Operator commands for the inventory search index."""

import asyncio
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Annotated, TypeVar

import typer

from rentalsync.config import get_settings
from rentalsync.domain.search.sync import SyncOrchestrator, SyncResult, SyncState
from rentalsync.infrastructure.database.connection import dispose_engine
from rentalsync.infrastructure.search.factory import build_index_client, build_sync_orchestrator
from rentalsync.shared.exceptions import RentalSyncError
from rentalsync.shared.logging import setup_logging

T = TypeVar("T")

app = typer.Typer(
    name="rentalsync",
    help="Manage the inventory search index",
    add_completion=False,
)


@asynccontextmanager
async def open_orchestrator() -> AsyncIterator[SyncOrchestrator]:
    """Build a one-shot orchestrator and release its connections afterwards."""
    settings = get_settings()
    client = build_index_client(settings)
    try:
        yield build_sync_orchestrator(settings, client)
    finally:
        await client.close()
        await dispose_engine()


def _run(action: Callable[[SyncOrchestrator], Awaitable[T]]) -> T:
    async def runner() -> T:
        async with open_orchestrator() as orchestrator:
            return await action(orchestrator)

    setup_logging(sys.stderr)
    try:
        return asyncio.run(runner())
    except RentalSyncError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)


def _print_progress(current: int, total: int) -> None:
    typer.echo(f"Progress: {current}/{total}")


def _print_result(result: SyncResult) -> None:
    typer.echo(f"Synced: {result.synced}/{result.total}")
    if result.failed:
        typer.echo(f"Failed: {result.failed}", err=True)
        preview = ", ".join(str(item_id) for item_id in result.failed_ids[:20])
        more = " ..." if result.failed > 20 else ""
        typer.echo(f"  Failed ids: {preview}{more}", err=True)


@app.command(name="init")
def init_cmd() -> None:
    """Create the search collection if it does not exist."""
    settings = get_settings()
    _run(lambda orchestrator: orchestrator.initialize_schema())
    typer.echo(f"Collection '{settings.search_collection}' is ready")


@app.command(name="index")
def index_cmd(
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Only print the final summary"),
    ] = False,
) -> None:
    """Index every inventory item into the existing collection."""
    on_progress = None if quiet else _print_progress
    on_log = None if quiet else typer.echo
    result = _run(lambda orchestrator: orchestrator.reindex_all(on_progress, on_log))
    _print_result(result)
    if result.state is not SyncState.DONE:
        raise typer.Exit(1)


@app.command(name="reindex")
def reindex_cmd(
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt"),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Only print the final summary"),
    ] = False,
) -> None:
    """Drop the collection and rebuild it from the database."""
    if not yes:
        typer.confirm("This deletes the search collection before rebuilding it. Continue?", abort=True)

    on_progress = None if quiet else _print_progress
    on_log = None if quiet else typer.echo
    result = _run(lambda orchestrator: orchestrator.recreate_and_reindex(on_progress, on_log))
    _print_result(result)
    if result.state is not SyncState.DONE:
        raise typer.Exit(1)


@app.command(name="test")
def test_cmd() -> None:
    """Check that the search backend is reachable with the configured credentials."""
    settings = get_settings()
    connected = _run(lambda orchestrator: orchestrator.test_connection())
    if not connected:
        typer.echo(f"Error: cannot reach {settings.search_backend}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Connected to {settings.search_backend}")


if __name__ == "__main__":
    app()
