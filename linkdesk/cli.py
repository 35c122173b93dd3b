"""LinkDesk CLI.

Commands:
- init: Initialize database schema
- migrate: Apply pending SQL migrations (dry run unless --execute)
- rollback: Roll back one SQL migration (dry run unless --execute)
- migration-status: Show applied and pending migrations
- fix-null-bytes: Strip NUL characters from text columns
- fix-offerings: Repair publisher offering relationships
- serve: Run the API server
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from linkdesk.config import get_config
from linkdesk.core.errors import LinkDeskError
from linkdesk.core.logging import configure_logging
from linkdesk.db.connection import close_db, get_session, init_db
from linkdesk.db.migrations import runner
from linkdesk.repair.null_bytes import fix_null_bytes
from linkdesk.repair.publisher_offerings import fix_offering_relationships

app = typer.Typer(
    name="linkdesk",
    help="LinkDesk - order fulfilment for the link-building marketplace",
    no_args_is_help=True,
)

console = Console()


def _run(coro):
    """Run a coroutine and dispose the engine afterwards."""

    async def _wrapped():
        try:
            return await coro
        finally:
            await close_db()

    try:
        return asyncio.run(_wrapped())
    except LinkDeskError as e:
        console.print(f"[bold red]✗[/bold red] {e.message}")
        raise typer.Exit(code=1) from e


def _dry_run_banner(dry_run: bool) -> None:
    if dry_run:
        console.print("[yellow]DRY RUN MODE - No changes will be made (use --execute)[/yellow]\n")


@app.callback()
def main():
    configure_logging()


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def migrate(
    execute: bool = typer.Option(False, "--execute", help="Execute migrations (default: dry-run)"),
    limit: int | None = typer.Option(None, "--limit", help="Apply at most this many migrations"),
):
    """Apply pending SQL migrations in order."""
    _dry_run_banner(not execute)

    async def _migrate():
        async with get_session() as session:
            return await runner.apply_migrations(session, dry_run=not execute, limit=limit)

    report = _run(_migrate())

    if not execute:
        if not report.statements:
            console.print("[green]No pending migrations[/green]")
        for name, statements in report.statements.items():
            console.print(f"[bold]{name}[/bold] ({len(statements)} statements)")
            for statement in statements:
                console.print(f"  {statement.splitlines()[0]}...")
        return

    for name in report.applied:
        console.print(f"[bold green]✓[/bold green] Applied {name}")
    if report.pending:
        console.print(f"[yellow]{len(report.pending)} migrations still pending[/yellow]")
    elif not report.applied:
        console.print("[green]No pending migrations[/green]")


@app.command()
def rollback(
    name: str = typer.Argument(..., help="Migration name, e.g. 0002_create_order_share_tokens"),
    execute: bool = typer.Option(False, "--execute", help="Execute rollback (default: dry-run)"),
):
    """Roll back a single SQL migration."""
    _dry_run_banner(not execute)
    if execute and not typer.confirm(f"Roll back {name}?"):
        console.print("[yellow]Rollback cancelled[/yellow]")
        return

    async def _rollback():
        async with get_session() as session:
            return await runner.rollback_migration(session, name, dry_run=not execute)

    report = _run(_rollback())

    if not execute:
        for statement in report.statements.get(name, []):
            console.print(statement)
        return
    console.print(f"[bold green]✓[/bold green] Rolled back {name}")


@app.command("migration-status")
def migration_status():
    """Show applied and pending migrations."""

    async def _status():
        async with get_session() as session:
            return await runner.migration_status(session)

    rows = _run(_status())

    table = Table(title="Migrations")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Applied at")
    table.add_column("Checksum")
    table.add_column("Rollback", justify="center")

    for row in rows:
        status = "[green]applied[/green]" if row["applied"] else "[yellow]pending[/yellow]"
        checksum = {True: "ok", False: "[red]changed[/red]", None: "-"}[row["checksumMatches"]]
        table.add_row(
            row["name"],
            status,
            row["appliedAt"] or "-",
            checksum,
            "✓" if row["hasRollback"] else "",
        )
    console.print(table)


@app.command("fix-null-bytes")
def fix_null_bytes_cmd(
    execute: bool = typer.Option(False, "--execute", help="Write changes (default: dry-run)"),
    limit: int | None = typer.Option(None, "--limit", help="Records to process per pass"),
):
    """Strip NUL characters from free-text columns."""
    _dry_run_banner(not execute)
    limit = limit or get_config().repair.batch_limit

    async def _fix():
        async with get_session() as session:
            return await fix_null_bytes(session, dry_run=not execute, limit=limit)

    report = _run(_fix())

    table = Table(title="Null bytes")
    table.add_column("Column", style="cyan")
    table.add_column("Affected", justify="right")
    table.add_column("Fixed", justify="right", style="green")
    for column in report.columns:
        table.add_row(column.column, str(len(column.record_ids)), str(column.fixed))
    console.print(table)

    if execute:
        console.print(f"[bold green]✓[/bold green] Fixed {report.total_fixed} records")


@app.command("fix-offerings")
def fix_offerings_cmd(
    execute: bool = typer.Option(False, "--execute", help="Write changes (default: dry-run)"),
    limit: int | None = typer.Option(None, "--limit", help="Offerings to process per pass"),
):
    """Collapse duplicate offering relationships and link orphaned offerings."""
    _dry_run_banner(not execute)
    limit = limit or get_config().repair.batch_limit

    async def _fix():
        async with get_session() as session:
            return await fix_offering_relationships(session, dry_run=not execute, limit=limit)

    report = _run(_fix())

    console.print(f"Duplicates resolved: [bold]{report.duplicates_resolved}[/bold]")
    console.print(f"Relationships removed: [bold]{report.relationships_removed}[/bold]")
    console.print(f"Orphans linked: [bold]{report.orphans_linked}[/bold]")

    if report.skipped:
        table = Table(title="Skipped offerings")
        table.add_column("Offering", style="cyan")
        table.add_column("Name")
        table.add_column("Reason", style="yellow")
        for skipped in report.skipped:
            table.add_row(skipped["offeringId"], skipped["offeringName"] or "", skipped["reason"])
        console.print(table)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the LinkDesk API server."""
    import uvicorn

    typer.echo(f"Starting LinkDesk API on http://{host}:{port}")
    uvicorn.run("linkdesk.web.app:app", host=host, port=port, reload=reload, workers=1)


if __name__ == "__main__":
    app()
