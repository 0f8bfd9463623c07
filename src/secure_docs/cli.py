from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from pydantic import ValidationError

from .core.logging import setup_logging
from .settings import DocumentStoreSettings
from .storage.quota import format_file_size
from .storage.service import DocumentStore, build_document_store

T = TypeVar("T")

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Operator commands for the encrypted document store.",
)

_DATABASE_URL = typer.Option(
    None, "--database-url", help="Overrides env DOCS_DATABASE_URL / DATABASE_URL for this command."
)


def _load_settings(database_url: Optional[str]) -> DocumentStoreSettings:
    overrides = {"database_url": database_url} if database_url else {}
    try:
        settings = DocumentStoreSettings(**overrides)
        settings.resolved_database_url  # fail fast when no database is configured
    except (ValidationError, ValueError) as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=2)
    return settings


def _run(database_url: Optional[str], fn: Callable[[DocumentStore], Awaitable[T]]) -> T:
    settings = _load_settings(database_url)
    setup_logging()

    async def _go() -> T:
        store = build_document_store(settings)
        try:
            return await fn(store)
        finally:
            await store.close()

    return asyncio.run(_go())


@app.command("init-db")
def init_db(database_url: Optional[str] = _DATABASE_URL):
    """Create the metadata and payload tables if they do not exist."""
    _run(database_url, lambda store: store.init_schema())
    typer.echo("Document store schema is ready.")


@app.command("usage")
def usage(
    database_url: Optional[str] = _DATABASE_URL,
    as_json: bool = typer.Option(False, "--json", help="Print the raw report as JSON."),
):
    """Show storage usage against the configured capacity."""
    report = _run(database_url, lambda store: store.usage())
    if as_json:
        data = {
            "total_files": report.total_files,
            "total_bytes": report.total_bytes,
            "average_bytes": report.average_bytes,
            "largest_bytes": report.largest_bytes,
            "smallest_bytes": report.smallest_bytes,
            "capacity_bytes": report.capacity_bytes,
            "remaining_bytes": report.remaining_bytes,
            "usage_percentage": report.usage_percentage,
            "is_warning": report.is_warning,
            "is_critical": report.is_critical,
            "estimated_remaining_uploads": report.estimated_remaining_uploads,
            "formatted": report.formatted(),
        }
        typer.echo(json.dumps(data, indent=2))
        return

    sizes = report.formatted()
    typer.echo(f"Files:      {report.total_files}")
    typer.echo(f"Used:       {sizes['total_size']} of {sizes['capacity']} ({report.usage_percentage}%)")
    typer.echo(f"Remaining:  {sizes['remaining_space']} (~{report.estimated_remaining_uploads} uploads)")
    typer.echo(f"Average:    {sizes['average_file_size']}")
    if report.is_critical:
        typer.echo("Status:     CRITICAL")
    elif report.is_warning:
        typer.echo("Status:     WARNING")
    else:
        typer.echo("Status:     OK")


@app.command("sweep")
def sweep(
    database_url: Optional[str] = _DATABASE_URL,
    concurrency: int = typer.Option(1, "--concurrency", min=1, help="Parallel purges."),
):
    """Purge every document past its retention period."""
    report = _run(database_url, lambda store: store.sweep(concurrency=concurrency))
    typer.echo(f"scanned={report.scanned} purged={report.purged} failed={len(report.failed)}")
    for file_id in report.failed:
        typer.echo(f"  could not purge {file_id}", err=True)
    if report.failed:
        raise typer.Exit(code=1)


@app.command("reconcile")
def reconcile(
    database_url: Optional[str] = _DATABASE_URL,
    delete_orphans: bool = typer.Option(False, "--delete-orphans", help="Delete payloads without metadata."),
    restore_orphans: bool = typer.Option(
        False, "--restore-orphans", help="Re-create metadata for live payloads from their stored record."
    ),
    grace_minutes: int = typer.Option(10, "--grace-minutes", min=0, help="Ignore payloads newer than this."),
):
    """Cross-check backend payloads against the metadata table."""
    if delete_orphans and restore_orphans:
        typer.echo("--delete-orphans and --restore-orphans are mutually exclusive", err=True)
        raise typer.Exit(code=2)

    report = _run(
        database_url,
        lambda store: store.reconcile(
            delete_orphans=delete_orphans,
            restore_orphans=restore_orphans,
            grace=timedelta(minutes=grace_minutes),
        ),
    )
    typer.echo(
        f"scanned={report.scanned_payloads} orphaned={len(report.orphaned)} "
        f"restored={len(report.restored)} deleted={len(report.deleted)} "
        f"missing={len(report.missing_payloads)} recent={report.recent}"
    )
    for kind, file_id in report.unresolved_orphans:
        typer.echo(f"  orphaned {file_id} in {kind.value}", err=True)
    for file_id in report.missing_payloads:
        typer.echo(f"  payload missing for {file_id}", err=True)
    for kind in report.unreachable_backends:
        typer.echo(f"  could not list {kind.value} backend", err=True)
    if not report.is_consistent:
        raise typer.Exit(code=1)


@app.command("list")
def list_documents(database_url: Optional[str] = _DATABASE_URL):
    """List stored documents (metadata only)."""
    docs = _run(database_url, lambda store: store.list_documents())
    if not docs:
        typer.echo("No documents stored.")
        return
    for doc in docs:
        typer.echo(
            f"{doc.file_id}  {doc.backend_kind.value:<12}  {format_file_size(doc.size_bytes):>8}  "
            f"expires {doc.expires_at.date().isoformat()}  {doc.owner_reference}  {doc.original_name}"
        )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
