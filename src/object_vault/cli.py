"""CLI for ObjectVault.

Commands:
    store <path>         - Store a file or every supported file in a directory
    delete <digest>      - Delete a stored object
    show <id>            - Show an object by digest, digest prefix or logical id
    list                 - List stored objects
    stats                - Show storage statistics
    sweep                - Run a retention sweep now
    verify               - Check metadata/blob consistency
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from object_vault.config import settings
from object_vault.models.enums import DeleteStatus, StoreStatus
from object_vault.models.record import ObjectRecord
from object_vault.services.integrity import IntegrityChecker
from object_vault.services.retention import RetentionSweeper
from object_vault.storage.engine import StorageEngine
from object_vault.storage.errors import MetadataCorruptError, StorageError

app = typer.Typer(
    name="object-vault",
    help="ObjectVault: content-addressed object storage with deduplication and retention",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main_callback(
    log_level: Annotated[
        str, typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    ] = settings.log_level,
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def build_engine() -> StorageEngine:
    """Open the configured stores, exiting on a corrupt metadata store."""
    try:
        return StorageEngine.from_settings(settings)
    except MetadataCorruptError as e:
        console.print(f"[red]Error:[/red] {e}")
        console.print("[red]Refusing to start; repair or move the metadata file.[/red]")
        raise typer.Exit(1) from None
    except StorageError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def resolve_record(engine: StorageEngine, identifier: str) -> ObjectRecord:
    """Find a record by full digest, logical id or unique digest prefix."""
    record = engine.get(identifier) or engine.find_by_logical_id(identifier)
    if record is not None:
        return record

    matches = [
        r for digest, r in engine.metadata_store.snapshot().items() if digest.startswith(identifier)
    ]
    if not matches:
        console.print(f"[red]Error:[/red] No object found matching: {identifier}")
        raise typer.Exit(1)
    if len(matches) > 1:
        console.print(
            f"[red]Error:[/red] Ambiguous prefix '{identifier}' matches {len(matches)} objects:"
        )
        for m in matches[:5]:
            console.print(f"  • {m.digest}")
        raise typer.Exit(1)
    return matches[0]


@app.command()
def store(
    path: Annotated[Path, typer.Argument(help="File or directory to store")],
    recursive: Annotated[
        bool, typer.Option("--recursive", "-r", help="Recursively store directories")
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show detailed output")
    ] = False,
):
    """Store files, deduplicating by content."""
    files_to_process: list[Path] = []
    if path.is_file():
        files_to_process.append(path)
    elif path.is_dir():
        pattern = "**/*" if recursive else "*"
        for f in sorted(path.glob(pattern)):
            if f.is_file() and f.suffix.lower() in settings.allowed_extensions:
                files_to_process.append(f)
    else:
        console.print(f"[red]Error:[/red] Path does not exist: {path}")
        raise typer.Exit(1)

    if not files_to_process:
        console.print("[yellow]No supported files found to store.[/yellow]")
        raise typer.Exit(0)

    engine = build_engine()
    console.print(f"[blue]Storing {len(files_to_process)} file(s)...[/blue]\n")

    counts = {status: 0 for status in StoreStatus}
    try:
        for file_path in files_to_process:
            console.print(f"  Processing: {file_path.name}...", end=" ")
            with file_path.open("rb") as stream:
                result = engine.store(stream, file_path.name)
            counts[result.status] += 1

            if result.status is StoreStatus.DUPLICATE:
                console.print(f"[yellow]SKIP[/yellow] (duplicate of {result.logical_id})")
            elif result.status is StoreStatus.STORED:
                console.print(f"[green]OK[/green] → {result.logical_id}")
            else:
                console.print(f"[red]{result.status.value.upper()}[/red]: {result.error}")

            if verbose and result.digest:
                console.print(f"    Digest: {result.digest}")
    finally:
        engine.close()

    console.print()
    console.print(
        f"[bold]Summary:[/bold] {counts[StoreStatus.STORED]} stored, "
        f"{counts[StoreStatus.DUPLICATE]} duplicates, "
        f"{counts[StoreStatus.REJECTED]} rejected, {counts[StoreStatus.FAILED]} failed"
    )
    if counts[StoreStatus.FAILED]:
        raise typer.Exit(1)


@app.command()
def delete(
    digest: Annotated[str, typer.Argument(help="Content digest of the object")],
):
    """Delete a stored object and its blob."""
    engine = build_engine()
    try:
        result = engine.delete(digest)
    finally:
        engine.close()

    if result.status is DeleteStatus.FAILED:
        console.print(f"[red]Error:[/red] {result.error}")
        raise typer.Exit(1)
    if result.deleted:
        console.print(f"[green]Deleted[/green] {digest}")
    else:
        console.print(f"[yellow]No object with digest {digest}[/yellow]")


@app.command()
def show(
    identifier: Annotated[str, typer.Argument(help="Digest, digest prefix or logical id")],
):
    """Show details for a stored object."""
    engine = build_engine()
    try:
        record = resolve_record(engine, identifier)
        present = engine.blob_store.exists(record.stored_relative_path)
    finally:
        engine.close()

    panel_content = [
        f"[bold]ID:[/bold] {record.logical_id}",
        f"[bold]SHA256:[/bold] {record.digest}",
        f"[bold]Name:[/bold] {record.original_name}",
        f"[bold]MIME type:[/bold] {record.mime_type}",
        f"[bold]Size:[/bold] {record.size_bytes:,} bytes",
        f"[bold]Path:[/bold] {record.stored_relative_path}"
        + ("" if present else " [red](missing)[/red]"),
        f"[bold]Uploads:[/bold] {record.reference_count}",
        f"[bold]Created:[/bold] {record.created_at}",
        f"[bold]Last accessed:[/bold] {record.last_accessed_at}",
    ]
    console.print(Panel("\n".join(panel_content), title="Object Details"))


@app.command("list")
def list_objects(
    limit: Annotated[int, typer.Option(help="Maximum number of objects to show")] = 20,
    full_ids: Annotated[bool, typer.Option("--full-ids", "-f", help="Show full digests")] = False,
):
    """List stored objects, newest first."""
    engine = build_engine()
    try:
        records = sorted(
            engine.metadata_store.snapshot().values(),
            key=lambda r: r.created_at,
            reverse=True,
        )
    finally:
        engine.close()

    if not records:
        console.print("[yellow]No objects stored.[/yellow]")
        return

    table = Table(title="Objects")
    table.add_column("Digest", no_wrap=full_ids)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Uploads", justify="right")
    table.add_column("Created")

    for record in records[:limit]:
        digest = record.digest if full_ids else record.digest[:12] + "..."
        name = record.original_name
        table.add_row(
            digest,
            record.logical_id,
            name[:40] + "..." if len(name) > 40 else name,
            f"{record.size_bytes:,}",
            str(record.reference_count),
            f"{record.created_at:%Y-%m-%d %H:%M}",
        )

    console.print(table)
    console.print(f"\n[dim]Showing {min(limit, len(records))} of {len(records)} objects[/dim]")


@app.command()
def stats():
    """Show storage statistics."""
    engine = build_engine()
    try:
        result = engine.stats()
    finally:
        engine.close()

    console.print(Panel(
        f"[bold]Unique objects:[/bold] {result.unique_objects}\n"
        f"[bold]Total size:[/bold] {result.total_size_bytes:,} bytes "
        f"({result.total_size_mb:.2f} MB)\n"
        f"[bold]Total uploads:[/bold] {result.total_uploads}",
        title="ObjectVault Statistics",
    ))


@app.command()
def sweep(
    retention_hours: Annotated[
        float | None,
        typer.Option(help="Override the configured retention window (hours)"),
    ] = None,
):
    """Delete objects older than the retention window."""
    engine = build_engine()
    try:
        sweeper = RetentionSweeper(engine, settings.retention_window)
        window = timedelta(hours=retention_hours) if retention_hours is not None else None
        report = sweeper.sweep(retention_window=window)
    finally:
        engine.close()

    console.print(
        f"[bold]Cleanup completed:[/bold] {len(report.deleted)} deleted, "
        f"{len(report.orphans_repaired)} orphan records repaired, "
        f"{report.remaining} remaining"
    )
    if report.failed:
        console.print(f"[red]{len(report.failed)} object(s) could not be deleted:[/red]")
        for digest, reason in report.failed.items():
            console.print(f"  • {digest[:12]}: {reason}")
        raise typer.Exit(1)


@app.command()
def verify(
    repair: Annotated[
        bool, typer.Option("--repair", help="Remove orphan records and orphan files")
    ] = False,
    verify_content: Annotated[
        bool, typer.Option("--content", help="Re-hash every blob against its digest")
    ] = False,
):
    """Check that metadata and blobs agree."""
    engine = build_engine()
    try:
        report = IntegrityChecker(engine).check(repair=repair, verify_content=verify_content)
    finally:
        engine.close()

    if report.consistent:
        console.print("[green]Store is consistent.[/green]")
        return

    table = Table(title="Integrity Findings")
    table.add_column("Kind")
    table.add_column("Item")
    for digest in report.orphan_records:
        table.add_row("orphan record", digest)
    for relative_path in report.orphan_files:
        table.add_row("orphan file", relative_path)
    for digest in report.corrupt_blobs:
        table.add_row("[red]corrupt blob[/red]", digest)
    console.print(table)

    if repair:
        console.print(
            f"[bold]Repaired:[/bold] {len(report.repaired_records)} records removed, "
            f"{len(report.removed_files)} files removed"
        )
    if report.corrupt_blobs or not repair:
        raise typer.Exit(1)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
