"""docqa document commands: upload, documents, remove.

Usage:
  docqa upload report.pdf
  docqa documents
  docqa remove <document-id> --yes
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from docqa.app import open_app
from docqa.cli.common import DbOption, UserOption, console, load_cli_config, require_api_key
from docqa.cli.errors import (
    err_document_not_found,
    err_file_not_found,
    err_ingestion_failed,
)
from docqa.config import DocQAConfig
from docqa.db.models import Document, DocumentStatus
from docqa.errors import NotFoundError
from docqa.ingest.pipeline import IngestionReport
from docqa.services.documents import UploadResult

_STATUS_STYLE = {
    DocumentStatus.PROCESSING: "[yellow]PROCESSING[/]",
    DocumentStatus.COMPLETED: "[green]COMPLETED[/]",
    DocumentStatus.FAILED: "[red]FAILED[/]",
}


# ---------------------------------------------------------------------------
# docqa upload
# ---------------------------------------------------------------------------


def upload_cmd(
    path: Annotated[Path, typer.Argument(help="PDF, .txt or .md file to upload.")],
    user: UserOption = "local",
    db: DbOption = None,
) -> None:
    """Upload a document and wait until it is ready for questions."""
    if not path.is_file():
        console.print(err_file_not_found(str(path)))
        raise typer.Exit(1)

    cfg = load_cli_config(db)
    require_api_key(cfg.embedding.model)
    data = path.read_bytes()

    console.print(f"\n[bold]→ {path.name}[/]  ({len(data):,} bytes)")
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Extracting, chunking and embedding…", total=None)
        try:
            result, report = asyncio.run(_upload(cfg, user, data, path.name))
        except ValueError as exc:
            console.print(f"  [red]✗ Error:[/] {exc}")
            raise typer.Exit(1) from exc

    console.print(f"  Document: [bold]{result.document_id}[/]")
    if report.status is not DocumentStatus.COMPLETED:
        console.print(err_ingestion_failed(path.name, report.error))
        raise typer.Exit(1)

    console.print(
        f"  [green]✓[/] {report.pages} pages, {len(report.succeeded)} chunks stored"
    )
    if report.failed:
        console.print(f"  [yellow]⚠ {len(report.failed)} chunks skipped (embedding failed)[/]")
    if not report.succeeded:
        console.print("  [yellow]⚠ No text found; questions will get the fallback answer.[/]")


async def _upload(
    cfg: DocQAConfig, user: str, data: bytes, filename: str
) -> tuple[UploadResult, IngestionReport]:
    async with open_app(cfg) as app:
        result = await app.documents.upload_document(user, data, filename)
        report = await app.dispatcher.wait(result.document_id)
    return result, report


# ---------------------------------------------------------------------------
# docqa documents
# ---------------------------------------------------------------------------


def documents_cmd(
    user: UserOption = "local",
    db: DbOption = None,
) -> None:
    """List your uploaded documents, newest first."""
    cfg = load_cli_config(db)
    documents = asyncio.run(_list_documents(cfg, user))

    if not documents:
        console.print("[dim]No documents uploaded yet.[/]\n  Run:  docqa upload <file>")
        return

    table = Table(title=f"Documents ({len(documents)})")
    table.add_column("ID", style="dim", overflow="fold", min_width=8)
    table.add_column("Filename", style="bold", overflow="fold", min_width=12)
    table.add_column("Status", no_wrap=True)
    table.add_column("Pages", justify="right", no_wrap=True)
    table.add_column("Chunks", justify="right", no_wrap=True)
    table.add_column("Uploaded", style="dim")

    for doc in documents:
        table.add_row(
            doc.id,
            doc.filename,
            _STATUS_STYLE[doc.status],
            str(doc.pages),
            f"{doc.chunk_count} ({doc.failed_chunks} failed)"
            if doc.failed_chunks
            else str(doc.chunk_count),
            (doc.created_at or "")[:16].replace("T", " "),
        )
    console.print(table)


async def _list_documents(cfg: DocQAConfig, user: str) -> list[Document]:
    async with open_app(cfg) as app:
        return await app.documents.list_documents(user)


# ---------------------------------------------------------------------------
# docqa remove
# ---------------------------------------------------------------------------


def remove_cmd(
    document_id: Annotated[str, typer.Argument(help="ID of the document to remove.")],
    user: UserOption = "local",
    db: DbOption = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a document, its stored file and all its chunks."""
    cfg = load_cli_config(db)
    try:
        document = asyncio.run(_get_document(cfg, user, document_id))
    except NotFoundError as exc:
        console.print(err_document_not_found(document_id))
        raise typer.Exit(1) from exc

    console.print(f"\nRemove document: [bold]{document.filename}[/]")
    console.print(f"  Status: {_STATUS_STYLE[document.status]}  |  Chunks: {document.chunk_count}")

    if not yes:
        if not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    asyncio.run(_delete_document(cfg, user, document_id))
    console.print(f"\n[green]✓[/] Removed: {document.filename}")
    console.print(
        "  [dim]Chat sessions attached to this document can no longer be queried.[/]"
    )


async def _get_document(cfg: DocQAConfig, user: str, document_id: str) -> Document:
    async with open_app(cfg) as app:
        return await app.documents.get_document(user, document_id)


async def _delete_document(cfg: DocQAConfig, user: str, document_id: str) -> None:
    async with open_app(cfg) as app:
        await app.documents.delete_document(user, document_id)
