"""docqa chat commands: ask, history.

Usage:
  docqa ask "What is the warranty period?" --document <id>
  docqa ask "And for spare parts?" --session <session-id>
  docqa history
  docqa history <session-id>
"""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from docqa.app import open_app
from docqa.cli.common import DbOption, UserOption, console, load_cli_config, require_api_key
from docqa.cli.errors import (
    err_document_not_found,
    err_document_not_ready,
    err_embedding_model_mismatch,
    err_empty_message,
    err_model_call,
    err_session_not_found,
)
from docqa.config import DocQAConfig
from docqa.db.models import ChatSession, DocumentStatus, MessageRole
from docqa.errors import EmbeddingError, InvalidStateError, NotFoundError, SynthesisError
from docqa.services.chat import ChatReply


class _AskError(Exception):
    """Pre-flight problem already rendered as a rich message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# ---------------------------------------------------------------------------
# docqa ask
# ---------------------------------------------------------------------------


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question about the document.")],
    document: Annotated[
        str | None,
        typer.Option("--document", "-d", help="Start a new chat about this document."),
    ] = None,
    session: Annotated[
        str | None,
        typer.Option("--session", "-s", help="Continue an existing chat session."),
    ] = None,
    user: UserOption = "local",
    db: DbOption = None,
) -> None:
    """Ask a question about an uploaded document."""
    if not question.strip():
        console.print(err_empty_message())
        raise typer.Exit(1)
    if document and session:
        console.print("[red]Error:[/] Use either --document or --session, not both.")
        raise typer.Exit(1)

    cfg = load_cli_config(db)
    require_api_key(cfg.embedding.model)
    require_api_key(cfg.generation.model)

    try:
        reply = asyncio.run(_ask(cfg, user, question, document, session))
    except _AskError as exc:
        console.print(exc.message)
        raise typer.Exit(1) from exc
    except NotFoundError as exc:
        if exc.kind == "Chat session":
            console.print(err_session_not_found(exc.ident))
        else:
            console.print(err_document_not_found(exc.ident))
        raise typer.Exit(1) from exc
    except InvalidStateError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1) from exc
    except (EmbeddingError, SynthesisError) as exc:
        console.print(err_model_call(str(exc)))
        raise typer.Exit(1) from exc

    console.print(Panel(reply.answer, title="[bold]Answer[/]", expand=False))
    if reply.sources:
        table = Table(show_header=True, box=None, padding=(0, 1))
        table.add_column("#", style="dim", justify="right")
        table.add_column("Page", justify="right")
        table.add_column("Similarity", justify="right")
        table.add_column("Excerpt", overflow="fold")
        for rank, source in enumerate(reply.sources, start=1):
            table.add_row(
                str(rank), str(source.page_number), f"{source.similarity:.3f}", source.content
            )
        console.print(table)
    console.print(f"\n[dim]Session: {reply.session_id}  (continue with --session)[/]")


async def _ask(
    cfg: DocQAConfig,
    user: str,
    question: str,
    document_id: str | None,
    session_id: str | None,
) -> ChatReply:
    async with open_app(cfg) as app:
        if session_id is None:
            if document_id is not None:
                doc = await app.documents.get_document(user, document_id)
                if doc.status is not DocumentStatus.COMPLETED:
                    raise _AskError(err_document_not_ready(doc.id, doc.status))
                if doc.embedding_model != cfg.embedding.model:
                    raise _AskError(
                        err_embedding_model_mismatch(doc.embedding_model, cfg.embedding.model)
                    )
            created = await app.chat.create_session(user, document_id)
            session_id = created.id
        return await app.chat.send_message(user, session_id, question)


# ---------------------------------------------------------------------------
# docqa history
# ---------------------------------------------------------------------------


def history_cmd(
    session_id: Annotated[
        str | None,
        typer.Argument(help="Show this session's messages. Omit to list sessions."),
    ] = None,
    user: UserOption = "local",
    db: DbOption = None,
) -> None:
    """List chat sessions, or show one session's conversation."""
    cfg = load_cli_config(db)

    if session_id is None:
        sessions = asyncio.run(_list_sessions(cfg, user))
        if not sessions:
            console.print('[dim]No chat sessions yet.[/]\n  Run:  docqa ask "..." --document <id>')
            return
        table = Table(title=f"Chat sessions ({len(sessions)})")
        table.add_column("ID", style="dim", overflow="fold", min_width=8)
        table.add_column("Title", style="bold", overflow="fold", min_width=15)
        table.add_column("Document", style="dim", overflow="fold", min_width=8)
        table.add_column("Messages", justify="right", no_wrap=True)
        table.add_column("Last activity", style="dim")
        for s in sessions:
            table.add_row(
                s.id,
                s.title,
                s.document_id or "-",
                str(s.message_count),
                (s.updated_at or "")[:16].replace("T", " "),
            )
        console.print(table)
        return

    try:
        chat_session = asyncio.run(_get_session(cfg, user, session_id))
    except NotFoundError as exc:
        console.print(err_session_not_found(session_id))
        raise typer.Exit(1) from exc

    console.print(f"\n[bold]{chat_session.title}[/]  [dim]{chat_session.id}[/]")
    if not chat_session.messages:
        console.print("[dim]No messages yet.[/]")
    for message in chat_session.messages:
        if message.role is MessageRole.USER:
            console.print(f"\n[bold cyan]You:[/] {message.content}")
        else:
            console.print(f"[bold green]Assistant:[/] {message.content}")
            meta = message.metadata or {}
            if meta.get("error"):
                console.print(f"  [red]✗ {meta.get('error_type', 'Error')}: {meta['error']}[/]")
            pages = sorted({src["page_number"] for src in meta.get("sources", [])})
            if pages:
                console.print(f"  [dim]Sources: page {', '.join(str(p) for p in pages)}[/]")


async def _list_sessions(cfg: DocQAConfig, user: str) -> list[ChatSession]:
    async with open_app(cfg) as app:
        return await app.chat.list_sessions(user)


async def _get_session(cfg: DocQAConfig, user: str, session_id: str) -> ChatSession:
    async with open_app(cfg) as app:
        return await app.chat.get_session(user, session_id)
