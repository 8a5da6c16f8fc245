"""docqa rich error messages: actionable feedback for the CLI.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from docqa.cli.errors import err_no_api_key
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from docqa.db.models import DocumentStatus


def err_no_api_key(provider: str, env_var: str | None = None) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = env_var or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_config(message: str) -> str:
    """Config file failed validation."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix docqa.yaml (or ~/.docqa/config.yaml) and retry."
    )


def err_file_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] File not found: '{path}'\n"
        "  Check the path and retry."
    )


def err_document_not_found(document_id: str) -> str:
    return (
        f"[yellow]Document not found:[/] '{document_id}'\n"
        "  Run:  docqa documents  to see your uploaded documents."
    )


def err_session_not_found(session_id: str) -> str:
    return (
        f"[yellow]Chat session not found:[/] '{session_id}'\n"
        "  Run:  docqa history  to see your chat sessions."
    )


def err_document_not_ready(document_id: str, status: DocumentStatus | str) -> str:
    """Document cannot be queried in its current status."""
    status = status.value if isinstance(status, DocumentStatus) else status
    if status == DocumentStatus.FAILED.value:
        action = f"  Remove it and upload again:  docqa remove {document_id}"
    else:
        action = "  Wait for processing to finish, then check:  docqa documents"
    return (
        f"[red]Error:[/] Document '{document_id}' is {status} and cannot be queried yet.\n"
        f"{action}"
    )


def err_embedding_model_mismatch(db_model: str, config_model: str) -> str:
    """Embedding model stored with the document does not match current config."""
    return (
        f"[red]Error:[/] Embedding model mismatch.\n"
        f"  Document indexed with:  {db_model}\n"
        f"  Config has:             {config_model}\n"
        "  Re-upload the document or set embedding.model back to the indexed model."
    )


def err_ingestion_failed(filename: str, error: str | None) -> str:
    return (
        f"[red]Error:[/] Processing failed for '{filename}': {error or 'unknown error'}\n"
        "  Check the file type (supported: .pdf, .txt, .md). Scanned PDFs without a text layer\n"
        "  are not supported."
    )


def err_model_call(error: str) -> str:
    """Embedding or completion service failed after retries."""
    return (
        f"[red]Error:[/] Model call failed: {error}\n"
        "  Check your API key, model name and network connection, then retry."
    )


def err_empty_message() -> str:
    return (
        "[red]Error:[/] Question is empty.\n"
        '  Example:  docqa ask "What is the warranty period?" --document <id>'
    )
