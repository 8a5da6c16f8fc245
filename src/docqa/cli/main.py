"""docqa CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from docqa.cli.chat import ask_cmd, history_cmd
from docqa.cli.documents import documents_cmd, remove_cmd, upload_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("docqa")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"docqa {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="docqa",
    help=(
        "docqa: ask questions about your documents.\n\n"
        "  docqa upload    Ingest a PDF or text file.\n"
        "  docqa ask       Get an answer grounded in one document, with page citations."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """docqa: ask questions about your documents."""


app.command("upload")(upload_cmd)
app.command("documents")(documents_cmd)
app.command("remove")(remove_cmd)
app.command("ask")(ask_cmd)
app.command("history")(history_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed docqa version."""
    typer.echo(f"docqa {_installed_version()}")


if __name__ == "__main__":
    app()
