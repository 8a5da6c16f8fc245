"""Helpers shared by the docqa CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from docqa.cli.errors import err_config, err_no_api_key
from docqa.config import ConfigError, DocQAConfig, load_config
from docqa.log import configure_logging
from docqa.rag.llm_client import provider_env_var, validate_api_key

console = Console()

UserOption = Annotated[
    str,
    typer.Option("--user", "-u", envvar="DOCQA_USER", help="Owner of documents and chats."),
]
DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the docqa database (overrides storage.db_path)."),
]


def load_cli_config(db: Path | None) -> DocQAConfig:
    """Load config from CWD, apply --db, and configure logging. Exits 1 on bad config."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    if db is not None:
        cfg.storage.db_path = str(db)
    configure_logging(cfg.logging.level, cfg.logging.json)
    return cfg


def require_api_key(model: str) -> None:
    """Exit 1 with an actionable message if *model*'s provider key is missing."""
    try:
        validate_api_key(model)
    except EnvironmentError as exc:
        provider, env_var = provider_env_var(model)
        console.print(err_no_api_key(provider, env_var))
        raise typer.Exit(1) from exc
