"""Tests for docqa upload / documents / remove commands."""

from __future__ import annotations

import re
from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import FakeCompleter, FakeEmbedder
from docqa.cli.common import console
from docqa.cli.main import app

runner = CliRunner()

_MANUAL = "The warranty lasts two years.\fThe battery charges in three hours.\n"


@pytest.fixture(autouse=True)
def cli_env(tmp_path: Path, monkeypatch):
    """Run every command in tmp_path with fake providers and a fake API key."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(console, "width", 80)
    monkeypatch.setenv("DOCQA_EMBEDDING_MODEL", "fake/embedding")
    monkeypatch.setenv("DOCQA_GENERATION_MODEL", "fake/chat")
    monkeypatch.setenv("FAKE_API_KEY", "test-key")
    monkeypatch.delenv("DOCQA_DB_PATH", raising=False)
    monkeypatch.delenv("DOCQA_USER", raising=False)
    monkeypatch.setattr("docqa.cli.common.configure_logging", lambda *a, **k: None)
    monkeypatch.setattr("docqa.app.build_embedder", lambda cfg: FakeEmbedder())
    monkeypatch.setattr("docqa.app.build_completer", lambda cfg: FakeCompleter())
    return tmp_path


def _upload(tmp_path: Path, text: str = _MANUAL, name: str = "manual.txt") -> str:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    result = runner.invoke(app, ["upload", str(path)])
    assert result.exit_code == 0, result.output
    match = re.search(r"Document: ([0-9a-f-]{36})", result.output)
    assert match, result.output
    return match.group(1)


# ---------------------------------------------------------------------------
# docqa upload
# ---------------------------------------------------------------------------


def test_upload_ingests_document(cli_env: Path) -> None:
    path = cli_env / "manual.txt"
    path.write_text(_MANUAL, encoding="utf-8")

    result = runner.invoke(app, ["upload", str(path)])

    assert result.exit_code == 0, result.output
    assert "2 pages, 2 chunks stored" in result.output
    assert (cli_env / ".docqa.db").exists()
    assert any((cli_env / "uploads" / "local").iterdir())


def test_upload_missing_file_exits_1(cli_env: Path) -> None:
    result = runner.invoke(app, ["upload", str(cli_env / "nope.pdf")])
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_upload_without_api_key_exits_1(cli_env: Path, monkeypatch) -> None:
    monkeypatch.delenv("FAKE_API_KEY")
    path = cli_env / "manual.txt"
    path.write_text(_MANUAL, encoding="utf-8")

    result = runner.invoke(app, ["upload", str(path)])

    assert result.exit_code == 1
    assert "FAKE_API_KEY" in result.output


def test_upload_unsupported_file_exits_1(cli_env: Path) -> None:
    path = cli_env / "slides.pptx"
    path.write_bytes(b"PK\x03\x04zip")

    result = runner.invoke(app, ["upload", str(path)])

    assert result.exit_code == 1
    assert "Processing failed" in result.output


def test_upload_empty_file_exits_1(cli_env: Path) -> None:
    path = cli_env / "empty.txt"
    path.write_bytes(b"")

    result = runner.invoke(app, ["upload", str(path)])

    assert result.exit_code == 1
    assert "empty" in result.output


def test_upload_custom_db_path(cli_env: Path) -> None:
    path = cli_env / "manual.txt"
    path.write_text(_MANUAL, encoding="utf-8")

    result = runner.invoke(app, ["upload", str(path), "--db", "data/qa.db"])

    assert result.exit_code == 0, result.output
    assert (cli_env / "data" / "qa.db").exists()


# ---------------------------------------------------------------------------
# docqa documents
# ---------------------------------------------------------------------------


def test_documents_empty(cli_env: Path) -> None:
    result = runner.invoke(app, ["documents"])
    assert result.exit_code == 0
    assert "No documents uploaded yet" in result.output


def test_documents_lists_uploads_per_user(cli_env: Path) -> None:
    _upload(cli_env)

    mine = runner.invoke(app, ["documents"])
    theirs = runner.invoke(app, ["documents", "--user", "bob"])

    assert "manual.txt" in mine.output
    assert "COMPLETED" in mine.output
    assert "No documents uploaded yet" in theirs.output


# ---------------------------------------------------------------------------
# docqa remove
# ---------------------------------------------------------------------------


def test_remove_with_yes(cli_env: Path) -> None:
    document_id = _upload(cli_env)

    result = runner.invoke(app, ["remove", document_id, "--yes"])

    assert result.exit_code == 0, result.output
    assert "Removed: manual.txt" in result.output
    assert "No documents uploaded yet" in runner.invoke(app, ["documents"]).output


def test_remove_cancelled_keeps_document(cli_env: Path) -> None:
    document_id = _upload(cli_env)

    result = runner.invoke(app, ["remove", document_id], input="n\n")

    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert "manual.txt" in runner.invoke(app, ["documents"]).output


def test_remove_unknown_document_exits_1(cli_env: Path) -> None:
    result = runner.invoke(app, ["remove", "does-not-exist", "--yes"])
    assert result.exit_code == 1
    assert "Document not found" in result.output


def test_documents_table_fits_80_columns(cli_env: Path) -> None:
    _upload(cli_env)
    (cli_env / "slides.pptx").write_bytes(b"PK\x03\x04zip")
    runner.invoke(app, ["upload", str(cli_env / "slides.pptx")])

    result = runner.invoke(app, ["documents"])

    assert result.exit_code == 0
    assert "manual.txt" in result.output
    assert "slides.pptx" in result.output
    assert "COMPLETED" in result.output
    assert "FAILED" in result.output
    assert all(len(line) <= 80 for line in result.output.splitlines())
