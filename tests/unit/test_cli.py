"""Unit tests for the command-line entry point."""

from __future__ import annotations

import json

import pytest
from conftest import FailingEmbedder, FakeEmbedder

from kb_ingest import cli
from kb_ingest.exceptions import DocumentStoreError
from kb_ingest.models import DocumentStatus
from kb_ingest.store.memory import InMemoryDocumentStore


def test_parser_ingest_arguments(tmp_path) -> None:
    args = cli.build_parser().parse_args(["ingest", "--folder-id", "F1", str(tmp_path / "a.txt")])
    assert args.command == "ingest"
    assert args.folder_id == "F1"
    assert args.paths == [tmp_path / "a.txt"]


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_read_raw_file_guesses_content_type(tmp_path) -> None:
    path = tmp_path / "notes.md"
    path.write_text("# Notes")

    raw = cli.read_raw_file(path)

    assert raw.name == "notes.md"
    assert raw.data == b"# Notes"
    assert raw.size == 7


@pytest.mark.asyncio
async def test_ingest_command(tmp_path, store, fake_embedder, test_settings, capsys) -> None:
    (tmp_path / "a.txt").write_text("Hello world.")
    args = cli.build_parser().parse_args(["ingest", "--folder-id", "F1", str(tmp_path / "a.txt")])

    code = await cli.run(args, store, fake_embedder, test_settings)

    assert code == 0
    body = json.loads(capsys.readouterr().out)
    assert body["failed_count"] == 0
    assert body["succeeded"][0]["status"] == "indexed"
    assert "embedding" not in body["succeeded"][0]
    assert "content" not in body["succeeded"][0]


@pytest.mark.asyncio
async def test_ingest_command_with_failures_exits_1(
    tmp_path, store, fake_embedder, test_settings, capsys
) -> None:
    (tmp_path / "a.bin").write_bytes(b"\x00\x01")
    args = cli.build_parser().parse_args(["ingest", "--folder-id", "F1", str(tmp_path / "a.bin")])

    assert await cli.run(args, store, fake_embedder, test_settings) == 1
    assert json.loads(capsys.readouterr().out)["failed"][0]["name"] == "a.bin"


@pytest.mark.asyncio
async def test_reindex_command(tmp_path, store, test_settings, capsys) -> None:
    (tmp_path / "a.txt").write_text("Hello world.")
    ingest = cli.build_parser().parse_args(["ingest", "--folder-id", "F1", str(tmp_path / "a.txt")])
    await cli.run(ingest, store, FailingEmbedder(), test_settings)
    [doc] = await store.list_documents()
    assert doc.status is DocumentStatus.ERROR
    capsys.readouterr()

    args = cli.build_parser().parse_args(["reindex", doc.id])
    assert await cli.run(args, store, FakeEmbedder(), test_settings) == 0
    assert json.loads(capsys.readouterr().out)["status"] == "indexed"


@pytest.mark.asyncio
async def test_stats_command(store, test_settings, capsys) -> None:
    args = cli.build_parser().parse_args(["stats"])

    assert await cli.run(args, store, config=test_settings) == 0
    assert json.loads(capsys.readouterr().out)["total_documents"] == 0


def test_main_reports_store_errors(monkeypatch, capsys) -> None:
    broken = InMemoryDocumentStore()

    async def unavailable() -> None:
        raise DocumentStoreError("database is locked")

    monkeypatch.setattr(broken, "initialize", unavailable)
    monkeypatch.setattr(cli, "build_store", lambda config: broken)

    assert cli.main(["stats"]) == 2
    assert json.loads(capsys.readouterr().err.splitlines()[-1]) == {"error": "database is locked"}


def test_main_reports_missing_files(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.setattr(cli, "build_store", lambda config: InMemoryDocumentStore())
    monkeypatch.setattr(cli, "get_embedder", lambda config: FailingEmbedder())

    assert cli.main(["ingest", "--folder-id", "F1", str(tmp_path / "missing.txt")]) == 2
    assert "missing.txt" in json.loads(capsys.readouterr().err.splitlines()[-1])["error"]
