"""Tests for the click CLI."""

import asyncio

import httpx
import pytest
from click.testing import CliRunner

from card_uploads.cli import main as cli_main
from card_uploads.cli.main import cli, format_size, run_resumable
from card_uploads.core.api import CardUploadAPI
from card_uploads.core.client import AttachmentsClient
from card_uploads.core.ledger import UploadLedger
from card_uploads.core.models import Attachment, UploaderConfig, UploadRecord, UploadStatus


@pytest.fixture
def ledger_path(tmp_path):
    path = tmp_path / "uploads.db"
    with UploadLedger(path) as ledger:
        ledger.save(
            UploadRecord(
                upload_id="upload-a",
                file_name="notes.txt",
                file_size=10,
                card_id=7,
                chunk_size=4,
                total_chunks=3,
                uploaded_chunks=1,
                status=UploadStatus.PAUSED,
            )
        )
    return str(path)


@pytest.fixture
def mocked_board(monkeypatch, board):
    """Route every CardUploadAPI the CLI builds to the mocked board API."""

    def make_api(config, progress_callback=None):
        return CardUploadAPI(
            config,
            progress_callback=progress_callback,
            http_transport=httpx.MockTransport(board),
        )

    monkeypatch.setattr(cli_main, "CardUploadAPI", make_api)
    return board


@pytest.fixture
def local_file(tmp_path):
    path = tmp_path / "files" / "notes.txt"
    path.parent.mkdir()
    path.write_bytes(b"0123456789")
    return path


@pytest.fixture
def runner(monkeypatch):
    for name in ("CARD_UPLOADS_API_URL", "CARD_UPLOADS_TOKEN", "CARD_UPLOADS_LEDGER"):
        monkeypatch.delenv(name, raising=False)
    return CliRunner()


def test_list_uploads_shows_ledger_records(runner, ledger_path):
    result = runner.invoke(cli, ["--ledger", ledger_path, "list-uploads"])

    assert result.exit_code == 0
    assert "upload-a" in result.output
    assert "notes.txt" in result.output
    assert "paused" in result.output


def test_list_uploads_with_empty_ledger(runner, tmp_path):
    result = runner.invoke(cli, ["--ledger", str(tmp_path / "empty.db"), "list-uploads"])

    assert result.exit_code == 0
    assert "No uploads" in result.output


def test_cancel_local_only_removes_record(runner, ledger_path):
    result = runner.invoke(
        cli,
        ["--api-url", "http://board.test", "--ledger", ledger_path, "cancel", "upload-a", "--local-only"],
    )

    assert result.exit_code == 0
    assert "Cancelled upload upload-a" in result.output
    with UploadLedger(ledger_path) as ledger:
        assert ledger.get("upload-a") is None


def test_cancel_unknown_upload(runner, ledger_path):
    result = runner.invoke(
        cli, ["--api-url", "http://board.test", "--ledger", ledger_path, "cancel", "upload-zzz"]
    )

    assert result.exit_code == 0
    assert "No upload upload-zzz" in result.output


def test_missing_api_url_is_reported(runner, ledger_path):
    result = runner.invoke(cli, ["--ledger", ledger_path, "cancel", "upload-a"])

    assert result.exit_code == 1
    assert "CARD_UPLOADS_API_URL" in result.output


def test_format_size():
    assert format_size(512) == "512 B"
    assert format_size(2048) == "2.0 KB"
    assert format_size(int(2.5 * 1024 * 1024)) == "2.5 MB"


def test_resumable_upload_command(runner, mocked_board, tmp_path, local_file):
    ledger_path = str(tmp_path / "uploads.db")
    result = runner.invoke(
        cli,
        [
            "--api-url", "http://board.test",
            "--ledger", ledger_path,
            "upload", str(local_file), "7",
            "--resumable", "--chunk-size", "4",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "completed" in result.output
    assert "attachment 11" in result.output
    assert mocked_board.chunk_indexes == [0, 1, 2]
    with UploadLedger(ledger_path) as ledger:
        assert ledger.get_all() == []


def test_small_file_uses_single_request(runner, mocked_board, monkeypatch, tmp_path, local_file):
    sent = []

    def fake_upload(self, card_id, local_path):
        sent.append((card_id, str(local_path)))
        return Attachment(
            id=42,
            file_name="notes.txt",
            file_url="/api/files/download/notes.txt",
            file_size=10,
            card_id=card_id,
        )

    monkeypatch.setattr(AttachmentsClient, "upload_file", fake_upload)
    result = runner.invoke(
        cli,
        ["--api-url", "http://board.test", "--ledger", str(tmp_path / "uploads.db"),
         "upload", str(local_file), "7"],
    )

    assert result.exit_code == 0, result.output
    assert "attachment 42" in result.output
    assert sent == [(7, str(local_file))]
    assert mocked_board.requests == []


def test_resume_command_with_resupplied_file(runner, mocked_board, ledger_path, local_file):
    result = runner.invoke(
        cli,
        ["--api-url", "http://board.test", "--ledger", ledger_path,
         "resume", "upload-a", str(local_file)],
    )

    assert result.exit_code == 0, result.output
    assert "Upload upload-a completed" in result.output
    assert mocked_board.chunk_indexes == [1, 2]


def test_resume_command_reports_mismatched_file(runner, mocked_board, ledger_path, tmp_path):
    other = tmp_path / "notes.txt"
    other.write_bytes(b"01234")

    result = runner.invoke(
        cli,
        ["--api-url", "http://board.test", "--ledger", ledger_path,
         "resume", "upload-a", str(other)],
    )

    assert result.exit_code == 1
    assert "does not match" in result.output
    assert mocked_board.chunk_indexes == []
    with UploadLedger(ledger_path) as ledger:
        assert ledger.get("upload-a").status == UploadStatus.PAUSED


def test_resume_command_without_file(runner, mocked_board, ledger_path):
    result = runner.invoke(
        cli, ["--api-url", "http://board.test", "--ledger", ledger_path, "resume", "upload-a"]
    )

    assert result.exit_code == 1
    assert "not available" in result.output


@pytest.mark.asyncio
async def test_interrupted_upload_is_left_paused(monkeypatch, board, tmp_path, local_file):
    reached_second_chunk = asyncio.Event()

    async def handler(request):
        if request.url.path == "/api/upload/chunk":
            index = int(board.CHUNK_INDEX.search(request.content).group(1))
            if index == 1:
                reached_second_chunk.set()
                await asyncio.Event().wait()
        return board(request)

    def make_api(config, progress_callback=None):
        return CardUploadAPI(
            config, progress_callback=progress_callback, http_transport=httpx.MockTransport(handler)
        )

    monkeypatch.setattr(cli_main, "CardUploadAPI", make_api)
    ledger_path = str(tmp_path / "uploads.db")
    config = UploaderConfig(api_url="http://board.test", ledger_path=ledger_path)

    task = asyncio.ensure_future(
        run_resumable(config, local_path=str(local_file), card_id=7, chunk_size=4)
    )
    await reached_second_chunk.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    with UploadLedger(ledger_path) as ledger:
        records = ledger.get_all()

    assert len(records) == 1
    assert records[0].status == UploadStatus.PAUSED
    assert records[0].uploaded_chunks == 1
    assert records[0].source_path == str(local_file.resolve())
    assert board.chunk_indexes == [0]
