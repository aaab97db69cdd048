import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from app.document.exceptions import BatchNotFoundError, BatchSetupError
from app.document.models import FileOutcome
from app.document.service import DocumentService
from app.main import build_parser, main, read_files, run_batch, run_status, run_upload


class TestParser:
    def test_batch_command(self) -> None:
        args = build_parser().parse_args(
            ["batch", "a.pdf", "b.txt", "--category", "HR", "--staff", "s@x", "--auto-approve"]
        )

        assert args.command == "batch"
        assert args.files == [Path("a.pdf"), Path("b.txt")]
        assert args.category == "HR"
        assert args.team == ""
        assert args.auto_approve is True

    def test_category_is_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["upload", "a.pdf", "--staff", "s@x"])

    def test_status_command(self) -> None:
        args = build_parser().parse_args(["status", "abc123"])

        assert (args.command, args.batch_id) == ("status", "abc123")


class TestReadFiles:
    def test_skips_unreadable_files(self, tmp_path: Path) -> None:
        present = tmp_path / "a.pdf"
        present.write_bytes(b"%PDF")

        files = read_files([present, tmp_path / "missing.pdf"])

        assert [f.filename for f in files] == ["a.pdf"]
        assert files[0].size == 4


class TestCommands:
    def test_run_status_prints_snapshot(self, capsys: pytest.CaptureFixture[str]) -> None:
        service = MagicMock(spec=DocumentService)
        service.get_batch_status.return_value = {"status": "processing", "processed": 3}

        code = run_status(service, build_parser().parse_args(["status", "abc"]))

        assert code == 0
        assert json.loads(capsys.readouterr().out)["processed"] == 3

    def test_run_status_unknown_batch(self, capsys: pytest.CaptureFixture[str]) -> None:
        service = MagicMock(spec=DocumentService)
        service.get_batch_status.side_effect = BatchNotFoundError("batch not found")

        code = run_status(service, build_parser().parse_args(["status", "abc"]))

        assert code == 1
        assert "Batch ID not found or expired" in capsys.readouterr().err

    @patch("app.main.time.sleep")
    def test_run_batch_polls_until_completed(
        self, mock_sleep: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        source = tmp_path / "a.pdf"
        source.write_bytes(b"%PDF")
        service = MagicMock(spec=DocumentService)
        service.start_batch_upload.return_value = "abc"
        service.get_batch_status.side_effect = [
            {"status": "processing"},
            {"status": "completed", "processed": 1},
        ]
        args = build_parser().parse_args(
            ["batch", str(source), "--category", "HR", "--staff", "s@x"]
        )

        code = run_batch(service, args)

        assert code == 0
        assert mock_sleep.call_count == 1
        out = capsys.readouterr().out
        assert '"batch_id": "abc"' in out
        assert '"completed"' in out

    def test_run_upload_reports_outcome(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        source = tmp_path / "a.exe"
        source.write_bytes(b"MZ")
        service = MagicMock(spec=DocumentService)
        service.upload_document.return_value = FileOutcome.failed("a.exe", "Invalid file type: exe")
        service.get_extraction_queue_size.return_value = 0
        args = build_parser().parse_args(
            ["upload", str(source), "--category", "HR", "--staff", "s@x"]
        )

        code = run_upload(service, args)

        assert code == 1
        assert json.loads(capsys.readouterr().out)["reason"] == "Invalid file type: exe"


class TestMain:
    @patch("app.main.close_pool")
    @patch("app.main.init_pool")
    @patch("app.main.init_redis")
    @patch("app.main.build_extraction_client")
    @patch("app.main.build_document_service")
    def test_domain_error_returns_one_and_shuts_down(
        self,
        mock_build_service: MagicMock,
        mock_build_client: MagicMock,
        _mock_redis: MagicMock,
        _mock_init_pool: MagicMock,
        mock_close_pool: MagicMock,
        tmp_path: Path,
    ) -> None:
        source = tmp_path / "a.pdf"
        source.write_bytes(b"%PDF")
        service = mock_build_service.return_value
        service.start_batch_upload.side_effect = BatchSetupError("failed to create upload directory")

        code = main(["batch", str(source), "--category", "HR", "--staff", "s@x"])

        assert code == 1
        service.shutdown.assert_called_once()
        mock_build_client.return_value.close.assert_called_once()
        mock_close_pool.assert_called_once()
