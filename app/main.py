import argparse
import json
import sys
import time
from pathlib import Path

from app.cache.connection import init_redis
from app.config.settings import Settings
from app.database.connection import close_pool, init_pool
from app.document.exceptions import BatchNotFoundError, DocumentError
from app.document.models import BATCH_COMPLETED, UploadedFile
from app.document.service import DocumentService, build_document_service
from app.external.client import build_extraction_client
from app.logging.logger import Log

STATUS_POLL_INTERVAL_SECONDS = 1.0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="dokuprime-ingest",
        description="Ingest documents into the document store and extraction service",
    )
    sub = p.add_subparsers(dest="command", required=True)

    batch = sub.add_parser("batch", help="Upload local files as one batch and wait for it")
    batch.add_argument("files", nargs="+", type=Path)
    batch.add_argument("--category", required=True)
    batch.add_argument("--staff", required=True, help="Submitter identity (e-mail)")
    batch.add_argument("--team", default="")
    batch.add_argument("--auto-approve", action="store_true")

    upload = sub.add_parser("upload", help="Upload a single file")
    upload.add_argument("file", type=Path)
    upload.add_argument("--category", required=True)
    upload.add_argument("--staff", required=True)
    upload.add_argument("--team", default="")
    upload.add_argument("--auto-approve", action="store_true")

    status = sub.add_parser("status", help="Print the stored status of a batch")
    status.add_argument("batch_id")
    return p


def read_files(paths: list[Path]) -> list[UploadedFile]:
    """Load files from disk, skipping any that cannot be read."""
    files = []
    for path in paths:
        try:
            files.append(UploadedFile.from_bytes(path.name, path.read_bytes()))
        except OSError as exc:
            Log.warning(f"Failed to read file during preparation: {exc}", file=str(path))
    return files


def run_batch(service: DocumentService, args: argparse.Namespace) -> int:
    batch_id = service.start_batch_upload(
        read_files(args.files), args.category, args.staff, args.team, args.auto_approve
    )
    print(json.dumps({"batch_id": batch_id}))
    while True:
        status = service.get_batch_status(batch_id)
        if status.get("status") == BATCH_COMPLETED:
            print(json.dumps(status, indent=2))
            return 0
        time.sleep(STATUS_POLL_INTERVAL_SECONDS)


def run_upload(service: DocumentService, args: argparse.Namespace) -> int:
    files = read_files([args.file])
    if not files:
        return 1
    outcome = service.upload_document(
        files[0], args.category, args.staff, args.team, auto_approve=args.auto_approve
    )
    while service.get_extraction_queue_size() > 0:
        time.sleep(STATUS_POLL_INTERVAL_SECONDS)
    print(
        json.dumps(
            {
                "filename": outcome.filename,
                "success": outcome.success,
                "document_id": outcome.document_id,
                "detail_id": outcome.detail_id,
                "reason": outcome.reason,
            }
        )
    )
    return 0 if outcome.success else 1


def run_status(service: DocumentService, args: argparse.Namespace) -> int:
    try:
        status = service.get_batch_status(args.batch_id)
    except BatchNotFoundError:
        print("Batch ID not found or expired", file=sys.stderr)
        return 1
    print(json.dumps(status, indent=2))
    return 0


COMMANDS = {"batch": run_batch, "upload": run_upload, "status": run_status}


def main(argv: list[str] | None = None) -> int:
    """Entry point: settings -> logging -> pools -> service -> command -> shutdown."""
    args = build_parser().parse_args(argv)
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)
    extraction_client = build_extraction_client(settings)
    service: DocumentService | None = None

    try:
        service = build_document_service(settings, init_redis(settings), extraction_client)
        return COMMANDS[args.command](service, args)
    except (DocumentError, ValueError) as exc:
        Log.error(f"Command {args.command} failed: {exc}")
        return 1
    finally:
        if service is not None:
            service.shutdown()
        extraction_client.close()
        close_pool()


if __name__ == "__main__":
    sys.exit(main())
