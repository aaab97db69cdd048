import queue
import secrets
import string
import threading
from collections.abc import Sequence
from typing import Any

import psycopg
import redis

from app.cache.batch_status_store import BatchStatusStore
from app.database.models import STATUS_APPROVED, STATUS_PENDING, DocumentDetailRecord
from app.database.repositories.document_repository import DocumentRepository
from app.document.exceptions import BatchSetupError
from app.document.models import BatchStats, FileOutcome, UploadedFile
from app.document.storage import FileStorage, data_type_of
from app.external.client import ExtractionClient
from app.external.models import ExtractRequest
from app.logging.logger import Log

VALID_TYPES = frozenset({"pdf", "docx", "txt", "doc"})
BATCH_ID_ALPHABET = string.ascii_letters + string.digits


def generate_batch_id(length: int = 16) -> str:
    return "".join(secrets.choice(BATCH_ID_ALPHABET) for _ in range(length))


class BatchCoordinator:
    """Ingests a batch of files over a fixed pool of worker threads.

    Workers drain a shared queue of files. Each file is validated, written to
    the upload directory and recorded as a document plus its first detail.
    For auto-approved batches the stored file is sent to the extraction
    service inline; extraction failures are logged and never turn a stored
    file into a failure. Counters live in a per-batch ``BatchStats`` which
    publishes snapshots to the status store every 10th file and at
    completion. A failing file never aborts the rest of the batch.
    """

    DEFAULT_WORKER_COUNT = 10

    def __init__(
        self,
        repo: DocumentRepository,
        storage: FileStorage,
        status_store: BatchStatusStore,
        extraction_client: ExtractionClient,
        *,
        max_file_size_bytes: int,
        worker_count: int = DEFAULT_WORKER_COUNT,
    ) -> None:
        self._repo = repo
        self._storage = storage
        self._status_store = status_store
        self._extraction_client = extraction_client
        self._max_file_size_bytes = max_file_size_bytes
        self._worker_count = worker_count if worker_count > 0 else self.DEFAULT_WORKER_COUNT

    @property
    def worker_count(self) -> int:
        return self._worker_count

    def prepare(self, batch_id: str) -> None:
        """Create the upload directory.

        Raises:
            BatchSetupError: if the directory cannot be created.
        """
        try:
            self._storage.ensure_upload_dir()
        except OSError as exc:
            Log.error(f"Failed to create upload directory: {exc}", batch_id=batch_id)
            raise BatchSetupError(f"failed to create upload directory: {exc}") from exc

    def run_batch(
        self,
        files: Sequence[UploadedFile],
        category: str,
        submitter: str,
        team: str,
        auto_approve: bool,
        batch_id: str | None = None,
    ) -> str:
        """Process every file to completion and return the batch ID.

        Blocks until all workers have exited; there is no way to abort a
        running batch.

        Raises:
            ValueError: if ``files`` is empty or ``category`` is blank.
            BatchSetupError: if the upload directory cannot be created.
        """
        if not files:
            raise ValueError("no valid files to process")
        if not category:
            raise ValueError("category is required")

        batch_id = batch_id or generate_batch_id()
        self.prepare(batch_id)

        stats = BatchStats(
            batch_id=batch_id,
            total=len(files),
            auto_approve=auto_approve,
            publish=lambda snapshot: self._publish(batch_id, snapshot),
        )
        work: queue.Queue[UploadedFile] = queue.Queue()
        for uploaded in files:
            work.put(uploaded)

        Log.info(
            f"Batch started with {len(files)} files",
            batch_id=batch_id,
            workers=self._worker_count,
            auto_approve=auto_approve,
        )
        workers = [
            threading.Thread(
                target=self._run_worker,
                args=(worker_id, work, stats, category, submitter, team),
                name=f"batch-{batch_id}-{worker_id}",
            )
            for worker_id in range(self._worker_count)
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        final = stats.snapshot()
        Log.info(
            f"Batch completed: {final['successful']}/{final['total']} successful, "
            f"{final['failed']} failed, {final['extracted']} extracted",
            batch_id=batch_id,
        )
        return batch_id

    def process_file(
        self,
        uploaded: UploadedFile,
        *,
        category: str,
        submitter: str,
        team: str,
        auto_approve: bool,
        batch_id: str = "",
        worker_id: int = 0,
    ) -> FileOutcome:
        """Store one file and, when auto-approved, extract it inline."""
        outcome = self.store_file(
            uploaded,
            category=category,
            submitter=submitter,
            team=team,
            auto_approve=auto_approve,
            batch_id=batch_id,
            worker_id=worker_id,
        )
        if outcome.success and auto_approve:
            self._extract_inline(outcome, category, batch_id, worker_id)
        return outcome

    def store_file(
        self,
        uploaded: UploadedFile,
        *,
        category: str,
        submitter: str,
        team: str,
        auto_approve: bool,
        batch_id: str = "",
        worker_id: int = 0,
    ) -> FileOutcome:
        """Validate, write and persist one file. Never raises for per-file problems."""
        filename = uploaded.filename
        ctx = {"batch_id": batch_id, "worker": worker_id, "file": filename}

        if uploaded.size > self._max_file_size_bytes:
            Log.warning("File exceeds size limit", **ctx)
            return FileOutcome.failed(
                filename,
                f"File size exceeds maximum limit of {self._max_file_size_bytes // (1024 * 1024)} MB",
            )

        data_type = data_type_of(filename)
        if data_type not in VALID_TYPES:
            Log.warning("File has invalid type", **ctx)
            return FileOutcome.failed(filename, f"Invalid file type: {data_type or 'none'}")

        try:
            stored_filename, path = self._storage.write(filename, uploaded.content)
        except OSError as exc:
            Log.error(f"Failed to write file: {exc}", **ctx)
            return FileOutcome.failed(filename, f"Failed to save file: {exc}")

        detail = DocumentDetailRecord(
            document_id=0,
            document_name=filename,
            filename=stored_filename,
            data_type=data_type,
            staff=submitter,
            team=team,
            status=STATUS_APPROVED if auto_approve else STATUS_PENDING,
            is_latest=True,
            is_approve=True if auto_approve else None,
        )
        try:
            document_id, detail = self._repo.create_document(category, detail)
        except psycopg.Error as exc:
            Log.error(f"Database error: {exc}", **ctx)
            self._storage.remove(path)
            return FileOutcome.failed(filename, str(exc))
        except Exception as exc:
            Log.exception("Failed to record document", **ctx)
            self._storage.remove(path)
            return FileOutcome.failed(filename, str(exc))

        return FileOutcome(
            filename=filename,
            success=True,
            document_id=document_id,
            detail_id=detail.id,
            stored_path=str(path),
        )

    def _extract_inline(
        self, outcome: FileOutcome, category: str, batch_id: str, worker_id: int
    ) -> None:
        ctx = {
            "batch_id": batch_id,
            "worker": worker_id,
            "file": outcome.filename,
            "document_id": outcome.document_id,
        }
        request = ExtractRequest(
            document_id=outcome.document_id,
            category=category,
            filename=outcome.filename,
            file_path=outcome.stored_path or "",
        )
        try:
            self._extraction_client.extract_document(request)
        except Exception as exc:
            Log.error(f"Failed to extract file to external API: {exc}", **ctx)
            return
        Log.info("Extracted file to external API", **ctx)

    def _run_worker(
        self,
        worker_id: int,
        work: "queue.Queue[UploadedFile]",
        stats: BatchStats,
        category: str,
        submitter: str,
        team: str,
    ) -> None:
        while True:
            try:
                uploaded = work.get_nowait()
            except queue.Empty:
                return
            try:
                outcome = self.process_file(
                    uploaded,
                    category=category,
                    submitter=submitter,
                    team=team,
                    auto_approve=stats.auto_approve,
                    batch_id=stats.batch_id,
                    worker_id=worker_id,
                )
            except Exception as exc:
                Log.exception(
                    "Unexpected error while processing file",
                    batch_id=stats.batch_id,
                    worker=worker_id,
                    file=uploaded.filename,
                )
                outcome = FileOutcome.failed(uploaded.filename, str(exc))
            stats.record(outcome)

    def _publish(self, batch_id: str, snapshot: dict[str, Any]) -> None:
        """Write a progress snapshot, keeping the original ``started_at``."""
        snapshot["started_at"] = self._status_store.started_at(batch_id)
        try:
            self._status_store.set(batch_id, snapshot)
        except redis.RedisError as exc:
            Log.warning(f"Failed to write batch status: {exc}", batch_id=batch_id)
