import threading
from collections.abc import Sequence
from typing import Any

import redis

from app.cache.batch_status_store import BatchStatusStore
from app.config.settings import Settings
from app.database.models import STATUS_APPROVED
from app.database.repositories.document_repository import DocumentRepository
from app.document.async_processor import AsyncProcessor
from app.document.batch import BatchCoordinator, generate_batch_id
from app.document.exceptions import (
    BatchSetupError,
    DocumentAlreadyApprovedError,
    ExtractionQueueError,
    StoredFileMissingError,
)
from app.document.models import (
    BATCH_PROCESSING,
    ExtractionJob,
    FileOutcome,
    UploadedFile,
    now_rfc3339,
)
from app.document.storage import FileStorage
from app.external.client import ExtractionClient
from app.external.exceptions import ExternalAPIError
from app.external.models import ExtractRequest
from app.logging.logger import Log


class DocumentService:
    """Entry points for batch upload, status polling, single upload and approval."""

    def __init__(
        self,
        repo: DocumentRepository,
        storage: FileStorage,
        status_store: BatchStatusStore,
        extraction_client: ExtractionClient,
        async_processor: AsyncProcessor,
        coordinator: BatchCoordinator,
    ) -> None:
        self._repo = repo
        self._storage = storage
        self._status_store = status_store
        self._extraction_client = extraction_client
        self._async_processor = async_processor
        self._coordinator = coordinator
        self._batches: dict[str, threading.Thread] = {}
        self._batches_lock = threading.Lock()

    def start_batch_upload(
        self,
        files: Sequence[UploadedFile],
        category: str,
        submitter: str,
        team: str,
        auto_approve: bool,
    ) -> str:
        """Validate setup, publish the initial snapshot and run the batch in the background.

        Returns the batch ID immediately; progress is read with
        ``get_batch_status``.

        Raises:
            ValueError: if ``files`` is empty or ``category`` is blank.
            BatchSetupError: if the upload directory or the initial snapshot
                cannot be created.
        """
        if not files:
            raise ValueError("no valid files to process")
        if not category:
            raise ValueError("category is required")

        batch_id = generate_batch_id()
        self._coordinator.prepare(batch_id)
        try:
            self._status_store.set(
                batch_id,
                {
                    "total": len(files),
                    "processed": 0,
                    "successful": 0,
                    "failed": 0,
                    "extracted": 0,
                    "status": BATCH_PROCESSING,
                    "auto_approve": auto_approve,
                    "started_at": now_rfc3339(),
                },
            )
        except redis.RedisError as exc:
            raise BatchSetupError(f"failed to set batch status: {exc}") from exc

        thread = threading.Thread(
            target=self._run_batch,
            args=(batch_id, list(files), category, submitter, team, auto_approve),
            name=f"batch-{batch_id}",
        )
        with self._batches_lock:
            self._batches[batch_id] = thread
        thread.start()
        return batch_id

    def get_batch_status(self, batch_id: str) -> dict[str, Any]:
        """Raises:
        BatchNotFoundError: unknown or expired batch.
        BatchStatusError: unreadable snapshot.
        """
        return self._status_store.get(batch_id)

    def wait_for_batch(self, batch_id: str, timeout: float | None = None) -> bool:
        """Block until a batch started by this service finishes; True if it has."""
        with self._batches_lock:
            thread = self._batches.get(batch_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def upload_document(
        self,
        uploaded: UploadedFile,
        category: str,
        submitter: str,
        team: str,
        auto_approve: bool = False,
    ) -> FileOutcome:
        """Store a single file; auto-approved files are queued for async extraction.

        A rejected queue submission is logged and does not fail the upload.

        Raises:
            BatchSetupError: if the upload directory cannot be created.
        """
        self._coordinator.prepare("single")
        outcome = self._coordinator.store_file(
            uploaded,
            category=category,
            submitter=submitter,
            team=team,
            auto_approve=auto_approve,
        )
        if outcome.success and auto_approve:
            self._submit_extraction(
                outcome.detail_id,
                ExtractRequest(
                    document_id=outcome.document_id,
                    category=category,
                    filename=outcome.filename,
                    file_path=outcome.stored_path or "",
                ),
            )
        return outcome

    def approve_document(self, detail_id: int) -> None:
        """Approve a detail, make it the latest revision, and queue it for extraction.

        Raises:
            DocumentNotFoundError: unknown detail or document.
            DocumentAlreadyApprovedError: the detail is already approved.
            StoredFileMissingError: the stored file is gone.
        """
        detail = self._repo.find_detail_by_id(detail_id)
        if detail.status == STATUS_APPROVED:
            raise DocumentAlreadyApprovedError("document is already approved")

        document = self._repo.find_document_by_id(detail.document_id)
        path = self._storage.path_for(detail.filename)
        if not path.exists():
            raise StoredFileMissingError(f"document file not found: {detail.filename}")

        try:
            self._extraction_client.delete_document(detail.document_id, document.category)
        except ExternalAPIError as exc:
            Log.warning(
                f"Failed to delete document from external API: {exc}",
                document_id=detail.document_id,
            )
        else:
            Log.info("Deleted document from external API", document_id=detail.document_id)

        self._repo.mark_approved_latest(detail)

        self._submit_extraction(
            detail_id,
            ExtractRequest(
                document_id=detail.document_id,
                category=document.category,
                filename=detail.document_name,
                file_path=str(path),
            ),
        )

    def get_extraction_queue_size(self) -> int:
        return self._async_processor.queue_depth()

    def shutdown(self) -> None:
        """Wait for running batches, then stop the extraction workers."""
        with self._batches_lock:
            threads = list(self._batches.values())
        for thread in threads:
            thread.join()
        self._async_processor.shutdown()

    def _submit_extraction(self, detail_id: int, request: ExtractRequest) -> None:
        try:
            self._async_processor.submit(ExtractionJob(detail_id=detail_id, request=request))
        except ExtractionQueueError as exc:
            Log.warning(f"Failed to submit extraction job: {exc}", detail_id=detail_id)

    def _run_batch(
        self,
        batch_id: str,
        files: list[UploadedFile],
        category: str,
        submitter: str,
        team: str,
        auto_approve: bool,
    ) -> None:
        try:
            self._coordinator.run_batch(
                files, category, submitter, team, auto_approve, batch_id=batch_id
            )
        except Exception:
            Log.exception("Batch aborted", batch_id=batch_id)
        finally:
            with self._batches_lock:
                self._batches.pop(batch_id, None)


def build_document_service(
    settings: Settings,
    redis_client: redis.Redis,
    extraction_client: ExtractionClient,
) -> DocumentService:
    """Wire a DocumentService from settings; starts the extraction workers."""
    repo = DocumentRepository()
    storage = FileStorage(settings.upload_path)
    status_store = BatchStatusStore(redis_client, settings.batch_status_ttl_seconds)
    async_processor = AsyncProcessor(
        extraction_client,
        worker_count=settings.extraction_worker_count,
        queue_size=settings.extraction_queue_size,
    )
    coordinator = BatchCoordinator(
        repo,
        storage,
        status_store,
        extraction_client,
        max_file_size_bytes=settings.max_file_size_bytes,
        worker_count=settings.batch_worker_count,
    )
    return DocumentService(
        repo=repo,
        storage=storage,
        status_store=status_store,
        extraction_client=extraction_client,
        async_processor=async_processor,
        coordinator=coordinator,
    )
