import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.external.models import ExtractRequest

BATCH_PROCESSING = "processing"
BATCH_COMPLETED = "completed"


def now_rfc3339() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


@dataclass(frozen=True)
class UploadedFile:
    """A submitted file held in memory until it is stored or rejected."""

    filename: str
    size: int
    content: bytes

    @classmethod
    def from_bytes(cls, filename: str, content: bytes) -> "UploadedFile":
        return cls(filename=filename, size=len(content), content=content)


@dataclass(frozen=True)
class ExtractionJob:
    """Queued request to extract one stored document."""

    detail_id: int
    request: ExtractRequest


@dataclass
class FileOutcome:
    """Result of ingesting one file; ``reason`` is set on failure."""

    filename: str
    success: bool
    document_id: int = 0
    detail_id: int = 0
    stored_path: str | None = None
    reason: str = ""

    @classmethod
    def failed(cls, filename: str, reason: str) -> "FileOutcome":
        return cls(filename=filename, success=False, reason=reason)


@dataclass
class BatchStats:
    """Per-batch counters shared by the batch workers.

    Every mutation runs under ``_lock``; when a flush is due the snapshot is
    taken and handed to ``publish`` inside the same critical section so
    stored snapshots never go backwards.
    """

    batch_id: str
    total: int
    auto_approve: bool
    publish: Callable[[dict[str, Any]], None] | None = None
    progress_every: int = 10
    clock: Callable[[], str] = now_rfc3339
    processed: int = 0
    successful: int = 0
    failed: int = 0
    extracted: int = 0
    completed_at: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, outcome: FileOutcome) -> None:
        """Count one file outcome and publish progress every Nth file and at completion."""
        with self._lock:
            self.processed += 1
            if outcome.success:
                self.successful += 1
                # Counts stored documents, not confirmed extractions.
                if self.auto_approve and outcome.document_id > 0 and outcome.detail_id > 0:
                    self.extracted += 1
            else:
                self.failed += 1

            done = self.processed == self.total
            if done:
                self.completed_at = self.clock()
            if self.publish is not None and (done or self.processed % self.progress_every == 0):
                self.publish(self._snapshot())

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> dict[str, Any]:
        done = self.processed == self.total
        data: dict[str, Any] = {
            "total": self.total,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "extracted": self.extracted,
            "status": BATCH_COMPLETED if done else BATCH_PROCESSING,
            "auto_approve": self.auto_approve,
        }
        if done and self.completed_at is not None:
            data["completed_at"] = self.completed_at
        return data
