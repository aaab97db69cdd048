import itertools
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from app.cache.batch_status_store import BatchStatusStore
from app.database.models import DocumentDetailRecord
from app.document.batch import BatchCoordinator
from app.document.storage import FileStorage
from app.external.client import ExtractionClient

MIB = 1024 * 1024


class InMemoryRedis:
    """The subset of redis.Redis used by BatchStatusStore, recording every write."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.writes: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def set(self, key: str, value: str, ex: int | None = None) -> bool:
        with self._lock:
            self.data[key] = value
            self.ttls[key] = ex
            self.writes.append((key, value))
        return True

    def get(self, key: str) -> str | None:
        with self._lock:
            return self.data.get(key)


class FakeDocumentRepository:
    """Thread-safe stand-in for DocumentRepository.create_document."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.fail_with = fail_with
        self.documents: dict[int, str] = {}
        self.details: dict[int, DocumentDetailRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def create_document(
        self, category: str, detail: DocumentDetailRecord
    ) -> tuple[int, DocumentDetailRecord]:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            document_id = next(self._ids)
            detail.document_id = document_id
            detail.id = next(self._ids)
            detail.created_at = datetime.now()
            self.documents[document_id] = category
            self.details[detail.id] = detail
        return document_id, detail


@pytest.fixture()
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture()
def status_store(fake_redis: InMemoryRedis) -> BatchStatusStore:
    return BatchStatusStore(fake_redis)  # type: ignore[arg-type]


@pytest.fixture()
def fake_repo() -> FakeDocumentRepository:
    return FakeDocumentRepository()


@pytest.fixture()
def extraction_client() -> MagicMock:
    return MagicMock(spec=ExtractionClient)


@pytest.fixture()
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads" / "documents"


@pytest.fixture()
def make_coordinator(
    fake_repo: FakeDocumentRepository,
    status_store: BatchStatusStore,
    extraction_client: MagicMock,
    upload_dir: Path,
) -> Callable[..., BatchCoordinator]:
    def _make(
        *,
        repo: Any = None,
        worker_count: int = 3,
        max_file_size_mb: int = 70,
        storage_dir: Path | None = None,
    ) -> BatchCoordinator:
        return BatchCoordinator(
            repo if repo is not None else fake_repo,  # type: ignore[arg-type]
            FileStorage(storage_dir if storage_dir is not None else upload_dir),
            status_store,
            extraction_client,
            max_file_size_bytes=max_file_size_mb * MIB,
            worker_count=worker_count,
        )

    return _make
