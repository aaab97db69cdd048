import json
from typing import Any

import redis

from app.document.exceptions import BatchNotFoundError, BatchStatusError
from app.document.models import now_rfc3339

BATCH_KEY_PREFIX = "batch_upload:"
DEFAULT_TTL_SECONDS = 24 * 60 * 60


class BatchStatusStore:
    """JSON progress snapshots for batch uploads, one Redis key per batch with a TTL."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._client = client
        self._ttl_seconds = ttl_seconds

    @staticmethod
    def key_for(batch_id: str) -> str:
        return BATCH_KEY_PREFIX + batch_id

    def set(self, batch_id: str, snapshot: dict[str, Any]) -> None:
        self._client.set(self.key_for(batch_id), json.dumps(snapshot), ex=self._ttl_seconds)

    def get(self, batch_id: str) -> dict[str, Any]:
        """Return the latest snapshot.

        Raises:
            BatchNotFoundError: if the key is missing or expired.
            BatchStatusError: if Redis fails or the stored blob is not a JSON object.
        """
        try:
            data = self._client.get(self.key_for(batch_id))
        except redis.RedisError as exc:
            raise BatchStatusError(f"failed to get batch status: {exc}") from exc
        if data is None:
            raise BatchNotFoundError("batch not found")
        try:
            snapshot = json.loads(data)
        except ValueError as exc:
            raise BatchStatusError(f"failed to parse batch status: {exc}") from exc
        if not isinstance(snapshot, dict):
            raise BatchStatusError("failed to parse batch status: not a JSON object")
        return snapshot

    def started_at(self, batch_id: str) -> str:
        """Recover ``started_at`` from the stored snapshot, or fall back to now."""
        try:
            snapshot = self.get(batch_id)
        except (BatchNotFoundError, BatchStatusError):
            return now_rfc3339()
        started = snapshot.get("started_at")
        return started if isinstance(started, str) else now_rfc3339()
