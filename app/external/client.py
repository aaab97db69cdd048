import time
from pathlib import Path
from typing import ClassVar

import httpx

from app.config.settings import Settings
from app.external.exceptions import (
    ExternalAPIError,
    ExternalAPINetworkError,
    UnsupportedFileTypeError,
)
from app.external.models import ExtractRequest
from app.logging.logger import Log


class ExtractionClient:
    """Synchronous client for the remote document-extraction service.

    One ``extract_document`` call uploads one stored file as multipart form
    data to the endpoint matching its extension.
    """

    EXTRACT_ENDPOINTS: ClassVar[dict[str, str]] = {
        ".pdf": "/extract/pdf",
        ".txt": "/extract/txt",
    }
    DELETE_TIMEOUT_SECONDS = 30

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: int = 300,
        max_attempts: int = 3,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._max_attempts = max(max_attempts, 1)
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"X-API-Key": api_key},
            transport=transport,
        )

    def extract_document(self, request: ExtractRequest) -> None:
        """Send a stored file to the extraction service.

        Raises:
            UnsupportedFileTypeError: the extension has no extraction endpoint.
            ExternalAPINetworkError: every attempt failed at the transport level.
            ExternalAPIError: the file could not be read or the service
                answered with a non-success status.
        """
        ext = Path(request.filename).suffix.lower()
        endpoint = self.EXTRACT_ENDPOINTS.get(ext)
        if endpoint is None:
            raise UnsupportedFileTypeError(f"unsupported file type: {ext}")

        try:
            content = Path(request.file_path).read_bytes()
        except OSError as exc:
            raise ExternalAPIError(f"failed to open file: {exc}") from exc

        response = self._send(
            "POST",
            endpoint,
            attempts=self._max_attempts,
            data={
                "id": str(request.document_id),
                "category": request.category,
                "filename": request.filename,
            },
            files={"file": (request.filename, content)},
        )
        if response.status_code not in (httpx.codes.OK, httpx.codes.CREATED):
            raise ExternalAPIError(
                f"external API returned status {response.status_code}: {response.text}"
            )

    def delete_document(self, document_id: int, category: str) -> None:
        """Remove a previously extracted document from the extraction service."""
        response = self._send(
            "DELETE",
            "/api/delete",
            attempts=1,
            params={"id": document_id, "category": category.lower()},
            timeout=self.DELETE_TIMEOUT_SECONDS,
        )
        if response.status_code not in (httpx.codes.OK, httpx.codes.NO_CONTENT):
            raise ExternalAPIError(
                f"external API delete returned status {response.status_code}: {response.text}"
            )

    def close(self) -> None:
        self._client.close()

    def _send(self, method: str, url: str, *, attempts: int, **kwargs: object) -> httpx.Response:
        """Retry transport failures with a linear backoff; HTTP statuses are returned as-is."""
        last_exc: httpx.TransportError | None = None
        for attempt in range(attempts):
            if attempt > 0:
                time.sleep(attempt)
            try:
                return self._client.request(method, url, **kwargs)  # type: ignore[arg-type]
            except httpx.TransportError as exc:
                last_exc = exc
                Log.warning(
                    f"Extraction service {method} {url} failed: {exc}",
                    attempt=attempt + 1,
                    max_attempts=attempts,
                )
            except httpx.HTTPError as exc:
                raise ExternalAPIError(f"external API request failed: {exc}") from exc
        raise ExternalAPINetworkError(
            f"failed to send request after {attempts} attempts: {last_exc}"
        ) from last_exc


def build_extraction_client(settings: Settings) -> ExtractionClient:
    return ExtractionClient(
        base_url=settings.external_api_base_url,
        api_key=settings.x_api_key,
        timeout_seconds=settings.external_api_timeout_seconds,
        max_attempts=settings.external_api_max_attempts,
    )
