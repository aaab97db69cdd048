class DocumentError(Exception):
    """Base exception for document ingestion errors."""


class BatchSetupError(DocumentError):
    """Raised when a batch cannot start, e.g. the upload directory cannot be created."""


class BatchNotFoundError(DocumentError):
    """Raised when no status snapshot exists for a batch ID (unknown or expired)."""


class BatchStatusError(DocumentError):
    """Raised when a stored batch snapshot cannot be read or decoded."""


class DocumentNotFoundError(DocumentError):
    """Raised when a document or document detail cannot be found in the database."""


class DocumentAlreadyApprovedError(DocumentError):
    """Raised when approving a detail that is already approved."""


class StoredFileMissingError(DocumentError):
    """Raised when the stored file for a detail is missing from the upload directory."""


class ExtractionQueueError(DocumentError):
    """Base for extraction job submission rejections."""


class QueueFullError(ExtractionQueueError):
    """Raised when the extraction job queue is at capacity."""


class ProcessorShuttingDownError(ExtractionQueueError):
    """Raised when submitting to a processor whose shutdown has begun."""
