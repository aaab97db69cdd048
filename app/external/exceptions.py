class ExternalAPIError(Exception):
    """Raised when the extraction service call fails or returns a non-success status."""


class UnsupportedFileTypeError(ExternalAPIError):
    """Raised when the extraction service has no endpoint for a file extension."""


class ExternalAPINetworkError(ExternalAPIError):
    """Raised when the extraction service is unreachable after all attempts."""
