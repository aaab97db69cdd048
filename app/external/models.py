from dataclasses import dataclass


@dataclass(frozen=True)
class ExtractRequest:
    """One document to send to the extraction service."""

    document_id: int
    category: str
    filename: str
    file_path: str
