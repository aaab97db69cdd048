from dataclasses import dataclass
from datetime import datetime

STATUS_PENDING = "Pending"
STATUS_APPROVED = "Approved"


@dataclass
class DocumentRecord:
    """Represents a row from the documents table."""

    id: int
    category: str


@dataclass
class DocumentDetailRecord:
    """Represents a row from the document_details table.

    ``filename`` is the generated storage name; ``document_name`` is the
    name the submitter uploaded.
    """

    document_id: int
    document_name: str
    filename: str
    data_type: str
    staff: str
    team: str
    status: str | None = None
    is_latest: bool | None = None
    is_approve: bool | None = None
    id: int = 0
    created_at: datetime | None = None
