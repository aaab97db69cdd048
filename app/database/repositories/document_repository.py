from datetime import datetime

from psycopg.rows import dict_row

from app.database.connection import get_connection
from app.database.models import STATUS_APPROVED, DocumentDetailRecord, DocumentRecord
from app.document.exceptions import DocumentNotFoundError


class DocumentRepository:
    """Database operations for the documents and document_details tables."""

    def insert_document(self, category: str) -> int:
        """Insert a document row and return its generated ID."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO documents (category) VALUES (%s) RETURNING id",
                    (category,),
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            raise RuntimeError("INSERT INTO documents returned no id")
        return int(row[0])

    def insert_document_detail(self, detail: DocumentDetailRecord) -> tuple[int, datetime]:
        """Insert a detail row; returns (id, created_at) assigned by the database."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO document_details
                    (document_id, document_name, filename, data_type, staff, team,
                     status, is_latest, is_approve, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
                    RETURNING id, created_at
                    """,
                    (
                        detail.document_id,
                        detail.document_name,
                        detail.filename,
                        detail.data_type,
                        detail.staff,
                        detail.team,
                        detail.status,
                        detail.is_latest,
                        detail.is_approve,
                    ),
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            raise RuntimeError("INSERT INTO document_details returned no id")
        return int(row[0]), row[1]

    def create_document(
        self, category: str, detail: DocumentDetailRecord
    ) -> tuple[int, DocumentDetailRecord]:
        """Insert a document then its first detail.

        The two inserts commit separately; a failure after the first leaves a
        document row without details.
        """
        document_id = self.insert_document(category)
        detail.document_id = document_id
        detail.id, detail.created_at = self.insert_document_detail(detail)
        return document_id, detail

    def find_document_by_id(self, document_id: int) -> DocumentRecord:
        """Raises:
        DocumentNotFoundError: if no document with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT id, category FROM documents WHERE id = %s",
                    (document_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return DocumentRecord(id=row["id"], category=row["category"])

    def find_detail_by_id(self, detail_id: int) -> DocumentDetailRecord:
        """Raises:
        DocumentNotFoundError: if no detail with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, document_id, document_name, filename, data_type,
                           staff, team, status, is_latest, is_approve, created_at
                    FROM document_details
                    WHERE id = %s
                    """,
                    (detail_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise DocumentNotFoundError(f"Document detail {detail_id} not found")

        return DocumentDetailRecord(
            id=row["id"],
            document_id=row["document_id"],
            document_name=row["document_name"],
            filename=row["filename"],
            data_type=row["data_type"],
            staff=row["staff"],
            team=row["team"],
            status=row["status"],
            is_latest=row["is_latest"],
            is_approve=row["is_approve"],
            created_at=row["created_at"],
        )

    def mark_approved_latest(self, detail: DocumentDetailRecord) -> None:
        """Make ``detail`` the single approved, latest revision of its document."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE document_details
                    SET is_approve = FALSE, is_latest = FALSE
                    WHERE document_id = %s AND id <> %s
                    """,
                    (detail.document_id, detail.id),
                )
                cur.execute(
                    """
                    UPDATE document_details
                    SET is_approve = TRUE, is_latest = TRUE, status = %s
                    WHERE id = %s
                    """,
                    (STATUS_APPROVED, detail.id),
                )
                if cur.rowcount == 0:
                    raise DocumentNotFoundError(f"Document detail {detail.id} not found")
            conn.commit()

        detail.status = STATUS_APPROVED
        detail.is_approve = True
        detail.is_latest = True
