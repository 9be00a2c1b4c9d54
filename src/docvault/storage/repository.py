"""Session-scoped queries over documents and versions."""

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.orm import Session

from docvault.models import Document, Version
from docvault.storage.schema import DocumentRow, VersionRow


def to_version(row: VersionRow) -> Version:
    return Version.model_validate(row)


def to_document(row: DocumentRow, latest: Optional[VersionRow] = None) -> Document:
    document = Document.model_validate(row)
    if latest is not None:
        document.latest_version = to_version(latest)
    return document


class DocumentRepository:
    """Reads and writes document rows inside a caller-owned session.

    Nothing here commits; the caller's session scope decides the
    transaction boundary.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_document(self, document_id: str, for_update: bool = False) -> Optional[DocumentRow]:
        stmt = select(DocumentRow).where(DocumentRow.id == document_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def list_documents(self, node_id: str) -> list[tuple[DocumentRow, Optional[VersionRow]]]:
        """Documents of a node with their current version, most recently updated first."""
        stmt = (
            select(DocumentRow, VersionRow)
            .outerjoin(
                VersionRow,
                and_(
                    VersionRow.document_id == DocumentRow.id,
                    VersionRow.version_number == DocumentRow.current_version,
                ),
            )
            .where(DocumentRow.node_id == node_id)
            .order_by(DocumentRow.updated_at.desc(), DocumentRow.id)
        )
        return [(document, version) for document, version in self.session.execute(stmt).all()]

    def get_version(self, version_id: str) -> Optional[VersionRow]:
        return self.session.get(VersionRow, version_id)

    def latest_version(self, document_id: str) -> Optional[VersionRow]:
        stmt = (
            select(VersionRow)
            .where(VersionRow.document_id == document_id)
            .order_by(VersionRow.version_number.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def max_version_number(self, document_id: str) -> int:
        stmt = select(func.max(VersionRow.version_number)).where(
            VersionRow.document_id == document_id
        )
        return self.session.execute(stmt).scalar() or 0

    def list_versions(self, document_id: str) -> list[VersionRow]:
        """All versions of a document, newest first."""
        stmt = (
            select(VersionRow)
            .where(VersionRow.document_id == document_id)
            .order_by(VersionRow.version_number.desc())
        )
        return list(self.session.execute(stmt).scalars())

    def add(self, row) -> None:
        self.session.add(row)
        self.session.flush()

    def advance_current_version(
        self,
        document_id: str,
        expected: int,
        new: int,
        updated_at: datetime,
        updated_by: Optional[str],
        title: Optional[str] = None,
    ) -> bool:
        """Compare-and-set the version counter.

        Returns:
            False if another writer moved the counter since ``expected``
            was read.
        """
        values = {
            "current_version": new,
            "updated_at": updated_at,
            "updated_by": updated_by,
        }
        if title is not None:
            values["title"] = title
        stmt = (
            update(DocumentRow)
            .where(DocumentRow.id == document_id)
            .where(DocumentRow.current_version == expected)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def delete_document(self, row: DocumentRow) -> None:
        self.session.delete(row)
        self.session.flush()
