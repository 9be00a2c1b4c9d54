"""Version lineage of documents: commit, history, revert, delete, download.

A document's state is its version rows plus the ``current_version``
counter on the document row. The counter only ever moves inside the
same transaction that inserts the matching version row, through a
compare-and-set on its previous value. A writer that loses the race
gets a TransactionError and is re-run from a fresh read.
"""

import posixpath
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError, OperationalError

from docvault.core import get_logger
from docvault.core.errors import DocVaultError, NotFoundError, TransactionError
from docvault.core.resilience import (
    TRANSACTION_RETRY,
    ErrorCategorizer,
    ErrorCategory,
    RetryConfig,
    RetryHandler,
)
from docvault.models import Document, DownloadInfo, Version
from docvault.storage.database import Database
from docvault.storage.object_store import ObjectStore, ObjectStream
from docvault.storage.repository import DocumentRepository, to_document, to_version
from docvault.storage.schema import ClassificationNodeRow, DocumentRow, VersionRow, utcnow

logger = get_logger(__name__)


@dataclass
class VersionContent:
    """Content and metadata of a version about to be committed."""

    object_key: str
    file_name: str
    mime_type: str
    file_size: int
    created_by: Optional[str] = None
    changelog: Optional[str] = None
    title: Optional[str] = None


def _document_not_found(document_id: str) -> NotFoundError:
    return NotFoundError(
        f"Document not found: {document_id}", resource="document", resource_id=document_id
    )


class VersionEngine:
    """Owns every write to document and version metadata."""

    def __init__(
        self,
        database: Database,
        store: ObjectStore,
        retry_config: RetryConfig = TRANSACTION_RETRY,
    ):
        self.database = database
        self.store = store
        self.retry_handler = RetryHandler(retry_config)

    def _in_transaction(
        self,
        document_id: Optional[str],
        work: Callable[[DocumentRepository], Any],
    ) -> Any:
        """Run ``work`` in one transaction, mapping lost races to TransactionError."""
        try:
            with self.database.session_scope() as session:
                return work(DocumentRepository(session))
        except IntegrityError as e:
            raise TransactionError(
                f"Version number already taken for document {document_id}",
                document_id=document_id,
            ) from e
        except OperationalError as e:
            if ErrorCategorizer.categorize(e) is ErrorCategory.TRANSACTION:
                raise TransactionError(
                    f"Metadata commit could not acquire its lock: {e.orig}",
                    document_id=document_id,
                ) from e
            raise

    def _with_retry(self, func: Callable[..., Any], *args) -> Any:
        return self.retry_handler.execute_sync_with_retry(func, *args, component="version_engine")

    # -- commits -----------------------------------------------------------

    def create_document_with_first_version(
        self,
        node_id: str,
        title: str,
        content: VersionContent,
    ) -> Document:
        """Create a document and its version 1 in a single transaction.

        Args:
            node_id: Owning classification node.
            title: Document title.
            content: Stored object and metadata of version 1.

        Returns:
            The new document with version 1 attached.
        """
        document_id = str(uuid.uuid4())

        def work(repo: DocumentRepository) -> Document:
            if repo.session.get(ClassificationNodeRow, node_id) is None:
                raise NotFoundError(
                    f"Classification node not found: {node_id}",
                    resource="node",
                    resource_id=node_id,
                )
            now = utcnow()
            document = DocumentRow(
                id=document_id,
                node_id=node_id,
                title=title,
                current_version=1,
                created_at=now,
                updated_at=now,
                updated_by=content.created_by,
            )
            repo.add(document)
            version = self._new_version_row(document_id, 1, title, content, now)
            repo.add(version)
            return to_document(document, version)

        document = self._with_retry(self._in_transaction, document_id, work)
        logger.info(
            "document_created",
            document_id=document_id,
            node_id=node_id,
            object_key=content.object_key,
        )
        return document

    def commit_new_version(self, document_id: str, content: VersionContent) -> Document:
        """Append version ``current_version + 1`` to an existing document.

        Raises:
            NotFoundError: If the document does not exist.
            TransactionError: If the commit kept losing races to other writers.
        """
        document = self._with_retry(self._commit_once, document_id, content)
        logger.info(
            "version_committed",
            document_id=document_id,
            version_number=document.current_version,
            object_key=content.object_key,
        )
        return document

    def _commit_once(self, document_id: str, content: VersionContent) -> Document:
        def work(repo: DocumentRepository) -> Document:
            document = repo.get_document(document_id, for_update=True)
            if document is None:
                raise _document_not_found(document_id)

            expected = document.current_version
            new_number = expected + 1
            now = utcnow()
            title = content.title or document.title
            version = self._new_version_row(document_id, new_number, title, content, now)
            repo.add(version)

            if not repo.advance_current_version(
                document_id,
                expected=expected,
                new=new_number,
                updated_at=now,
                updated_by=content.created_by,
                title=title,
            ):
                raise TransactionError(
                    f"Document {document_id} changed during commit",
                    document_id=document_id,
                )
            repo.session.refresh(document)
            return to_document(document, version)

        return self._in_transaction(document_id, work)

    @staticmethod
    def _new_version_row(document_id, number, title, content: VersionContent, now) -> VersionRow:
        return VersionRow(
            id=str(uuid.uuid4()),
            document_id=document_id,
            version_number=number,
            title=title,
            changelog=content.changelog,
            object_key=content.object_key,
            file_name=content.file_name,
            mime_type=content.mime_type,
            file_size=content.file_size,
            created_by=content.created_by,
            created_at=now,
        )

    # -- reads -------------------------------------------------------------

    def get_document(self, document_id: str) -> Document:
        """Return a document with its newest version attached."""
        with self.database.session_scope(write=False) as session:
            repo = DocumentRepository(session)
            document = repo.get_document(document_id)
            if document is None:
                raise _document_not_found(document_id)
            return to_document(document, repo.latest_version(document_id))

    def get_history(self, document_id: str) -> list[Version]:
        """All versions of a document, newest first.

        Raises:
            NotFoundError: If the document does not exist.
        """
        with self.database.session_scope(write=False) as session:
            repo = DocumentRepository(session)
            if repo.get_document(document_id) is None:
                raise _document_not_found(document_id)
            return [to_version(row) for row in repo.list_versions(document_id)]

    def list_documents(self, node_id: str) -> list[Document]:
        """Documents filed under a node, most recently updated first.

        Each document carries its current version.

        Raises:
            NotFoundError: If the node does not exist.
        """
        with self.database.session_scope(write=False) as session:
            if session.get(ClassificationNodeRow, node_id) is None:
                raise NotFoundError(
                    f"Classification node not found: {node_id}",
                    resource="node",
                    resource_id=node_id,
                )
            repo = DocumentRepository(session)
            return [to_document(row, latest) for row, latest in repo.list_documents(node_id)]

    def open_download(self, document_id: str) -> tuple[DownloadInfo, ObjectStream]:
        """Open the latest version's content for streaming.

        The caller owns the returned stream and must close it.

        Raises:
            NotFoundError: If the document or its latest version is missing.
            ObjectNotFoundError: If the stored object is gone.
        """
        with self.database.session_scope(write=False) as session:
            repo = DocumentRepository(session)
            if repo.get_document(document_id) is None:
                raise _document_not_found(document_id)
            latest = repo.latest_version(document_id)
            if latest is None:
                raise NotFoundError(
                    f"Document {document_id} has no versions",
                    resource="version",
                    resource_id=document_id,
                )
            info = DownloadInfo(
                document_id=document_id,
                version_number=latest.version_number,
                object_key=latest.object_key,
                file_name=latest.file_name,
                mime_type=latest.mime_type,
                file_size=latest.file_size,
            )

        stream = self.store.get_stream(info.object_key)
        logger.debug("download_opened", document_id=document_id, object_key=info.object_key)
        return info, stream

    # -- revert ------------------------------------------------------------

    def revert(self, document_id: str, target_version_id: str, actor_id: Optional[str]) -> Document:
        """Make an older version current again by copying it forward.

        The target's content is copied to a fresh key and committed as a
        new version; no existing version is modified. Reverting to the
        current version is allowed and still produces a new version.

        Args:
            document_id: Document to revert.
            target_version_id: Version whose content becomes current.
            actor_id: Principal recorded as the new version's creator.

        Returns:
            The updated document with the new version attached.

        Raises:
            NotFoundError: If the document or version is missing, or the
                version belongs to another document.
            ObjectNotFoundError: If the target's stored object is gone.
        """
        with self.database.session_scope(write=False) as session:
            repo = DocumentRepository(session)
            if repo.get_document(document_id) is None:
                raise _document_not_found(document_id)
            target = repo.get_version(target_version_id)
            if target is None or target.document_id != document_id:
                raise NotFoundError(
                    f"Version not found: {target_version_id}",
                    resource="version",
                    resource_id=target_version_id,
                )
            target = to_version(target)

        scope = posixpath.dirname(target.object_key)
        ext = posixpath.splitext(target.object_key)[1]
        new_key = posixpath.join(scope, f"revert_{uuid.uuid4()}{ext}")
        self.store.copy(target.object_key, new_key)

        content = VersionContent(
            object_key=new_key,
            file_name=target.file_name,
            mime_type=target.mime_type,
            file_size=target.file_size,
            created_by=actor_id,
            changelog=f"Reverted to version {target.version_number}",
            title=target.title,
        )
        try:
            document = self._with_retry(self._commit_once, document_id, content)
        except Exception:
            self._discard_object(new_key)
            raise

        logger.info(
            "document_reverted",
            document_id=document_id,
            target_version=target.version_number,
            version_number=document.current_version,
            object_key=new_key,
        )
        return document

    def _discard_object(self, key: str) -> None:
        try:
            self.store.delete(key)
        except DocVaultError as e:
            logger.warning("orphaned_object_left", object_key=key, error=str(e))

    # -- delete ------------------------------------------------------------

    def delete(self, document_id: str) -> str:
        """Delete a document, its versions and (best effort) their objects.

        Storage failures are logged and do not stop the metadata delete.

        Returns:
            The deleted document's id.
        """
        with self.database.session_scope(write=False) as session:
            repo = DocumentRepository(session)
            if repo.get_document(document_id) is None:
                raise _document_not_found(document_id)
            keys = [row.object_key for row in repo.list_versions(document_id)]

        for key in keys:
            try:
                self.store.delete(key)
            except DocVaultError as e:
                logger.warning(
                    "object_delete_failed",
                    document_id=document_id,
                    object_key=key,
                    error=str(e),
                )

        with self.database.session_scope() as session:
            repo = DocumentRepository(session)
            document = repo.get_document(document_id)
            if document is not None:
                repo.delete_document(document)

        logger.info("document_deleted", document_id=document_id, objects=len(keys))
        return document_id
