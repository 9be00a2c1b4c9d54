"""Enqueue side of ingestion: validate, resolve scope, persist the job."""

from typing import Optional

from docvault.core import get_logger
from docvault.core.errors import ConflictError, NotFoundError
from docvault.ingestion.queue import JobQueue
from docvault.ingestion.tree import ClassificationTree
from docvault.ingestion.validator import UploadValidator
from docvault.models import IngestionJob, JobStatus, UploadRequest
from docvault.storage.database import Database
from docvault.storage.repository import DocumentRepository

logger = get_logger(__name__)


class IngestionService:
    """Accepts uploads and reports on their jobs.

    ``enqueue_upload`` returns as soon as the job is persisted; the work
    itself happens on a worker.
    """

    def __init__(
        self,
        database: Database,
        queue: JobQueue,
        tree: ClassificationTree,
        validator: Optional[UploadValidator] = None,
    ):
        self.database = database
        self.queue = queue
        self.tree = tree
        self.validator = validator or UploadValidator()

    def enqueue_upload(self, request: UploadRequest) -> str:
        """Validate an upload and queue it for ingestion.

        Nothing is persisted unless every check passes.

        Args:
            request: The staged upload and its target.

        Returns:
            The job id.

        Raises:
            ValidationError: If the request is malformed.
            NotFoundError: If the target document or node does not exist.
            ConflictError: If both are given and the document lives elsewhere.
        """
        self.validator.check(request)

        node_id = request.node_id
        if request.document_id:
            with self.database.session_scope(write=False) as session:
                document = DocumentRepository(session).get_document(request.document_id)
                if document is None:
                    raise NotFoundError(
                        f"Document not found: {request.document_id}",
                        resource="document",
                        resource_id=request.document_id,
                    )
                if node_id and node_id != document.node_id:
                    raise ConflictError(
                        f"Document {document.id} does not belong to node {node_id}",
                        document_id=document.id,
                    )
                node_id = document.node_id

        collection_id = self.tree.resolve_collection(node_id)
        if collection_id is None:
            raise NotFoundError(
                f"Classification node not found: {node_id}",
                resource="node",
                resource_id=node_id,
            )

        job = IngestionJob(
            **request.model_dump(exclude={"node_id"}),
            node_id=node_id,
            collection_id=collection_id,
        )
        job_id = self.queue.enqueue(job)
        logger.info(
            "upload_accepted",
            job_id=job_id,
            document_id=request.document_id,
            node_id=node_id,
            collection_id=collection_id,
        )
        return job_id

    def get_job_status(self, job_id: str) -> JobStatus:
        return self.queue.get_status(job_id)
