"""Ingestion worker: turns a claimed upload job into a stored version.

Per job:
1. Derive the object key from the job id, collection and file extension
2. Put the staged file into the object store (progress 10 -> 30)
3. Remove the staged file
4. Commit document/version metadata (progress 60)
5. Report ``{document_id, file_name, file_size}`` (progress 100)

A failure before the put leaves the staged file for the retry. A failure
after it lets the retry resume from the stored object.
"""

import posixpath
from pathlib import Path
from typing import Optional

from docvault.core import get_logger, log_context
from docvault.core.errors import NotFoundError
from docvault.core.resilience import ErrorCategorizer, get_error_logger
from docvault.ingestion.queue import JobQueue
from docvault.models import ClaimedJob, IngestionJob, JobResult, JobState
from docvault.storage.object_store import ObjectStore
from docvault.versioning import VersionContent, VersionEngine

logger = get_logger(__name__)

PROGRESS_STARTED = 10
PROGRESS_STORED = 30
PROGRESS_CLEANED = 60


def object_key_for(job_id: str, job: IngestionJob) -> str:
    """Key under which a job's upload is stored.

    Stable across retries of the same job, so a repeated put overwrites
    rather than duplicates.
    """
    ext = posixpath.splitext(job.original_name)[1]
    return f"documents/{job.collection_id}/{job_id}{ext}"


class IngestionWorker:
    """Processes one claimed job at a time."""

    def __init__(self, queue: JobQueue, store: ObjectStore, engine: VersionEngine):
        self.queue = queue
        self.store = store
        self.engine = engine

    def run_once(self) -> bool:
        """Claim and process the next ready job.

        Returns:
            False if no job was ready.
        """
        claimed = self.queue.claim()
        if claimed is None:
            return False
        self.handle(claimed)
        return True

    def handle(self, claimed: ClaimedJob) -> Optional[JobResult]:
        """Run one attempt and record its outcome on the queue."""
        with log_context(job_id=claimed.job_id, attempt=claimed.attempt):
            try:
                result = self.process(claimed)
            except Exception as e:
                permanent = ErrorCategorizer.is_permanent(e)
                get_error_logger().log_error(
                    e,
                    component="ingestion_worker",
                    details={"job_id": claimed.job_id, "permanent": permanent},
                    retry_count=claimed.attempt - 1,
                )
                state = self.queue.fail(claimed.job_id, claimed.attempt, e, permanent=permanent)
                if state is JobState.FAILED:
                    logger.error("job_failed", error=str(e))
                return None

            self.queue.complete(claimed.job_id, claimed.attempt, result)
            return result

    def process(self, claimed: ClaimedJob) -> JobResult:
        job = claimed.payload
        key = object_key_for(claimed.job_id, job)
        self._progress(claimed, PROGRESS_STARTED)

        staged = Path(job.temp_file_path)
        if staged.is_file():
            self.store.put(key, staged)
            self._progress(claimed, PROGRESS_STORED)
            staged.unlink(missing_ok=True)
        elif self.store.exists(key):
            # An earlier attempt stored the object and removed the staged file
            logger.info("job_resumed_after_store", object_key=key)
        else:
            raise NotFoundError(
                f"Staged upload is gone: {job.temp_file_path}",
                resource="upload",
                resource_id=claimed.job_id,
            )
        self._progress(claimed, PROGRESS_CLEANED)

        content = VersionContent(
            object_key=key,
            file_name=job.original_name,
            mime_type=job.mime_type,
            file_size=job.file_size,
            created_by=job.user_id,
            changelog=job.changelog,
            title=job.title,
        )
        if job.document_id:
            document = self.engine.commit_new_version(job.document_id, content)
        else:
            document = self.engine.create_document_with_first_version(
                node_id=job.node_id,
                title=job.title,
                content=content,
            )

        logger.info(
            "job_processed",
            document_id=document.id,
            version_number=document.current_version,
            object_key=key,
        )
        return JobResult(
            document_id=document.id,
            file_name=job.original_name,
            file_size=job.file_size,
        )

    def _progress(self, claimed: ClaimedJob, progress: int) -> None:
        self.queue.update_progress(claimed.job_id, claimed.attempt, progress)
