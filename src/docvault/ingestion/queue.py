"""Durable ingestion job queue.

Jobs are rows in the metadata database, so an accepted upload survives a
worker crash. Delivery is at-least-once:

- ``claim`` hands the oldest ready job to a worker under a lease
- a job whose lease expires is handed out again (or dead-lettered if its
  attempts are spent)
- failed attempts are retried with exponential backoff up to
  ``max_attempts``, then the job is left in the ``failed`` state
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Optional

import pydantic
from sqlalchemy import and_, delete, func, or_, select

from docvault.core import get_logger
from docvault.core.errors import NotFoundError
from docvault.core.resilience import RetryConfig, RetryHandler
from docvault.models import ClaimedJob, IngestionJob, JobResult, JobState, JobStatus
from docvault.storage.database import Database
from docvault.storage.schema import JobRow, utcnow

logger = get_logger(__name__)


class JobQueue(ABC):
    """Work queue between the upload endpoint and the ingestion workers."""

    @abstractmethod
    def enqueue(self, job: IngestionJob) -> str:
        """Persist a job and return its id. Never runs the job."""

    @abstractmethod
    def get_status(self, job_id: str) -> JobStatus:
        """Current state of a job.

        Raises:
            NotFoundError: If the job is unknown or has been pruned.
        """

    @abstractmethod
    def claim(self) -> Optional[ClaimedJob]:
        """Lease the next ready job, or return None if there is none."""

    @abstractmethod
    def update_progress(self, job_id: str, attempt: int, progress: int) -> None:
        """Record a progress milestone for a running attempt."""

    @abstractmethod
    def complete(self, job_id: str, attempt: int, result: JobResult) -> None:
        """Mark a running attempt as successful."""

    @abstractmethod
    def fail(
        self, job_id: str, attempt: int, error: Exception, permanent: bool = False
    ) -> Optional[JobState]:
        """Record a failed attempt.

        Returns:
            The job's resulting state, or None if the attempt no longer
            holds the job.
        """


class SqlJobQueue(JobQueue):
    """Job queue stored in the ``ingestion_jobs`` table."""

    def __init__(
        self,
        database: Database,
        queue_name: str = "document-upload",
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        visibility_timeout: float = 300.0,
        keep_completed: int = 100,
        keep_failed: int = 50,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the queue.

        Args:
            database: Database holding the job table.
            queue_name: Topic name; several queues can share one table.
            max_attempts: Attempts before a job is dead-lettered.
            backoff_seconds: Delay before the first retry, doubled per attempt.
            visibility_timeout: Lease length in seconds for a claimed job.
            keep_completed: Completed jobs retained for status queries.
            keep_failed: Dead-lettered jobs retained for status queries.
            clock: Source of the current time.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.database = database
        self.queue_name = queue_name
        self.max_attempts = max_attempts
        self.visibility_timeout = visibility_timeout
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed
        self.clock = clock
        self.backoff = RetryHandler(RetryConfig(
            max_retries=max_attempts - 1,
            base_delay=backoff_seconds,
            max_delay=float("inf"),
            exponential_base=2.0,
            jitter=False,
        ))

    def enqueue(self, job: IngestionJob) -> str:
        job_id = str(uuid.uuid4())
        now = self.clock()
        with self.database.session_scope() as session:
            session.add(JobRow(
                id=job_id,
                queue_name=self.queue_name,
                state=JobState.PENDING.value,
                progress=0,
                attempts_made=0,
                max_attempts=self.max_attempts,
                payload=job.model_dump(mode="json"),
                available_at=now,
                created_at=now,
                updated_at=now,
            ))
        logger.info(
            "job_enqueued",
            job_id=job_id,
            queue=self.queue_name,
            document_id=job.document_id,
            file_name=job.original_name,
        )
        return job_id

    def get_status(self, job_id: str) -> JobStatus:
        with self.database.session_scope(write=False) as session:
            row = self._get(session, job_id)
            if row is None:
                raise NotFoundError(f"Job not found: {job_id}", resource="job", resource_id=job_id)
            return JobStatus(
                job_id=row.id,
                state=JobState(row.state),
                progress=row.progress,
                attempts_made=row.attempts_made,
                max_attempts=row.max_attempts,
                result=JobResult(**row.result) if row.result else None,
                failure_reason=row.failure_reason,
                created_at=row.created_at,
                updated_at=row.updated_at,
                finished_at=row.finished_at,
            )

    def claim(self) -> Optional[ClaimedJob]:
        with self.database.session_scope() as session:
            while True:
                now = self.clock()
                stmt = (
                    select(JobRow)
                    .where(JobRow.queue_name == self.queue_name)
                    .where(or_(
                        and_(JobRow.state == JobState.PENDING.value, JobRow.available_at <= now),
                        and_(JobRow.state == JobState.ACTIVE.value, JobRow.locked_until < now),
                    ))
                    .order_by(JobRow.created_at, JobRow.id)
                    .limit(1)
                )
                if not self.database.is_sqlite:
                    stmt = stmt.with_for_update(skip_locked=True)
                row = session.execute(stmt).scalar_one_or_none()
                if row is None:
                    return None

                if row.state == JobState.ACTIVE.value:
                    logger.warning("job_lease_expired", job_id=row.id, attempts_made=row.attempts_made)
                    if row.attempts_made >= row.max_attempts:
                        self._dead_letter(
                            row, now, f"Job lease expired after {row.attempts_made} attempts"
                        )
                        session.flush()
                        continue

                try:
                    payload = IngestionJob.model_validate(row.payload)
                except pydantic.ValidationError as e:
                    self._dead_letter(
                        row, now, f"Unreadable job payload ({e.error_count()} invalid fields)"
                    )
                    session.flush()
                    continue

                row.state = JobState.ACTIVE.value
                row.attempts_made += 1
                row.progress = 0
                row.locked_until = now + timedelta(seconds=self.visibility_timeout)
                row.updated_at = now
                claimed = ClaimedJob(
                    job_id=row.id,
                    attempt=row.attempts_made,
                    payload=payload,
                )
                logger.info("job_claimed", job_id=row.id, attempt=row.attempts_made)
                return claimed

    def update_progress(self, job_id: str, attempt: int, progress: int) -> None:
        with self.database.session_scope() as session:
            row = self._get_running(session, job_id, attempt)
            if row is None:
                return
            row.progress = max(0, min(100, progress))
            row.updated_at = self.clock()
        logger.debug("job_progress", job_id=job_id, progress=progress)

    def complete(self, job_id: str, attempt: int, result: JobResult) -> None:
        with self.database.session_scope() as session:
            row = self._get_running(session, job_id, attempt)
            if row is None:
                return
            now = self.clock()
            row.state = JobState.COMPLETED.value
            row.progress = 100
            row.result = result.model_dump(mode="json")
            row.failure_reason = None
            row.locked_until = None
            row.updated_at = now
            row.finished_at = now
        logger.info("job_completed", job_id=job_id, document_id=result.document_id)
        self.prune()

    def fail(
        self, job_id: str, attempt: int, error: Exception, permanent: bool = False
    ) -> Optional[JobState]:
        reason = str(error) or type(error).__name__
        with self.database.session_scope() as session:
            row = self._get_running(session, job_id, attempt)
            if row is None:
                return None
            now = self.clock()
            if permanent or row.attempts_made >= row.max_attempts:
                self._dead_letter(row, now, reason)
                state = JobState.FAILED
            else:
                delay = self.backoff.calculate_delay(row.attempts_made - 1)
                row.state = JobState.PENDING.value
                row.failure_reason = reason
                row.locked_until = None
                row.available_at = now + timedelta(seconds=delay)
                row.updated_at = now
                state = JobState.PENDING
                logger.warning(
                    "job_retry_scheduled",
                    job_id=job_id,
                    attempt=row.attempts_made,
                    max_attempts=row.max_attempts,
                    delay=delay,
                    error=reason,
                )
        if state is JobState.FAILED:
            self.prune()
        return state

    def prune(self) -> int:
        """Drop finished jobs beyond the retention limits.

        Returns:
            Number of jobs removed.
        """
        removed = 0
        with self.database.session_scope() as session:
            for state, keep in (
                (JobState.COMPLETED, self.keep_completed),
                (JobState.FAILED, self.keep_failed),
            ):
                stale_ids = select(JobRow.id).where(
                    JobRow.queue_name == self.queue_name,
                    JobRow.state == state.value,
                ).order_by(JobRow.finished_at.desc(), JobRow.id.desc()).offset(keep)
                ids = list(session.execute(stale_ids).scalars())
                if ids:
                    session.execute(delete(JobRow).where(JobRow.id.in_(ids)))
                    removed += len(ids)
        if removed:
            logger.debug("jobs_pruned", queue=self.queue_name, removed=removed)
        return removed

    def counts(self) -> dict[str, int]:
        """Number of jobs per state."""
        with self.database.session_scope(write=False) as session:
            rows = session.execute(
                select(JobRow.state, func.count())
                .where(JobRow.queue_name == self.queue_name)
                .group_by(JobRow.state)
            ).all()
        counts = {state.value: 0 for state in JobState}
        counts.update({state: count for state, count in rows})
        return counts

    def _get(self, session, job_id: str) -> Optional[JobRow]:
        row = session.get(JobRow, job_id)
        if row is None or row.queue_name != self.queue_name:
            return None
        return row

    def _get_running(self, session, job_id: str, attempt: int) -> Optional[JobRow]:
        row = self._get(session, job_id)
        if row is None or row.state != JobState.ACTIVE.value or row.attempts_made != attempt:
            # The lease expired and the job was handed to another worker
            logger.warning("stale_job_update_ignored", job_id=job_id, attempt=attempt)
            return None
        return row

    def _dead_letter(self, row: JobRow, now: datetime, reason: str) -> None:
        row.state = JobState.FAILED.value
        row.failure_reason = reason
        row.locked_until = None
        row.updated_at = now
        row.finished_at = now
        logger.error(
            "job_dead_lettered",
            job_id=row.id,
            attempts_made=row.attempts_made,
            reason=reason,
        )
