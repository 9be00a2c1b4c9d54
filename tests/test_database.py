"""Tests for database session handling."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import update

from docvault.ingestion import SqlJobQueue
from docvault.models import IngestionJob, JobState
from docvault.storage import Database
from docvault.storage.schema import JobRow


def make_job() -> IngestionJob:
    return IngestionJob(
        temp_file_path="/tmp/manual.pdf",
        original_name="manual.pdf",
        mime_type="application/pdf",
        file_size=1024,
        title="Quality Manual",
        node_id="node-1",
        collection_id="collection-1",
    )


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'vault.db'}", lock_timeout=10)
    db.create_all()
    yield db
    db.dispose()


class TestReadScopes:
    """Read-only scopes must not queue behind an open writer."""

    def test_status_poll_returns_while_writer_holds_lock(self, database, clock):
        queue = SqlJobQueue(database, clock=clock)
        job_id = queue.enqueue(make_job())

        with ThreadPoolExecutor(max_workers=1) as executor:
            with database.session_scope() as writer:
                writer.execute(update(JobRow).where(JobRow.id == job_id).values(progress=50))

                status = executor.submit(queue.get_status, job_id).result(timeout=2)

                assert status.state == JobState.PENDING
                assert status.progress == 0

        assert queue.get_status(job_id).progress == 50

    def test_counts_while_writer_holds_lock(self, database, clock):
        queue = SqlJobQueue(database, clock=clock)
        queue.enqueue(make_job())

        with ThreadPoolExecutor(max_workers=1) as executor:
            with database.session_scope() as writer:
                writer.execute(update(JobRow).values(state=JobState.ACTIVE.value))

                counts = executor.submit(queue.counts).result(timeout=2)

        assert counts["pending"] == 1

    def test_failed_write_scope_rolls_back(self, database, clock):
        queue = SqlJobQueue(database, clock=clock)
        job_id = queue.enqueue(make_job())

        with pytest.raises(RuntimeError):
            with database.session_scope() as session:
                session.execute(update(JobRow).values(progress=70))
                raise RuntimeError("abort")

        assert queue.get_status(job_id).progress == 0


class TestInMemoryDatabase:
    """An in-memory database shares one connection between threads."""

    def test_concurrent_sessions_do_not_interleave(self, clock):
        database = Database("sqlite://")
        database.create_all()
        queue = SqlJobQueue(database, clock=clock)
        errors = []

        def enqueue_and_count():
            try:
                for _ in range(10):
                    queue.enqueue(make_job())
                    queue.counts()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=enqueue_and_count) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert queue.counts()["pending"] == 30
        database.dispose()
