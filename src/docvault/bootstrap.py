"""Wire the vault's components from settings."""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from docvault.core import Settings, get_logger
from docvault.ingestion import (
    IngestionService,
    IngestionWorker,
    SqlClassificationTree,
    SqlJobQueue,
    UploadValidator,
    WorkerPool,
)
from docvault.storage import Database, ObjectStore, create_object_store
from docvault.storage.schema import utcnow
from docvault.versioning import VersionEngine

logger = get_logger(__name__)


@dataclass
class AppContext:
    """Every long-lived component of one process."""

    settings: Settings
    database: Database
    store: ObjectStore
    tree: SqlClassificationTree
    queue: SqlJobQueue
    engine: VersionEngine
    ingestion: IngestionService
    worker: IngestionWorker

    def worker_pool(self) -> WorkerPool:
        return WorkerPool(
            self.worker,
            concurrency=self.settings.worker_concurrency,
            poll_interval=self.settings.poll_interval,
        )

    def close(self) -> None:
        self.database.dispose()


def build_context(
    settings: Optional[Settings] = None,
    store: Optional[ObjectStore] = None,
    clock: Callable[[], datetime] = utcnow,
) -> AppContext:
    """Build the application context.

    Args:
        settings: Settings to use; read from the environment if omitted.
        store: Object store override; selected from settings if omitted.
        clock: Time source for the job queue.

    Returns:
        The wired context with the database schema created.
    """
    settings = settings or Settings.from_env()
    settings.temp_dir.mkdir(parents=True, exist_ok=True)

    database = Database(settings.database_url)
    database.create_all()
    store = store or create_object_store(settings)
    tree = SqlClassificationTree(database)
    queue = SqlJobQueue(
        database,
        queue_name=settings.queue_name,
        max_attempts=settings.max_attempts,
        backoff_seconds=settings.backoff_seconds,
        visibility_timeout=settings.visibility_timeout,
        keep_completed=settings.keep_completed,
        keep_failed=settings.keep_failed,
        clock=clock,
    )
    engine = VersionEngine(database, store)
    ingestion = IngestionService(
        database,
        queue,
        tree,
        validator=UploadValidator(max_size=settings.max_upload_size),
    )
    worker = IngestionWorker(queue, store, engine)

    logger.info(
        "context_built",
        storage_provider=store.name,
        queue=settings.queue_name,
        worker_concurrency=settings.worker_concurrency,
    )
    return AppContext(
        settings=settings,
        database=database,
        store=store,
        tree=tree,
        queue=queue,
        engine=engine,
        ingestion=ingestion,
        worker=worker,
    )
