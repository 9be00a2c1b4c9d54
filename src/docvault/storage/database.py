"""Database engine and session management for the metadata store.

Handles:
- SQLAlchemy engine creation from a URL
- SQLite write locking (``BEGIN IMMEDIATE`` for write scopes only), WAL
  journaling and foreign keys
- Transactional session scopes
- Schema creation
"""

import threading
from contextlib import contextmanager, nullcontext
from contextvars import ContextVar
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from docvault.core import get_logger
from docvault.storage.schema import Base

logger = get_logger(__name__)

# Whether the transaction being opened on this thread will write
_write_scope: ContextVar[bool] = ContextVar("docvault_write_scope", default=True)


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_sqlite_memory(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


class Database:
    """Owns the engine and hands out transactional sessions.

    Usage:
        db = Database("sqlite:///./docvault.db")
        db.create_all()
        with db.session_scope() as session:
            session.add(row)
        with db.session_scope(write=False) as session:
            session.get(JobRow, job_id)

    An in-memory SQLite database lives on a single shared connection, so
    its session scopes run one at a time.
    """

    def __init__(self, url: str, echo: bool = False, lock_timeout: float = 30.0):
        """Create the engine.

        Args:
            url: SQLAlchemy database URL.
            echo: Log every SQL statement.
            lock_timeout: Seconds a SQLite writer waits for the database lock.
        """
        self.url = url
        self.engine = self._create_engine(url, echo, lock_timeout)
        self._session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )
        self._connection_lock = threading.RLock() if _is_sqlite_memory(url) else None
        logger.info("database_initialized", dialect=self.engine.dialect.name)

    @staticmethod
    def _create_engine(url: str, echo: bool, lock_timeout: float) -> Engine:
        if not _is_sqlite(url):
            return create_engine(url, echo=echo, pool_pre_ping=True)

        in_memory = _is_sqlite_memory(url)
        kwargs = {
            "echo": echo,
            "connect_args": {"check_same_thread": False, "timeout": lock_timeout},
        }
        if in_memory:
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)

        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not in_memory:
                # Readers see the last commit instead of waiting on a writer
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        # pysqlite defers BEGIN until the first write, which lets two
        # writers read the same counter. Writers take the lock up front.
        @event.listens_for(engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE" if _write_scope.get() else "BEGIN")

        return engine

    @property
    def is_sqlite(self) -> bool:
        return self.engine.dialect.name == "sqlite"

    def create_all(self) -> None:
        """Create any missing tables. Safe to call repeatedly."""
        with self._serialized():
            Base.metadata.create_all(self.engine)
        logger.info("database_schema_ready", tables=sorted(Base.metadata.tables))

    def _serialized(self):
        return self._connection_lock if self._connection_lock is not None else nullcontext()

    @contextmanager
    def session_scope(self, write: bool = True) -> Iterator[Session]:
        """Provide a session that commits on success and rolls back on error.

        Args:
            write: Take SQLite's write lock when the transaction begins.
                Read-only scopes pass False so they never queue behind a
                writer.
        """
        with self._serialized():
            token = _write_scope.set(write)
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
                _write_scope.reset(token)

    def dispose(self) -> None:
        self.engine.dispose()
