"""Failure classification and retry policy.

The ingestion queue and the version engine both need to answer the same
two questions about an exception: will trying again help, and how long
should the next attempt wait. Both answers live here.

- ``ErrorCategorizer`` sorts exceptions into transient and permanent
- ``RetryHandler`` computes exponential backoff and runs in-process retries
- ``ErrorLogger`` keeps a bounded, thread-safe history for diagnostics
"""

import random
import threading
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from docvault.core.errors import DocVaultError, TransactionError

logger = structlog.get_logger(__name__)


class ErrorCategory(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    STORAGE = "storage"
    TRANSACTION = "transaction"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


# A job failing with one of these is dead-lettered on its first attempt
PERMANENT_CATEGORIES = frozenset({
    ErrorCategory.NOT_FOUND,
    ErrorCategory.CONFLICT,
    ErrorCategory.VALIDATION,
})

RETRYABLE_CATEGORIES = frozenset({
    ErrorCategory.NETWORK,
    ErrorCategory.TIMEOUT,
    ErrorCategory.STORAGE,
    ErrorCategory.TRANSACTION,
})


@dataclass
class RetryConfig:
    """Backoff schedule: ``base_delay * exponential_base ** n``, capped.

    ``max_retries`` counts retries after the first attempt. Exceptions in
    ``retryable_exceptions`` are retried even if the categorizer would
    not retry them.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: tuple = ()


@dataclass
class ErrorRecord:
    timestamp: datetime
    category: ErrorCategory
    error_type: str
    message: str
    component: str
    details: dict = field(default_factory=dict)
    retry_count: int = 0

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "category": self.category.value,
            "error_type": self.error_type,
            "message": self.message,
            "component": self.component,
            "details": self.details,
            "retry_count": self.retry_count,
        }


class ErrorCategorizer:
    """Maps exceptions to an ``ErrorCategory``.

    Vault errors carry their category in ``error_code``. Other exceptions
    are matched by type, then by keywords in the message; the keyword
    pass is what recognises driver errors such as SQLite's
    ``database is locked``.
    """

    CODE_CATEGORIES = {
        "NOT_FOUND": ErrorCategory.NOT_FOUND,
        "CONFLICT": ErrorCategory.CONFLICT,
        "VALIDATION": ErrorCategory.VALIDATION,
        "STORAGE": ErrorCategory.STORAGE,
        "TRANSACTION": ErrorCategory.TRANSACTION,
    }

    # Order matters: subclasses before OSError
    TYPE_CATEGORIES = (
        (ConnectionError, ErrorCategory.NETWORK),
        (TimeoutError, ErrorCategory.TIMEOUT),
        (FileNotFoundError, ErrorCategory.NOT_FOUND),
        (OSError, ErrorCategory.STORAGE),
        (ValueError, ErrorCategory.VALIDATION),
        (KeyError, ErrorCategory.INTERNAL),
    )

    MESSAGE_KEYWORDS = (
        (ErrorCategory.TRANSACTION, ("database is locked", "deadlock", "serialization failure")),
        (ErrorCategory.NETWORK, ("connection", "network", "dns", "socket", "refused")),
        (ErrorCategory.TIMEOUT, ("timeout", "timed out", "deadline")),
        (ErrorCategory.STORAGE, ("storage", "disk", "read error", "write error")),
    )

    @classmethod
    def categorize(cls, error: Exception) -> ErrorCategory:
        if isinstance(error, DocVaultError):
            return cls.CODE_CATEGORIES.get(error.error_code, ErrorCategory.UNKNOWN)

        for exc_type, category in cls.TYPE_CATEGORIES:
            if isinstance(error, exc_type):
                return category

        message = str(error).lower()
        for category, keywords in cls.MESSAGE_KEYWORDS:
            if any(keyword in message for keyword in keywords):
                return category

        return ErrorCategory.UNKNOWN

    @classmethod
    def is_retryable(cls, error: Exception) -> bool:
        if isinstance(error, DocVaultError):
            return error.retryable
        return cls.categorize(error) in RETRYABLE_CATEGORIES

    @classmethod
    def is_permanent(cls, error: Exception) -> bool:
        """Whether no number of retries can make the operation succeed."""
        return cls.categorize(error) in PERMANENT_CATEGORIES


class ErrorLogger:
    """Logs failures and keeps the most recent ones in memory.

    Worker threads report concurrently, so history and counters are
    guarded by a lock.
    """

    def __init__(self, max_history: int = 1000):
        self._history: deque[ErrorRecord] = deque(maxlen=max_history)
        self._counts: Counter = Counter()
        self._lock = threading.Lock()

    def log_error(
        self,
        error: Exception,
        component: str,
        details: Optional[dict] = None,
        retry_count: int = 0,
    ) -> ErrorRecord:
        """Record and log one failure.

        Args:
            error: The exception raised.
            component: Subsystem that saw it, e.g. ``ingestion_worker``.
            details: Extra fields for the log line.
            retry_count: Retries already made before this failure.

        Returns:
            The stored record.
        """
        record = ErrorRecord(
            timestamp=datetime.now(timezone.utc),
            category=ErrorCategorizer.categorize(error),
            error_type=type(error).__name__,
            message=str(error),
            component=component,
            details=details or {},
            retry_count=retry_count,
        )
        with self._lock:
            self._history.append(record)
            self._counts[record.category] += 1

        logger.error(
            "error_occurred",
            category=record.category.value,
            error_type=record.error_type,
            message=record.message,
            component=component,
            retry_count=retry_count,
            **record.details,
        )
        return record

    def get_error_counts(self) -> dict[str, int]:
        with self._lock:
            return {category.value: self._counts[category] for category in ErrorCategory}

    def get_recent_errors(
        self,
        limit: int = 100,
        category: Optional[ErrorCategory] = None,
    ) -> list[ErrorRecord]:
        with self._lock:
            records = list(self._history)
        if category is not None:
            records = [r for r in records if r.category == category]
        return records[-limit:]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
            self._counts.clear()


_error_logger = ErrorLogger()


def get_error_logger() -> ErrorLogger:
    """Process-wide error logger."""
    return _error_logger


class RetryHandler:
    """Applies a ``RetryConfig``.

    The job queue only borrows ``calculate_delay`` to schedule the next
    attempt; the version engine runs whole transactions through
    ``execute_sync_with_retry``.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (``attempt`` is 0-indexed)."""
        delay = min(
            self.config.base_delay * self.config.exponential_base ** attempt,
            self.config.max_delay,
        )
        if self.config.jitter:
            delay *= 1 + random.uniform(-0.25, 0.25)
        return max(0.0, delay)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.config.max_retries:
            return False
        if isinstance(error, self.config.retryable_exceptions):
            return True
        return ErrorCategorizer.is_retryable(error)

    def execute_sync_with_retry(
        self,
        func: Callable[..., Any],
        *args,
        component: str = "unknown",
        **kwargs,
    ) -> Any:
        """Call ``func`` until it succeeds or a retry is not allowed.

        Raises:
            The last exception raised by ``func``.
        """
        attempt = 0
        while True:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not self.should_retry(e, attempt):
                    get_error_logger().log_error(e, component, retry_count=attempt)
                    raise
                delay = self.calculate_delay(attempt)
                logger.info(
                    "retrying_operation",
                    component=component,
                    error=str(e),
                    attempt=attempt + 1,
                    max_retries=self.config.max_retries,
                    delay=delay,
                )
                self._sleep(delay)
                attempt += 1


# Lost version races: the winner has already committed, so retry fast
TRANSACTION_RETRY = RetryConfig(
    max_retries=5,
    base_delay=0.05,
    max_delay=1.0,
    jitter=True,
    retryable_exceptions=(TransactionError,),
)
