"""Structured logging for the document vault.

Every module logs through ``get_logger(__name__)`` with snake_case event
names and keyword fields. Per-job fields (``job_id``, ``attempt``) are
bound with ``log_context`` so worker threads tag their own lines.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

# Library loggers that flood INFO with per-request noise
NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "sqlalchemy.engine", "multipart")


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        level: Log level name, e.g. ``DEBUG`` or ``WARNING``.
        json_format: Render one JSON object per line instead of console text.
        log_file: Also append standard library records to this file.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_file:
        handler = logging.FileHandler(log_file)
        handler.setLevel(numeric_level)
        logging.getLogger().addHandler(handler)


@contextmanager
def log_context(**values) -> Iterator[None]:
    """Bind fields to every log line emitted by this thread inside the block."""
    structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*values)


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
