"""Core utilities for the document vault."""

from docvault.core.logging import get_logger, configure_logging, log_context
from docvault.core.errors import (
    DocVaultError,
    NotFoundError,
    ObjectNotFoundError,
    ConflictError,
    ValidationError,
    StorageError,
    TransactionError,
)
from docvault.core.resilience import (
    RetryConfig,
    RetryHandler,
    ErrorCategory,
    ErrorCategorizer,
    ErrorLogger,
    ErrorRecord,
    get_error_logger,
)
from docvault.core.config import Settings

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "log_context",
    # Errors
    "DocVaultError",
    "NotFoundError",
    "ObjectNotFoundError",
    "ConflictError",
    "ValidationError",
    "StorageError",
    "TransactionError",
    # Resilience
    "RetryConfig",
    "RetryHandler",
    "ErrorCategory",
    "ErrorCategorizer",
    "ErrorLogger",
    "ErrorRecord",
    "get_error_logger",
    # Configuration
    "Settings",
]
