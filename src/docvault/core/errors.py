"""Exception hierarchy for the document vault.

Each type fixes an ``error_code`` and whether the failed operation may
succeed if repeated (``retryable``). The job queue and the HTTP layer
branch on those two attributes only, never on messages.
"""

from typing import Any, Optional


class DocVaultError(Exception):
    """Base exception for all document vault errors."""

    error_code: Optional[str] = None
    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}

    def _attach(self, **fields: Any) -> None:
        """Set fields as attributes and mirror them into ``details``."""
        for name, value in fields.items():
            setattr(self, name, value)
        self.details.update(fields)

    def to_dict(self) -> dict:
        return {"error": self.error_code or "INTERNAL", "message": self.message}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class NotFoundError(DocVaultError):
    """A document, version, job, node or stored object does not exist."""

    error_code = "NOT_FOUND"

    def __init__(
        self,
        message: str,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self._attach(resource=resource, resource_id=resource_id)


class ObjectNotFoundError(NotFoundError):
    """No object is stored under the requested key."""

    def __init__(self, key: str, **kwargs):
        super().__init__(
            f"Object not found in storage: {key}",
            resource="object",
            resource_id=key,
            **kwargs,
        )
        self.key = key


class ConflictError(DocVaultError):
    """A request references resources that do not belong together."""

    error_code = "CONFLICT"

    def __init__(self, message: str, document_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self._attach(document_id=document_id)


class ValidationError(DocVaultError):
    """Malformed input, rejected before any work is queued."""

    error_code = "VALIDATION"

    def __init__(self, message: str, failed_checks: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self._attach(failed_checks=failed_checks or [])


class StorageError(DocVaultError):
    """I/O failure in an object store backend."""

    error_code = "STORAGE"
    retryable = True

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        operation: Optional[str] = None,
        backend: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self._attach(key=key, operation=operation, backend=backend)


class TransactionError(DocVaultError):
    """A metadata commit lost a race and must be re-run from a fresh read."""

    error_code = "TRANSACTION"
    retryable = True

    def __init__(self, message: str, document_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self._attach(document_id=document_id)
