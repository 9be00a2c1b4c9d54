"""Upload validation, run before a job is enqueued.

- MIME type must be on the allow-list
- Declared size must be positive, within the limit and match the staged file
- File name must be non-empty
- A first upload needs a title and a target node
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from docvault.core.config import MAX_UPLOAD_SIZE
from docvault.core.errors import ValidationError
from docvault.models import UploadRequest

ALLOWED_MIME_TYPES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/csv",
    "image/png",
    "image/jpeg",
    "image/gif",
    "application/zip",
    "application/x-7z-compressed",
})


@dataclass
class FieldValidationError:
    """A validation failure on one field of an upload."""
    field_name: str
    error_message: str
    provided_value: Optional[str] = None


@dataclass
class UploadValidationResult:
    valid: bool
    field_errors: list[FieldValidationError] = field(default_factory=list)

    @property
    def error_message(self) -> Optional[str]:
        if self.valid:
            return None
        return "; ".join(e.error_message for e in self.field_errors)


class UploadValidator:
    """Validates an upload request against type, size and target rules."""

    def __init__(
        self,
        max_size: int = MAX_UPLOAD_SIZE,
        allowed_mime_types: frozenset = ALLOWED_MIME_TYPES,
    ):
        self.max_size = max_size
        self.allowed_mime_types = allowed_mime_types

    def validate(self, request: UploadRequest) -> UploadValidationResult:
        """Collect every field error of an upload request.

        Args:
            request: The upload to check.

        Returns:
            UploadValidationResult with one entry per failed field.
        """
        errors: list[FieldValidationError] = []

        if not request.original_name or not request.original_name.strip():
            errors.append(FieldValidationError("original_name", "File name is required"))

        mime_type = (request.mime_type or "").lower()
        if mime_type not in self.allowed_mime_types:
            errors.append(FieldValidationError(
                "mime_type",
                f"Unsupported file type: {request.mime_type}",
                provided_value=request.mime_type,
            ))

        if request.file_size <= 0:
            errors.append(FieldValidationError(
                "file_size", "File is empty", provided_value=str(request.file_size)
            ))
        elif request.file_size > self.max_size:
            errors.append(FieldValidationError(
                "file_size",
                f"File exceeds maximum size of {self.max_size // (1024 * 1024)}MB",
                provided_value=str(request.file_size),
            ))

        errors.extend(self._check_staged_file(request))
        errors.extend(self._check_target(request))

        return UploadValidationResult(valid=not errors, field_errors=errors)

    def _check_staged_file(self, request: UploadRequest) -> list[FieldValidationError]:
        path = request.temp_file_path
        if not path or not os.path.isfile(path):
            return [FieldValidationError("temp_file_path", "Uploaded file is missing", path)]
        actual = os.path.getsize(path)
        if actual != request.file_size:
            return [FieldValidationError(
                "file_size",
                f"Declared size {request.file_size} does not match uploaded size {actual}",
                provided_value=str(request.file_size),
            )]
        return []

    def _check_target(self, request: UploadRequest) -> list[FieldValidationError]:
        if request.document_id:
            return []
        errors = []
        if not request.node_id:
            errors.append(FieldValidationError(
                "node_id", "Either node_id or document_id is required"
            ))
        if not request.title or not request.title.strip():
            errors.append(FieldValidationError("title", "Title is required for a new document"))
        return errors

    def check(self, request: UploadRequest) -> None:
        """Validate and raise on the first failing request.

        Raises:
            ValidationError: With the names of every failed field.
        """
        result = self.validate(request)
        if not result.valid:
            raise ValidationError(
                result.error_message,
                failed_checks=[e.field_name for e in result.field_errors],
            )
