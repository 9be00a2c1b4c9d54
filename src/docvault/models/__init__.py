"""Value models exchanged between the vault's components."""

from docvault.models.document import Document, Version, DownloadInfo
from docvault.models.job import (
    JobState,
    UploadRequest,
    IngestionJob,
    JobResult,
    JobStatus,
    ClaimedJob,
)

__all__ = [
    "Document",
    "Version",
    "DownloadInfo",
    "JobState",
    "UploadRequest",
    "IngestionJob",
    "JobResult",
    "JobStatus",
    "ClaimedJob",
]
