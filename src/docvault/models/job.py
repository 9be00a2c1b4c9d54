"""Ingestion job models.

An ingestion job is the queued form of one upload: the staged temp file
plus everything the worker needs to turn it into a stored version.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class JobState(str, Enum):
    """Lifecycle state of a queued job."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class UploadRequest(BaseModel):
    """An upload as submitted by a caller.

    ``document_id`` absent means a first upload into ``node_id``;
    present means a new version of that document.
    """
    temp_file_path: str = Field(..., description="Path of the staged upload")
    original_name: str = Field(..., description="Original file name")
    mime_type: str = Field(..., description="Declared MIME type")
    file_size: int = Field(..., description="Declared size in bytes")
    title: Optional[str] = Field(None, description="Document title")
    node_id: Optional[str] = Field(None, description="Target classification node")
    document_id: Optional[str] = Field(None, description="Target document for a new version")
    changelog: Optional[str] = Field(None, description="Optional change description")
    user_id: Optional[str] = Field(None, description="Requesting principal")


class IngestionJob(UploadRequest):
    """Job payload persisted in the queue."""
    collection_id: str = Field(..., description="Storage scope resolved at enqueue time")


class JobResult(BaseModel):
    """Value returned by a completed job."""
    document_id: str
    file_name: str
    file_size: int


class JobStatus(BaseModel):
    """Status view of a queued job."""
    job_id: str = Field(..., description="Job identifier")
    state: JobState = Field(..., description="Current state")
    progress: int = Field(0, ge=0, le=100, description="Progress percentage")
    attempts_made: int = Field(0, description="Attempts started so far")
    max_attempts: int = Field(..., description="Attempt budget")
    result: Optional[JobResult] = Field(None, description="Result when completed")
    failure_reason: Optional[str] = Field(None, description="Last failure message")
    created_at: datetime = Field(..., description="Enqueue timestamp")
    updated_at: datetime = Field(..., description="Last state change")
    finished_at: Optional[datetime] = Field(None, description="Completion or dead-letter timestamp")


class ClaimedJob(BaseModel):
    """A job handed to a worker for one attempt."""
    job_id: str
    attempt: int
    payload: IngestionJob
