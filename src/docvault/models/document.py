"""Document and version models returned by the version engine."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Version(BaseModel):
    """One immutable revision of a document's content and metadata."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Version identifier")
    document_id: str = Field(..., description="Owning document identifier")
    version_number: int = Field(..., ge=1, description="Monotonic number, unique per document")
    title: str = Field(..., description="Document title at the time of this version")
    changelog: Optional[str] = Field(None, description="What changed in this version")
    object_key: str = Field(..., description="Object store key holding the content")
    file_name: str = Field(..., description="Original file name")
    mime_type: str = Field(..., description="MIME type of the content")
    file_size: int = Field(..., ge=0, description="Content size in bytes")
    created_by: Optional[str] = Field(None, description="Principal that created the version")
    created_at: datetime = Field(..., description="Creation timestamp")


class Document(BaseModel):
    """Logical file slot within a classification node.

    ``current_version`` is a denormalised copy of the highest
    ``version_number`` among the document's versions.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Document identifier")
    node_id: str = Field(..., description="Owning classification node")
    title: str = Field(..., description="Current title")
    current_version: int = Field(..., ge=1, description="Number of the latest version")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last modification timestamp")
    updated_by: Optional[str] = Field(None, description="Principal of the last modification")
    latest_version: Optional[Version] = Field(None, description="Newest version, when loaded")


class DownloadInfo(BaseModel):
    """What a client needs to serve the latest content of a document."""

    document_id: str
    version_number: int
    object_key: str
    file_name: str
    mime_type: str
    file_size: int
