"""Shared fixtures: a fully wired vault on a temporary directory."""

import io
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from docvault.bootstrap import build_context
from docvault.core import Settings
from docvault.models import UploadRequest
from docvault.versioning import VersionContent

NODE_ID = "node-1"
COLLECTION_ID = "collection-1"


class FakeClock:
    """Manually advanced clock for the job queue."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        storage_provider="local",
        storage_path=tmp_path / "objects",
        database_url=f"sqlite:///{tmp_path / 'vault.db'}",
        temp_dir=tmp_path / "temp",
        backoff_seconds=1.0,
    )


@pytest.fixture
def context(settings, clock):
    ctx = build_context(settings, clock=clock)
    ctx.tree.register_node(NODE_ID, COLLECTION_ID, name="Quality", level=1)
    yield ctx
    ctx.close()


@pytest.fixture
def stage_file(settings):
    """Write bytes into the staging directory and return the path."""

    def _stage(content: bytes = b"%PDF" + b"x" * 1020, suffix: str = ".pdf") -> Path:
        settings.temp_dir.mkdir(parents=True, exist_ok=True)
        path = settings.temp_dir / f"{uuid.uuid4()}{suffix}"
        path.write_bytes(content)
        return path

    return _stage


@pytest.fixture
def make_request(stage_file):
    """Build an upload request around a freshly staged file."""

    def _make(
        content: bytes = b"%PDF" + b"x" * 1020,
        original_name: str = "manual.pdf",
        mime_type: str = "application/pdf",
        **overrides,
    ) -> UploadRequest:
        path = stage_file(content, Path(original_name).suffix)
        fields = {
            "temp_file_path": str(path),
            "original_name": original_name,
            "mime_type": mime_type,
            "file_size": len(content),
            "title": "Quality Manual",
            "node_id": NODE_ID,
            "user_id": "user-1",
        }
        fields.update(overrides)
        return UploadRequest(**fields)

    return _make


@pytest.fixture
def seed_document(context):
    """Store content and create a document around it, bypassing the queue."""

    def _seed(content: bytes = b"version one", title: str = "Quality Manual"):
        key = f"documents/{COLLECTION_ID}/{uuid.uuid4()}.txt"
        context.store.put(key, io.BytesIO(content))
        return context.engine.create_document_with_first_version(
            node_id=NODE_ID,
            title=title,
            content=VersionContent(
                object_key=key,
                file_name="manual.txt",
                mime_type="text/plain",
                file_size=len(content),
                created_by="user-1",
            ),
        )

    return _seed


@pytest.fixture
def add_version(context):
    """Store content and commit it as a new version of a document."""

    def _add(document_id: str, content: bytes, changelog: str = None):
        key = f"documents/{COLLECTION_ID}/{uuid.uuid4()}.txt"
        context.store.put(key, io.BytesIO(content))
        return context.engine.commit_new_version(
            document_id,
            VersionContent(
                object_key=key,
                file_name="manual.txt",
                mime_type="text/plain",
                file_size=len(content),
                created_by="user-2",
                changelog=changelog,
            ),
        )

    return _add
