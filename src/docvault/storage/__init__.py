"""Object storage backends and the relational metadata store."""

from docvault.storage.object_store import ObjectStore, ObjectStream
from docvault.storage.local_store import LocalObjectStore
from docvault.storage.s3_store import S3ObjectStore
from docvault.storage.factory import create_object_store
from docvault.storage.database import Database
from docvault.storage.repository import DocumentRepository

__all__ = [
    "ObjectStore",
    "ObjectStream",
    "LocalObjectStore",
    "S3ObjectStore",
    "create_object_store",
    "Database",
    "DocumentRepository",
]
