"""Asynchronous ingestion pipeline: validation, queue, workers."""

from docvault.ingestion.tree import ClassificationTree, SqlClassificationTree
from docvault.ingestion.validator import ALLOWED_MIME_TYPES, UploadValidator
from docvault.ingestion.queue import JobQueue, SqlJobQueue
from docvault.ingestion.worker import IngestionWorker, object_key_for
from docvault.ingestion.pool import WorkerPool
from docvault.ingestion.service import IngestionService

__all__ = [
    "ClassificationTree",
    "SqlClassificationTree",
    "ALLOWED_MIME_TYPES",
    "UploadValidator",
    "JobQueue",
    "SqlJobQueue",
    "IngestionWorker",
    "object_key_for",
    "WorkerPool",
    "IngestionService",
]
