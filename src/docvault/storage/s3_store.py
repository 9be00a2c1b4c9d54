"""Amazon S3 (and S3-compatible) object store."""

from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from docvault.core import get_logger
from docvault.core.config import Settings
from docvault.core.errors import ObjectNotFoundError, StorageError, ValidationError
from docvault.storage.object_store import (
    DEFAULT_CHUNK_SIZE,
    ObjectStore,
    ObjectStream,
    Source,
)

logger = get_logger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3ObjectStore(ObjectStore):
    """Object store backed by a single S3 bucket.

    S3 PUT and COPY are atomic per object, so a failed write never leaves
    a partial object behind.
    """

    name = "s3"

    def __init__(
        self,
        bucket_name: str,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        s3_client: Optional[Any] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        """Initialize the S3 store.

        Args:
            bucket_name: Bucket holding every object.
            region_name: AWS region.
            endpoint_url: Custom endpoint for S3-compatible services.
            s3_client: Optional S3 client (for testing).
            chunk_size: Download chunk size in bytes.
        """
        if not bucket_name:
            raise ValidationError("S3 bucket name is required", failed_checks=["s3_bucket"])
        self.bucket_name = bucket_name
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self.chunk_size = chunk_size
        self._s3_client = s3_client

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        return cls(
            bucket_name=settings.s3_bucket,
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
        )

    @property
    def s3_client(self):
        """Get S3 client."""
        if self._s3_client is None:
            self._s3_client = boto3.client(
                "s3",
                region_name=self.region_name,
                endpoint_url=self.endpoint_url,
            )
        return self._s3_client

    def _storage_error(self, operation: str, key: str, error: Exception) -> StorageError:
        logger.error("s3_operation_failed", operation=operation, key=key, error=str(error))
        return StorageError(
            f"S3 {operation} failed for {key}: {error}",
            key=key,
            operation=operation,
            backend=self.name,
        )

    def put(self, key: str, source: Source) -> None:
        try:
            if isinstance(source, (str, Path)):
                self.s3_client.upload_file(str(source), self.bucket_name, key)
            else:
                self.s3_client.upload_fileobj(source, self.bucket_name, key)
        except (ClientError, BotoCoreError, OSError) as e:
            raise self._storage_error("put", key, e) from e

        logger.debug("s3_object_stored", bucket=self.bucket_name, key=key)

    def get_stream(self, key: str) -> ObjectStream:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from e
            raise self._storage_error("get", key, e) from e
        except BotoCoreError as e:
            raise self._storage_error("get", key, e) from e

        body = response["Body"]
        return ObjectStream(
            key=key,
            chunks=self._read_chunks(key, body),
            close=body.close,
            content_length=response.get("ContentLength"),
        )

    def _read_chunks(self, key: str, body):
        try:
            for chunk in body.iter_chunks(chunk_size=self.chunk_size):
                if chunk:
                    yield chunk
        except (ClientError, BotoCoreError, OSError) as e:
            raise self._storage_error("get", key, e) from e

    def copy(self, src_key: str, dest_key: str) -> None:
        # Managed copy: single CopyObject, or multipart for large objects
        try:
            self.s3_client.copy(
                {"Bucket": self.bucket_name, "Key": src_key},
                self.bucket_name,
                dest_key,
            )
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                raise ObjectNotFoundError(src_key) from e
            raise self._storage_error("copy", dest_key, e) from e
        except BotoCoreError as e:
            raise self._storage_error("copy", dest_key, e) from e

        logger.debug("s3_object_copied", src_key=src_key, dest_key=dest_key)

    def delete(self, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return
            raise self._storage_error("delete", key, e) from e
        except BotoCoreError as e:
            raise self._storage_error("delete", key, e) from e

    def exists(self, key: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return False
            raise self._storage_error("head", key, e) from e
        except BotoCoreError as e:
            raise self._storage_error("head", key, e) from e
