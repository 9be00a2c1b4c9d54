"""Local filesystem object store.

Objects live at ``<base_path>/<key>``. Writes go to a temporary file in
the destination directory and are moved into place with ``os.replace``,
so readers see either the old object, the new one, or nothing.
"""

import os
import shutil
import uuid
from pathlib import Path
from typing import Iterator, Union

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


class LocalObjectStore(ObjectStore):
    """Object store backed by a directory tree."""

    name = "local"

    def __init__(
        self,
        base_path: Union[str, Path],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.base_path = Path(base_path).resolve()
        self.chunk_size = chunk_size
        self.base_path.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalObjectStore":
        return cls(settings.storage_path)

    def _path_for(self, key: str) -> Path:
        """Map a key to a path, refusing keys that escape the base path."""
        if not key or key.startswith("/") or "\\" in key:
            raise ValidationError(f"Invalid object key: {key!r}", failed_checks=["object_key"])
        path = (self.base_path / key).resolve()
        if self.base_path not in path.parents:
            raise ValidationError(f"Invalid object key: {key!r}", failed_checks=["object_key"])
        return path

    def put(self, key: str, source: Source) -> None:
        dest = self._path_for(key)
        tmp = dest.with_name(f".{dest.name}.{uuid.uuid4().hex}.tmp")

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as out:
                if isinstance(source, (str, Path)):
                    with open(source, "rb") as src:
                        shutil.copyfileobj(src, out, self.chunk_size)
                else:
                    shutil.copyfileobj(source, out, self.chunk_size)
                out.flush()
                os.fsync(out.fileno())
            os.replace(tmp, dest)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            logger.error("local_put_failed", key=key, error=str(e))
            raise StorageError(
                f"Failed to store object {key}: {e}",
                key=key,
                operation="put",
                backend=self.name,
            ) from e

        logger.debug("local_object_stored", key=key)

    def get_stream(self, key: str) -> ObjectStream:
        path = self._path_for(key)
        try:
            handle = open(path, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise ObjectNotFoundError(key) from e
        except OSError as e:
            raise StorageError(
                f"Failed to open object {key}: {e}",
                key=key,
                operation="get",
                backend=self.name,
            ) from e

        return ObjectStream(
            key=key,
            chunks=self._read_chunks(key, handle),
            close=handle.close,
            content_length=os.fstat(handle.fileno()).st_size,
        )

    def _read_chunks(self, key: str, handle) -> Iterator[bytes]:
        while True:
            try:
                chunk = handle.read(self.chunk_size)
            except OSError as e:
                raise StorageError(
                    f"Failed while reading object {key}: {e}",
                    key=key,
                    operation="get",
                    backend=self.name,
                ) from e
            if not chunk:
                return
            yield chunk

    def copy(self, src_key: str, dest_key: str) -> None:
        src = self._path_for(src_key)
        if not src.is_file():
            raise ObjectNotFoundError(src_key)
        self.put(dest_key, src)
        logger.debug("local_object_copied", src_key=src_key, dest_key=dest_key)

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(
                f"Failed to delete object {key}: {e}",
                key=key,
                operation="delete",
                backend=self.name,
            ) from e

    def exists(self, key: str) -> bool:
        return self._path_for(key).is_file()
