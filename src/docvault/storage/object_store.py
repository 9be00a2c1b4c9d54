"""Key-addressed blob storage abstraction.

Every backend implements the same five operations with identical
semantics, so callers never branch on where bytes live:

- ``put`` is all-or-nothing and overwrites
- ``get_stream`` returns a finite, non-restartable, closeable stream
- ``copy`` duplicates content under a new key
- ``delete`` is idempotent
- ``exists`` reports presence

Keys are opaque ``/``-separated strings; backends only create the
intermediate namespace a key needs.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional, Union

from docvault.core import get_logger

logger = get_logger(__name__)

# A put source is either a path on local disk or an open binary file
Source = Union[str, Path, BinaryIO]

DEFAULT_CHUNK_SIZE = 64 * 1024


class ObjectStream:
    """Lazy byte stream over one stored object.

    Iterating yields chunks until the object is exhausted. Backend
    failures mid-stream are raised from the iterator rather than ending
    it early. The stream can be iterated once; ``close`` releases the
    underlying handle and is safe to call repeatedly.
    """

    def __init__(
        self,
        key: str,
        chunks: Iterator[bytes],
        close: Callable[[], None],
        content_length: Optional[int] = None,
    ):
        self.key = key
        self.content_length = content_length
        self._chunks = chunks
        self._close = close
        self._consumed = False
        self._closed = False

    def __iter__(self) -> Iterator[bytes]:
        if self._consumed or self._closed:
            raise RuntimeError(f"Stream for {self.key} cannot be restarted")
        self._consumed = True
        return self._drain()

    def _drain(self) -> Iterator[bytes]:
        try:
            yield from self._chunks
        finally:
            self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self) -> bytes:
        """Read the remaining content into memory."""
        return b"".join(self)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._close()
        except Exception as e:
            # The stream is being abandoned; nothing useful can be done
            logger.warning("object_stream_close_failed", key=self.key, error=str(e))

    def __enter__(self) -> "ObjectStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ObjectStore(ABC):
    """Capability set shared by every storage backend."""

    #: Backend name used in logs and configuration
    name: str = "abstract"

    @abstractmethod
    def put(self, key: str, source: Source) -> None:
        """Store content at ``key``, replacing any existing object.

        Raises:
            StorageError: If the write failed; no partial object is visible.
        """

    @abstractmethod
    def get_stream(self, key: str) -> ObjectStream:
        """Open the object at ``key`` for incremental reading.

        Raises:
            ObjectNotFoundError: If nothing is stored at ``key``.
            StorageError: If the backend could not be read.
        """

    @abstractmethod
    def copy(self, src_key: str, dest_key: str) -> None:
        """Duplicate the object at ``src_key`` to ``dest_key``.

        Raises:
            ObjectNotFoundError: If ``src_key`` does not exist.
            StorageError: If the copy failed.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the object at ``key``. Missing keys are not an error."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Whether an object is stored at ``key``."""
