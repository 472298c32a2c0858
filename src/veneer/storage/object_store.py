"""Veneer Object Storage interface definition.

Provides the ObjectStore contract that every backing store and the overlay
itself implement. The overlay depends on nothing but this contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping

from veneer.storage.models import ObjectEntry, StoredObject, StoredObjectMetadata

DEFAULT_CHUNK_SIZE = 1024 * 1024

ByteRange = tuple[int, int]


def validate_byte_range(byte_range: ByteRange) -> None:
    """Reject negative or inverted inclusive ranges.

    Raises:
        ValueError: If the range is negative or inverted.
    """
    start, end = byte_range
    if start < 0 or end < start:
        raise ValueError(f"Invalid byte range: {byte_range}")


def slice_byte_range(data: bytes, byte_range: ByteRange | None) -> bytes:
    """Return the inclusive ``(start, end)`` slice of data.

    Raises:
        ValueError: If the range is negative or inverted.
    """
    if byte_range is None:
        return data
    validate_byte_range(byte_range)
    start, end = byte_range
    return data[start : end + 1]


class ObjectStore(ABC):
    """Abstract base class for object storage backends.

    Implementations:
    - FilesystemObjectStore: Local filesystem (the overlay's local store)
    - InMemoryObjectStore: Process-local dict store (dev/test upstream)
    - OverlayObjectStore: Local store layered over an upstream store
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability.

        Returns:
            Backend name string (e.g., "filesystem", "memory").
        """
        ...

    @abstractmethod
    def container_exists(self, container: str) -> bool:
        """Return True if the container exists."""
        ...

    @abstractmethod
    def create_container(self, container: str) -> bool:
        """Create a container.

        Idempotent: an existing container counts as success.

        Returns:
            True if the container was created or already existed.

        Raises:
            PathTraversalError: If the container name is unsafe.
            StorageBackendError: If the backend cannot create it.
        """
        ...

    @abstractmethod
    def list_containers(self) -> list[str]:
        """Return the names of all containers."""
        ...

    @abstractmethod
    def object_exists(self, container: str, key: str) -> bool:
        """Return True if the object exists. False for a missing container."""
        ...

    @abstractmethod
    def put(
        self,
        container: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        user_metadata: Mapping[str, str] | None = None,
    ) -> StoredObjectMetadata:
        """Store an object, replacing any existing object with the same key.

        Args:
            container: Container name.
            key: Logical key for the object.
            data: Object content as bytes.
            content_type: Optional MIME type of the content.
            user_metadata: Optional free-form string metadata.

        Returns:
            Metadata for the stored object including its etag.

        Raises:
            ContainerUnavailableError: If the container does not exist.
            PathTraversalError: If key contains traversal sequences.
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def get(
        self,
        container: str,
        key: str,
        *,
        byte_range: ByteRange | None = None,
    ) -> StoredObject:
        """Retrieve an object.

        Args:
            container: Container name.
            key: Logical key of the object.
            byte_range: Optional inclusive ``(start, end)`` range of the body.
                Metadata always describes the whole object.

        Returns:
            StoredObject with metadata and body content.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            ContainerUnavailableError: If the container does not exist.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def head(self, container: str, key: str) -> StoredObjectMetadata:
        """Get object metadata without retrieving content.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageBackendError: If the backend cannot complete the operation.
        """
        ...

    @abstractmethod
    def delete(self, container: str, key: str) -> None:
        """Delete an object.

        Idempotent: deleting an absent object is a no-op.

        Raises:
            StorageBackendError: If the backend cannot complete the deletion.
        """
        ...

    @abstractmethod
    def list_objects(
        self,
        container: str,
        *,
        prefix: str | None = None,
    ) -> list[ObjectEntry]:
        """List the objects of a container.

        Args:
            container: Container name.
            prefix: Optional key prefix filter.

        Returns:
            Entries for every matching object. No order is guaranteed.

        Raises:
            ContainerUnavailableError: If the container does not exist.
            StorageBackendError: If the backend cannot complete the listing.
        """
        ...

    def open_stream(
        self,
        container: str,
        key: str,
        chunk_size: int | None = None,
    ) -> Iterator[bytes]:
        """Yield the object body in chunks.

        The default implementation reads the whole object with get(); backends
        able to stream should override it.
        """
        size = chunk_size or DEFAULT_CHUNK_SIZE
        body = self.get(container, key).body
        for offset in range(0, len(body), size):
            yield body[offset : offset + size]

    def put_stream(
        self,
        container: str,
        key: str,
        chunks: Iterable[bytes],
        *,
        content_type: str | None = None,
        user_metadata: Mapping[str, str] | None = None,
    ) -> StoredObjectMetadata:
        """Store an object from an iterable of chunks.

        The default implementation buffers the chunks and calls put(); backends
        able to stream should override it. Exceptions raised by the iterable
        propagate and nothing is stored.
        """
        data = b"".join(chunks)
        return self.put(
            container,
            key,
            data,
            content_type=content_type,
            user_metadata=user_metadata,
        )
