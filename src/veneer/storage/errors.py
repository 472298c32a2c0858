"""Veneer Object Storage error types.

Provides typed exceptions for storage operations. Every failure surfaces as an
ObjectStorageError subclass; callers never see which backing store (local or
upstream) produced it.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Attributes:
        message: Human-readable error message.
        container: Container associated with the operation (if applicable).
        key: Object key associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        container: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.container = container
        self.key = key

    def __str__(self) -> str:
        parts = [self.message]
        if self.container:
            parts.append(f"container={self.container}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class ObjectNotFoundError(ObjectStorageError):
    """Raised when an object is not found in storage.

    Masked (logically deleted) objects are reported with this error as well.
    """

    def __init__(
        self,
        message: str = "Object not found",
        *,
        container: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, container=container, key=key)


class ContainerUnavailableError(ObjectNotFoundError):
    """Raised when neither backing store holds the requested container."""

    def __init__(
        self,
        message: str = "Container not found",
        *,
        container: str | None = None,
    ) -> None:
        super().__init__(message, container=container)


class OperationNotSupportedError(ObjectStorageError):
    """Raised for operations a store deliberately does not implement."""

    def __init__(
        self,
        operation: str,
        *,
        container: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(f"Operation not supported: {operation}", container=container, key=key)
        self.operation = operation


class PathTraversalError(ObjectStorageError):
    """Raised when a container name or key contains path traversal sequences.

    This is a security error indicating an attempt to escape the storage
    sandbox via keys like "../", absolute paths, or other traversal patterns.
    """

    def __init__(
        self,
        message: str = "Invalid key: path traversal detected",
        *,
        container: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, container=container, key=key)


class StorageBackendError(ObjectStorageError):
    """Raised when a backing store cannot complete an operation.

    This error indicates the backend itself failed (e.g., disk full, network
    failure talking to upstream, permission denied) rather than a logical
    error like object not found.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        container: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, container=container, key=key)
        self.cause = cause


class PromotionCancelledError(ObjectStorageError):
    """Raised when an upstream-to-local copy is cancelled mid-stream.

    No partial object is left in the local store when this is raised.
    """

    def __init__(
        self,
        message: str = "Promotion cancelled",
        *,
        container: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, container=container, key=key)


@contextmanager
def wrap_backend_errors(
    operation: str,
    *,
    container: str | None = None,
    key: str | None = None,
) -> Iterator[None]:
    """Re-raise non-storage exceptions from a backing store as StorageBackendError.

    ObjectStorageError subclasses pass through unchanged so not-found and
    other typed results keep their meaning.
    """
    try:
        yield
    except ObjectStorageError:
        raise
    except Exception as e:
        raise StorageBackendError(
            message=f"{operation} failed: {e}",
            container=container,
            key=key,
            cause=e,
        ) from e
