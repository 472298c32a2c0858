"""Veneer Object Storage Abstraction.

Provides the storage capability contract shared by every backing store, with
SHA256 etags and observability hooks.

Backends:
- FilesystemObjectStore: Local filesystem (the overlay's local store)
- InMemoryObjectStore: Process-local store (dev/test upstream)

Environment Variables:
    VENEER_OBJECT_STORE_BASE_DIR: Base directory for filesystem backend
        (default: OS temp dir / veneer_objects)
"""

from veneer.storage.errors import (
    ContainerUnavailableError,
    ObjectNotFoundError,
    ObjectStorageError,
    OperationNotSupportedError,
    PathTraversalError,
    PromotionCancelledError,
    StorageBackendError,
)
from veneer.storage.filesystem_store import FilesystemObjectStore
from veneer.storage.memory_store import InMemoryObjectStore
from veneer.storage.models import ObjectEntry, StoredObject, StoredObjectMetadata
from veneer.storage.object_store import ObjectStore

__all__ = [
    "ObjectStore",
    "FilesystemObjectStore",
    "InMemoryObjectStore",
    "ObjectEntry",
    "StoredObject",
    "StoredObjectMetadata",
    "ObjectStorageError",
    "ObjectNotFoundError",
    "ContainerUnavailableError",
    "OperationNotSupportedError",
    "PathTraversalError",
    "PromotionCancelledError",
    "StorageBackendError",
]
