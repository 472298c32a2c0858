"""In-memory object store.

Used for development and testing without a filesystem or network dependency,
typically standing in for the upstream store.
"""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Mapping
from datetime import UTC, datetime

from veneer.storage.errors import ContainerUnavailableError, ObjectNotFoundError
from veneer.storage.models import ObjectEntry, StoredObject, StoredObjectMetadata
from veneer.storage.object_store import ByteRange, ObjectStore, slice_byte_range
from veneer.storage.tracing import traced_storage_operation


class InMemoryObjectStore(ObjectStore):
    """Dict-backed object store. Thread-safe via a single lock."""

    def __init__(self, name: str = "memory") -> None:
        """Initialize an empty store.

        Args:
            name: Backend name reported for observability.
        """
        self._name = name
        self._containers: dict[str, dict[str, StoredObject]] = {}
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return self._name

    def container_exists(self, container: str) -> bool:
        with self._lock:
            return container in self._containers

    def create_container(self, container: str) -> bool:
        with self._lock:
            self._containers.setdefault(container, {})
        return True

    def list_containers(self) -> list[str]:
        with self._lock:
            return sorted(self._containers)

    def object_exists(self, container: str, key: str) -> bool:
        with self._lock:
            return key in self._containers.get(container, {})

    def _objects(self, container: str) -> dict[str, StoredObject]:
        """Return the object map of a container. Caller holds the lock."""
        objects = self._containers.get(container)
        if objects is None:
            raise ContainerUnavailableError(container=container)
        return objects

    @traced_storage_operation("put")
    def put(
        self,
        container: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        user_metadata: Mapping[str, str] | None = None,
    ) -> StoredObjectMetadata:
        """Store an object."""
        metadata = StoredObjectMetadata(
            container=container,
            key=key,
            etag=hashlib.sha256(data).hexdigest(),
            size_bytes=len(data),
            content_type=content_type,
            created_at=datetime.now(UTC),
            user_metadata=dict(user_metadata or {}),
        )
        with self._lock:
            self._objects(container)[key] = StoredObject(metadata=metadata, body=bytes(data))
        return metadata

    @traced_storage_operation("get")
    def get(
        self,
        container: str,
        key: str,
        *,
        byte_range: ByteRange | None = None,
    ) -> StoredObject:
        """Retrieve an object."""
        with self._lock:
            stored = self._objects(container).get(key)
        if stored is None:
            raise ObjectNotFoundError(container=container, key=key)
        if byte_range is None:
            return stored
        return StoredObject(
            metadata=stored.metadata,
            body=slice_byte_range(stored.body, byte_range),
        )

    @traced_storage_operation("head")
    def head(self, container: str, key: str) -> StoredObjectMetadata:
        """Get object metadata."""
        return self.get(container, key).metadata

    @traced_storage_operation("delete")
    def delete(self, container: str, key: str) -> None:
        """Delete an object. Missing objects are a no-op."""
        with self._lock:
            self._containers.get(container, {}).pop(key, None)

    @traced_storage_operation("list_objects")
    def list_objects(
        self,
        container: str,
        *,
        prefix: str | None = None,
    ) -> list[ObjectEntry]:
        """List objects in insertion order."""
        with self._lock:
            stored = list(self._objects(container).values())
        return [
            obj.metadata.to_entry()
            for obj in stored
            if not prefix or obj.metadata.key.startswith(prefix)
        ]
