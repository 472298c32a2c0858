"""Overlay object store: a local store layered over an upstream store.

Presents both backing stores as one ObjectStore:
- Reads are served locally; upstream-only objects are promoted on first read
- Writes land locally; upstream is never written
- Deletes leave a local tombstone; upstream copies are never removed
- Listings merge both namespaces and hide masked names

Every object operation runs under a per-(container, name) lock, so
concurrent callers on one key serialize while unrelated keys proceed.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import NoReturn

from veneer.overlay.listing import ListingReconciler
from veneer.overlay.locks import KeyLockTable
from veneer.overlay.models import BatchDeleteResult, Residency
from veneer.overlay.mutation import MutationGate
from veneer.overlay.promotion import PromotionEngine
from veneer.overlay.tombstones import DEFAULT_MASK_SUFFIX, TombstonePolicy
from veneer.storage.errors import (
    ContainerUnavailableError,
    ObjectNotFoundError,
    OperationNotSupportedError,
    wrap_backend_errors,
)
from veneer.storage.models import ObjectEntry, StoredObject, StoredObjectMetadata
from veneer.storage.object_store import (
    DEFAULT_CHUNK_SIZE,
    ByteRange,
    ObjectStore,
    validate_byte_range,
)
from veneer.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)


class OverlayObjectStore(ObjectStore):
    """ObjectStore composed of a local store over an upstream store.

    Callers cannot tell it apart from a single store: which backing store
    served a request is never exposed, and all failures use the shared
    storage error types.
    """

    def __init__(
        self,
        local: ObjectStore,
        upstream: ObjectStore,
        *,
        mask_suffix: str = DEFAULT_MASK_SUFFIX,
        promotion_chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize the overlay.

        Args:
            local: Fast local store; receives every mutation and promotion.
            upstream: Slower upstream store; only read.
            mask_suffix: Suffix forming tombstone names. Must be non-empty.
            promotion_chunk_size: Bytes per chunk when promoting objects.
        """
        self._local = local
        self._upstream = upstream
        self._policy = TombstonePolicy(mask_suffix)
        self._object_locks = KeyLockTable()
        self._container_locks = KeyLockTable()
        self._gate = MutationGate(
            local,
            upstream,
            self._policy,
            object_locks=self._object_locks,
            container_locks=self._container_locks,
        )
        self._promotion = PromotionEngine(
            local,
            upstream,
            self._gate,
            object_locks=self._object_locks,
            chunk_size=promotion_chunk_size,
        )
        self._listing = ListingReconciler(self._policy)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier with overlay prefix."""
        return f"overlay:{self._local.backend_name}+{self._upstream.backend_name}"

    @property
    def local(self) -> ObjectStore:
        """Return the local backing store."""
        return self._local

    @property
    def upstream(self) -> ObjectStore:
        """Return the upstream backing store."""
        return self._upstream

    @property
    def policy(self) -> TombstonePolicy:
        """Return the tombstone naming policy."""
        return self._policy

    def _raise_not_found(self, container: str, name: str) -> NoReturn:
        """Raise the not-found error matching the container's state."""
        with wrap_backend_errors("container_exists", container=container):
            container_known = self._local.container_exists(
                container
            ) or self._upstream.container_exists(container)
        if not container_known:
            raise ContainerUnavailableError(container=container)
        raise ObjectNotFoundError(container=container, key=name)

    def _require_unmasked(self, container: str, name: str) -> None:
        if self._gate.is_masked(container, name):
            logger.debug("Object %s/%s is masked", container, name)
            raise ObjectNotFoundError(container=container, key=name)

    # Containers

    @traced_storage_operation("container_exists")
    def container_exists(self, container: str) -> bool:
        """Return True if either store has the container.

        An upstream-only container is created locally as a side effect.
        """
        return self._gate.ensure_container(container).present

    @traced_storage_operation("create_container")
    def create_container(self, container: str) -> bool:
        """Create the container locally. Idempotent."""
        with self._container_locks.hold(container):
            with wrap_backend_errors("create_container", container=container):
                return self._local.create_container(container)

    def list_containers(self) -> list[str]:
        """Return container names from both stores, local first."""
        with wrap_backend_errors("list_containers"):
            local_names = self._local.list_containers()
            upstream_names = self._upstream.list_containers()
        return self._listing.merge_containers(local_names, upstream_names)

    def delete_container(self, container: str) -> None:
        """Not supported: containers are never deleted by the overlay."""
        raise OperationNotSupportedError("delete_container", container=container)

    # Reads

    @traced_storage_operation("residency")
    def residency(self, container: str, name: str) -> Residency:
        """Report the overlay state of an object without promoting it.

        Returns:
            MASKED, LOCAL, UPSTREAM or ABSENT.
        """
        with self._object_locks.hold((container, name)):
            if self._gate.is_masked(container, name):
                return Residency.MASKED
            with wrap_backend_errors("object_exists", container=container, key=name):
                if self._local.object_exists(container, name):
                    return Residency.LOCAL
                if self._upstream.object_exists(container, name):
                    return Residency.UPSTREAM
        return Residency.ABSENT

    @traced_storage_operation("object_exists")
    def object_exists(self, container: str, key: str) -> bool:
        """Return True unless the object is masked or in neither store."""
        return self.residency(container, key).present

    def ensure_local(
        self,
        container: str,
        key: str,
        *,
        cancel_event: threading.Event | None = None,
    ) -> Residency:
        """Promote the object into the local store if needed.

        Masked objects are never promoted.

        Returns:
            LOCAL, PROMOTED, or MASKED / ABSENT when there is nothing to serve.
        """
        with self._object_locks.hold((container, key)):
            if self._gate.is_masked(container, key):
                return Residency.MASKED
            return self._promotion.ensure_local(container, key, cancel_event=cancel_event)

    def _prepare_read(
        self,
        container: str,
        key: str,
        cancel_event: threading.Event | None,
    ) -> None:
        """Check the mask and promote. Caller holds the key lock."""
        self._require_unmasked(container, key)
        residency = self._promotion.ensure_local(container, key, cancel_event=cancel_event)
        if residency is Residency.ABSENT:
            self._raise_not_found(container, key)

    @traced_storage_operation("get")
    def get(
        self,
        container: str,
        key: str,
        *,
        byte_range: ByteRange | None = None,
        cancel_event: threading.Event | None = None,
    ) -> StoredObject:
        """Read an object, promoting it from upstream on first access.

        Raises:
            ObjectNotFoundError: If the object is masked or in neither store.
            ContainerUnavailableError: If neither store has the container.
            PromotionCancelledError: If cancel_event was set during promotion.
            ValueError: If byte_range is negative or inverted.
            StorageBackendError: If a backing store fails.
        """
        if byte_range is not None:
            validate_byte_range(byte_range)
        with self._object_locks.hold((container, key)):
            self._prepare_read(container, key, cancel_event)
            with wrap_backend_errors("get", container=container, key=key):
                return self._local.get(container, key, byte_range=byte_range)

    def open_stream(
        self,
        container: str,
        key: str,
        chunk_size: int | None = None,
    ) -> Iterator[bytes]:
        """Stream an object, promoting it from upstream first if needed."""
        with self._object_locks.hold((container, key)):
            self._prepare_read(container, key, None)
            with wrap_backend_errors("open_stream", container=container, key=key):
                return self._local.open_stream(container, key, chunk_size)

    @traced_storage_operation("download")
    def download(
        self,
        container: str,
        key: str,
        destination: str | Path,
    ) -> StoredObjectMetadata:
        """Write an object's payload to a file, promoting it first if needed.

        The file is written to a temporary sibling and renamed into place.

        Returns:
            Metadata of the downloaded object.
        """
        destination = Path(destination)
        with self._object_locks.hold((container, key)):
            self._prepare_read(container, key, None)
            with wrap_backend_errors("download", container=container, key=key):
                metadata = self._local.head(container, key)
                chunks = self._local.open_stream(container, key)
                tmp_file = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}.tmp")
                try:
                    with tmp_file.open("wb") as fh:
                        for chunk in chunks:
                            fh.write(chunk)
                    tmp_file.replace(destination)
                except BaseException:
                    tmp_file.unlink(missing_ok=True)
                    raise
        logger.debug("Downloaded %s/%s to %s", container, key, destination.name)
        return metadata

    @traced_storage_operation("head")
    def head(self, container: str, key: str) -> StoredObjectMetadata:
        """Return metadata, preferring the local copy over the upstream one.

        Unlike get(), this never promotes.
        """
        with self._object_locks.hold((container, key)):
            self._require_unmasked(container, key)
            with wrap_backend_errors("head", container=container, key=key):
                if self._local.object_exists(container, key):
                    return self._local.head(container, key)
            try:
                with wrap_backend_errors("head", container=container, key=key):
                    return self._upstream.head(container, key)
            except ObjectNotFoundError:
                pass
            self._raise_not_found(container, key)

    # Writes

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
        """Write an object locally, clearing any tombstone for it."""
        return self._gate.put(
            container,
            key,
            data,
            content_type=content_type,
            user_metadata=user_metadata,
        )

    @traced_storage_operation("put_stream")
    def put_stream(
        self,
        container: str,
        key: str,
        chunks: Iterable[bytes],
        *,
        content_type: str | None = None,
        user_metadata: Mapping[str, str] | None = None,
    ) -> StoredObjectMetadata:
        """Streaming variant of put()."""
        return self._gate.put_stream(
            container,
            key,
            chunks,
            content_type=content_type,
            user_metadata=user_metadata,
        )

    @traced_storage_operation("delete")
    def delete(self, container: str, key: str) -> None:
        """Mask an object and drop its local copy."""
        self._gate.delete(container, key)

    @traced_storage_operation("delete_many")
    def delete_many(self, container: str, keys: Iterable[str]) -> BatchDeleteResult:
        """Delete several objects, continuing past individual failures."""
        return self._gate.delete_many(container, keys)

    def copy_object(
        self,
        source_container: str,
        source_key: str,
        destination_container: str,
        destination_key: str,
    ) -> StoredObjectMetadata:
        """Not supported."""
        raise OperationNotSupportedError(
            "copy_object", container=source_container, key=source_key
        )

    def get_object_acl(self, container: str, key: str) -> str:
        """Not supported."""
        raise OperationNotSupportedError("get_object_acl", container=container, key=key)

    def set_object_acl(self, container: str, key: str, acl: str) -> None:
        """Not supported."""
        raise OperationNotSupportedError("set_object_acl", container=container, key=key)

    # Listings

    @traced_storage_operation("list_objects")
    def list_objects(
        self,
        container: str,
        *,
        prefix: str | None = None,
    ) -> list[ObjectEntry]:
        """List the merged view of a container.

        Raises:
            ContainerUnavailableError: If neither store has the container.
        """
        self._gate.require_container(container)
        with wrap_backend_errors("list_objects", container=container):
            local_entries = self._local.list_objects(container, prefix=prefix)
        try:
            with wrap_backend_errors("list_objects", container=container):
                upstream_entries = self._upstream.list_objects(container, prefix=prefix)
        except ContainerUnavailableError:
            upstream_entries = []
        return self._listing.merge(local_entries, upstream_entries)

    def count_objects(self, container: str, *, prefix: str | None = None) -> int:
        """Return the number of visible objects in a container."""
        return len(self.list_objects(container, prefix=prefix))

    @traced_storage_operation("clear_container")
    def clear_container(self, container: str) -> BatchDeleteResult:
        """Delete every visible object of a container, best-effort."""
        names = [entry.name for entry in self.list_objects(container)]
        result = self._gate.delete_many(container, names)
        if not result.ok:
            logger.warning(
                "clear_container %s left %d objects undeleted", container, len(result.failed)
            )
        return result
