"""Write-path logic of the overlay: container reconciliation and tombstones.

Writes and deletes only ever touch the local store. A delete leaves a
tombstone that hides the upstream copy; the next write of the same name
removes it again.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from veneer.overlay.locks import KeyLockTable
from veneer.overlay.models import BatchDeleteResult, Residency
from veneer.overlay.tombstones import TombstonePolicy
from veneer.storage.errors import (
    ContainerUnavailableError,
    ObjectStorageError,
    StorageBackendError,
    wrap_backend_errors,
)
from veneer.storage.models import TOMBSTONE_CONTENT_TYPE, StoredObjectMetadata
from veneer.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


class MutationGate:
    """Applies writes and deletes to the local store.

    Every write-class operation first reconciles the container, then runs
    its check-then-act sequence under the object's key lock.
    """

    def __init__(
        self,
        local: ObjectStore,
        upstream: ObjectStore,
        policy: TombstonePolicy,
        *,
        object_locks: KeyLockTable | None = None,
        container_locks: KeyLockTable | None = None,
    ) -> None:
        """Initialize the gate.

        Args:
            local: Local backing store; receives every mutation.
            upstream: Upstream backing store; only queried.
            policy: Tombstone naming policy.
            object_locks: Lock table keyed by (container, name). Shared with
                the promotion engine so reads and writes of one key serialize.
            container_locks: Lock table keyed by container name.
        """
        self._local = local
        self._upstream = upstream
        self._policy = policy
        self._object_locks = object_locks or KeyLockTable()
        self._container_locks = container_locks or KeyLockTable()

    def ensure_container(self, container: str) -> Residency:
        """Make sure the container exists locally if it exists anywhere.

        Returns:
            LOCAL if it already existed locally, PROMOTED if it was created
            locally because upstream has it, ABSENT if neither store has it.

        Raises:
            StorageBackendError: If a store fails or local creation fails.
        """
        with wrap_backend_errors("container_exists", container=container):
            if self._local.container_exists(container):
                return Residency.LOCAL

        with self._container_locks.hold(container):
            with wrap_backend_errors("ensure_container", container=container):
                # Another caller may have created it while we waited.
                if self._local.container_exists(container):
                    return Residency.LOCAL
                if not self._upstream.container_exists(container):
                    return Residency.ABSENT
                created = self._local.create_container(container)

        if not created:
            raise StorageBackendError(
                message="Failed to create local container",
                container=container,
            )
        logger.debug("[ensure_container]: Container %s created locally from upstream", container)
        return Residency.PROMOTED

    def require_container(self, container: str) -> Residency:
        """Like ensure_container, but raise when the container is absent.

        Raises:
            ContainerUnavailableError: If neither store has the container.
        """
        residency = self.ensure_container(container)
        if residency is Residency.ABSENT:
            raise ContainerUnavailableError(container=container)
        return residency

    def is_masked(self, container: str, name: str) -> bool:
        """Return True if a local tombstone hides ``name``."""
        with wrap_backend_errors("is_masked", container=container, key=name):
            if not self._local.container_exists(container):
                return False
            return self._local.object_exists(container, self._policy.tombstone_name(name))

    def _mask(self, container: str, name: str) -> bool:
        """Write the tombstone for ``name``. Returns False if already masked."""
        tombstone = self._policy.tombstone_name(name)
        try:
            if self._local.object_exists(container, tombstone):
                logger.debug("[mask]: Object %s/%s already masked", container, name)
                return False
            self._local.put(container, tombstone, b"", content_type=TOMBSTONE_CONTENT_TYPE)
        except StorageBackendError:
            raise
        except Exception as e:
            raise StorageBackendError(
                message=f"Failed to write tombstone: {e}",
                container=container,
                key=name,
                cause=e,
            ) from e
        logger.debug("[mask]: Object %s/%s successfully masked", container, name)
        return True

    def _unmask(self, container: str, name: str) -> bool:
        """Remove the tombstone for ``name``. Returns False if it was not masked."""
        tombstone = self._policy.tombstone_name(name)
        try:
            if not self._local.object_exists(container, tombstone):
                logger.debug("[unmask]: Object %s/%s is not masked", container, name)
                return False
            self._local.delete(container, tombstone)
        except StorageBackendError:
            raise
        except Exception as e:
            raise StorageBackendError(
                message=f"Failed to remove tombstone: {e}",
                container=container,
                key=name,
                cause=e,
            ) from e
        logger.debug("[unmask]: Object %s/%s successfully unmasked", container, name)
        return True

    def _warn_on_tombstone_name(self, operation: str, container: str, name: str) -> None:
        if self._policy.is_tombstone(name):
            logger.warning(
                "[%s]: Object name %s/%s ends with mask suffix %r "
                "and acts as the tombstone for %s",
                operation,
                container,
                name,
                self._policy.mask_suffix,
                self._policy.original_name(name),
            )

    def put(
        self,
        container: str,
        name: str,
        data: bytes,
        *,
        content_type: str | None = None,
        user_metadata: Mapping[str, str] | None = None,
    ) -> StoredObjectMetadata:
        """Write an object locally and clear any tombstone for it.

        The object is written before the tombstone is removed, so a failed
        write leaves a deleted name deleted.

        Raises:
            ContainerUnavailableError: If neither store has the container.
            StorageBackendError: If the write or the tombstone removal fails.
        """
        self.require_container(container)
        self._warn_on_tombstone_name("put", container, name)
        with self._object_locks.hold((container, name)):
            with wrap_backend_errors("put", container=container, key=name):
                metadata = self._local.put(
                    container,
                    name,
                    data,
                    content_type=content_type,
                    user_metadata=user_metadata,
                )
            self._unmask(container, name)
        return metadata

    def put_stream(
        self,
        container: str,
        name: str,
        chunks: Iterable[bytes],
        *,
        content_type: str | None = None,
        user_metadata: Mapping[str, str] | None = None,
    ) -> StoredObjectMetadata:
        """Streaming variant of put()."""
        self.require_container(container)
        self._warn_on_tombstone_name("put_stream", container, name)
        with self._object_locks.hold((container, name)):
            with wrap_backend_errors("put_stream", container=container, key=name):
                metadata = self._local.put_stream(
                    container,
                    name,
                    chunks,
                    content_type=content_type,
                    user_metadata=user_metadata,
                )
            self._unmask(container, name)
        return metadata

    def delete(self, container: str, name: str) -> None:
        """Mask ``name`` and drop its local copy. Upstream is never touched.

        Idempotent: deleting a masked name leaves the same state.

        Raises:
            ContainerUnavailableError: If neither store has the container.
            StorageBackendError: If the tombstone or the local removal fails.
        """
        self.require_container(container)
        self._delete_locked(container, name)

    def _delete_locked(self, container: str, name: str) -> None:
        self._warn_on_tombstone_name("delete", container, name)
        with self._object_locks.hold((container, name)):
            self._mask(container, name)
            with wrap_backend_errors("delete", container=container, key=name):
                if self._local.object_exists(container, name):
                    self._local.delete(container, name)
                    logger.debug("[delete]: Removed local copy of %s/%s", container, name)

    def delete_many(self, container: str, names: Iterable[str]) -> BatchDeleteResult:
        """Delete each name independently, continuing past failures.

        Raises:
            ContainerUnavailableError: If neither store has the container.
        """
        self.require_container(container)
        result = BatchDeleteResult()
        for name in names:
            try:
                self._delete_locked(container, name)
            except ObjectStorageError as e:
                logger.warning("[delete_many]: Failed to delete %s/%s: %s", container, name, e)
                result.failed[name] = e
            else:
                result.deleted.append(name)
        return result
