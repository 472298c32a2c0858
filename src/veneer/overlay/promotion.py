"""Read-path promotion: copy upstream-only objects into the local store.

The copy is streamed chunk by chunk and can be cancelled between chunks.
The local store commits the object only once the stream completes, so an
aborted promotion never leaves a partial local copy behind.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator

from veneer.overlay.locks import KeyLockTable
from veneer.overlay.models import Residency
from veneer.overlay.mutation import MutationGate
from veneer.storage.errors import (
    ObjectNotFoundError,
    PromotionCancelledError,
    StorageBackendError,
    wrap_backend_errors,
)
from veneer.storage.models import StoredObjectMetadata
from veneer.storage.object_store import DEFAULT_CHUNK_SIZE, ObjectStore
from veneer.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)


class PromotionEngine:
    """Guarantees an object is present locally before it is read."""

    def __init__(
        self,
        local: ObjectStore,
        upstream: ObjectStore,
        gate: MutationGate,
        *,
        object_locks: KeyLockTable | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize the engine.

        Args:
            local: Local backing store; promoted objects land here.
            upstream: Upstream backing store; only read.
            gate: Mutation gate used to reconcile the local container.
            object_locks: Lock table keyed by (container, name), shared with
                the gate.
            chunk_size: Bytes per chunk when streaming from upstream.
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._local = local
        self._upstream = upstream
        self._gate = gate
        self._object_locks = object_locks or KeyLockTable()
        self._chunk_size = chunk_size

    @property
    def backend_name(self) -> str:
        """Return the identifier used in spans."""
        return f"promotion:{self._upstream.backend_name}"

    @traced_storage_operation("ensure_local")
    def ensure_local(
        self,
        container: str,
        name: str,
        *,
        cancel_event: threading.Event | None = None,
    ) -> Residency:
        """Copy the object from upstream unless it is already local.

        Args:
            container: Container name.
            name: Object name.
            cancel_event: Optional event; when set, an in-flight copy stops
                at the next chunk boundary.

        Returns:
            LOCAL on a local hit (no upstream I/O), PROMOTED after a copy,
            ABSENT if neither store has the object.

        Raises:
            PromotionCancelledError: If cancel_event was set during the copy.
            StorageBackendError: If either store fails or the copy is short.
        """
        with self._object_locks.hold((container, name)):
            with wrap_backend_errors("object_exists", container=container, key=name):
                if self._local.object_exists(container, name):
                    logger.debug(
                        "[ensure_local]: Object %s/%s is locally available", container, name
                    )
                    return Residency.LOCAL

            try:
                with wrap_backend_errors("head", container=container, key=name):
                    upstream_metadata = self._upstream.head(container, name)
            except ObjectNotFoundError:
                logger.warning(
                    "[ensure_local]: Object %s/%s is locally unavailable, "
                    "and does not exist upstream",
                    container,
                    name,
                )
                return Residency.ABSENT

            logger.debug(
                "[ensure_local]: Object %s/%s is locally unavailable, and exists in upstream",
                container,
                name,
            )
            self._gate.require_container(container)
            self._copy(container, name, upstream_metadata, cancel_event)
            logger.debug(
                "[ensure_local]: Object %s/%s successfully copied to local storage",
                container,
                name,
            )
            return Residency.PROMOTED

    def _copy(
        self,
        container: str,
        name: str,
        upstream_metadata: StoredObjectMetadata,
        cancel_event: threading.Event | None,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise PromotionCancelledError(container=container, key=name)

        chunks = self._upstream_chunks(container, name, cancel_event)
        with wrap_backend_errors("promote", container=container, key=name):
            local_metadata = self._local.put_stream(
                container,
                name,
                chunks,
                content_type=upstream_metadata.content_type,
                user_metadata=upstream_metadata.user_metadata,
            )

        if local_metadata.size_bytes != upstream_metadata.size_bytes:
            with wrap_backend_errors("delete", container=container, key=name):
                self._local.delete(container, name)
            raise StorageBackendError(
                message=(
                    f"Promoted object size mismatch: expected {upstream_metadata.size_bytes}, "
                    f"copied {local_metadata.size_bytes}"
                ),
                container=container,
                key=name,
            )

    def _upstream_chunks(
        self,
        container: str,
        name: str,
        cancel_event: threading.Event | None,
    ) -> Iterator[bytes]:
        with wrap_backend_errors("open_stream", container=container, key=name):
            for chunk in self._upstream.open_stream(container, name, self._chunk_size):
                if cancel_event is not None and cancel_event.is_set():
                    logger.debug("[ensure_local]: Promotion of %s/%s cancelled", container, name)
                    raise PromotionCancelledError(container=container, key=name)
                yield chunk
