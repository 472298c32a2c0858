"""Pytest configuration and fixtures for Veneer tests.

This module provides common fixtures and test doubles for all tests.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path

import pytest

from veneer.overlay.store import OverlayObjectStore
from veneer.storage.filesystem_store import FilesystemObjectStore
from veneer.storage.memory_store import InMemoryObjectStore
from veneer.storage.models import ObjectEntry, StoredObject, StoredObjectMetadata
from veneer.storage.object_store import ByteRange, ObjectStore

VENEER_ENV_VARS = (
    "VENEER_OTEL_ENABLED",
    "VENEER_OTEL_TEST_CAPTURE",
    "VENEER_OBJECT_STORE_BASE_DIR",
    "VENEER_OVERLAY_LOCAL_DIR",
    "VENEER_OVERLAY_MASK_SUFFIX",
    "VENEER_OVERLAY_PROMOTION_CHUNK_SIZE",
)


@pytest.fixture(autouse=True)
def clean_veneer_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test without Veneer environment configuration."""
    for var in VENEER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class RecordingStore(ObjectStore):
    """ObjectStore wrapper that records calls and can simulate failures.

    Operations named in ``fail_on`` raise ConnectionError, the way a network
    client would, instead of a storage error.
    """

    def __init__(self, inner: ObjectStore, name: str = "recording") -> None:
        self.inner = inner
        self.name = name
        self.calls: list[tuple[str, str | None, str | None]] = []
        self.fail_on: set[str] = set()

    def _record(self, op: str, container: str | None = None, key: str | None = None) -> None:
        self.calls.append((op, container, key))
        if op in self.fail_on:
            raise ConnectionError(f"simulated {op} failure")

    def ops(self, op: str) -> list[tuple[str, str | None, str | None]]:
        return [call for call in self.calls if call[0] == op]

    @property
    def backend_name(self) -> str:
        return self.name

    def container_exists(self, container: str) -> bool:
        self._record("container_exists", container)
        return self.inner.container_exists(container)

    def create_container(self, container: str) -> bool:
        self._record("create_container", container)
        return self.inner.create_container(container)

    def list_containers(self) -> list[str]:
        self._record("list_containers")
        return self.inner.list_containers()

    def object_exists(self, container: str, key: str) -> bool:
        self._record("object_exists", container, key)
        return self.inner.object_exists(container, key)

    def put(
        self,
        container: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        user_metadata: Mapping[str, str] | None = None,
    ) -> StoredObjectMetadata:
        self._record("put", container, key)
        return self.inner.put(
            container, key, data, content_type=content_type, user_metadata=user_metadata
        )

    def put_stream(
        self,
        container: str,
        key: str,
        chunks: Iterable[bytes],
        *,
        content_type: str | None = None,
        user_metadata: Mapping[str, str] | None = None,
    ) -> StoredObjectMetadata:
        self._record("put_stream", container, key)
        return self.inner.put_stream(
            container, key, chunks, content_type=content_type, user_metadata=user_metadata
        )

    def get(
        self,
        container: str,
        key: str,
        *,
        byte_range: ByteRange | None = None,
    ) -> StoredObject:
        self._record("get", container, key)
        return self.inner.get(container, key, byte_range=byte_range)

    def open_stream(
        self,
        container: str,
        key: str,
        chunk_size: int | None = None,
    ) -> Iterator[bytes]:
        self._record("open_stream", container, key)
        return self.inner.open_stream(container, key, chunk_size)

    def head(self, container: str, key: str) -> StoredObjectMetadata:
        self._record("head", container, key)
        return self.inner.head(container, key)

    def delete(self, container: str, key: str) -> None:
        self._record("delete", container, key)
        self.inner.delete(container, key)

    def list_objects(
        self,
        container: str,
        *,
        prefix: str | None = None,
    ) -> list[ObjectEntry]:
        self._record("list_objects", container)
        return self.inner.list_objects(container, prefix=prefix)


@pytest.fixture
def local_store(tmp_path: Path) -> RecordingStore:
    """Local filesystem store in a temp directory, wrapped for call recording."""
    return RecordingStore(FilesystemObjectStore(base_dir=tmp_path / "local"), name="local")


@pytest.fixture
def upstream_store() -> RecordingStore:
    """In-memory upstream store, wrapped for call recording."""
    return RecordingStore(InMemoryObjectStore(name="upstream"), name="upstream")


@pytest.fixture
def overlay(local_store: RecordingStore, upstream_store: RecordingStore) -> OverlayObjectStore:
    """Overlay with the default ".mask" suffix and small promotion chunks."""
    return OverlayObjectStore(local_store, upstream_store, promotion_chunk_size=4)
