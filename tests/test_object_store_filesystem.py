"""Tests for the Veneer filesystem object store.

- Roundtrip: put then get returns identical bytes; etag is the SHA256
- Containers: creation is idempotent; missing containers are reported
- Path traversal prevention: unsafe container names and keys are rejected
- Streaming: chunked reads and writes; failed streams leave nothing behind
"""

from __future__ import annotations

import hashlib
import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from veneer.storage.errors import (
    ContainerUnavailableError,
    ObjectNotFoundError,
    PathTraversalError,
)
from veneer.storage.filesystem_store import FilesystemObjectStore
from veneer.storage.models import TOMBSTONE_CONTENT_TYPE


@pytest.fixture
def store(tmp_path: Path) -> FilesystemObjectStore:
    """Create a FilesystemObjectStore with one container."""
    fs = FilesystemObjectStore(base_dir=tmp_path)
    fs.create_container("docs")
    return fs


class TestRoundtrip:
    """Tests for basic put/get roundtrip functionality."""

    def test_put_then_get_returns_identical_bytes(self, store: FilesystemObjectStore) -> None:
        """Put then get should return identical bytes and metadata."""
        data = b"Hello, World! This is test content."

        store.put("docs", "test/document.pdf", data, content_type="application/pdf")
        result = store.get("docs", "test/document.pdf")

        assert result.body == data
        assert result.metadata.container == "docs"
        assert result.metadata.key == "test/document.pdf"
        assert result.metadata.content_type == "application/pdf"

    def test_etag_is_sha256_of_content(self, store: FilesystemObjectStore) -> None:
        """Etag in metadata should match the SHA256 of the content."""
        data = b"Content for hash verification test"

        metadata = store.put("docs", "hash.bin", data)

        assert metadata.etag == hashlib.sha256(data).hexdigest()
        assert store.head("docs", "hash.bin").etag == metadata.etag

    def test_empty_content(self, store: FilesystemObjectStore) -> None:
        """Zero-length objects are stored and read back."""
        metadata = store.put("docs", "empty.bin", b"")

        assert metadata.size_bytes == 0
        assert store.get("docs", "empty.bin").body == b""

    def test_binary_and_larger_content(self, store: FilesystemObjectStore) -> None:
        """Binary content of every byte value survives a roundtrip."""
        data = bytes(range(256)) + os.urandom(64 * 1024)

        store.put("docs", "binary.bin", data)

        assert store.get("docs", "binary.bin").body == data

    def test_user_metadata_roundtrip(self, store: FilesystemObjectStore) -> None:
        """User metadata is persisted alongside the object."""
        store.put("docs", "meta.txt", b"x", user_metadata={"owner": "ops"})

        assert store.head("docs", "meta.txt").user_metadata == {"owner": "ops"}

    def test_overwrite_replaces_object(self, store: FilesystemObjectStore) -> None:
        """A second put of the same key replaces the first."""
        store.put("docs", "note.txt", b"v1")
        store.put("docs", "note.txt", b"v2")

        assert store.get("docs", "note.txt").body == b"v2"
        assert len(store.list_objects("docs")) == 1

    def test_byte_range(self, store: FilesystemObjectStore) -> None:
        """Byte ranges are inclusive on both ends."""
        store.put("docs", "range.txt", b"0123456789")

        assert store.get("docs", "range.txt", byte_range=(2, 5)).body == b"2345"

    def test_invalid_byte_range_rejected(self, store: FilesystemObjectStore) -> None:
        store.put("docs", "range.txt", b"0123456789")

        with pytest.raises(ValueError):
            store.get("docs", "range.txt", byte_range=(5, 2))

    def test_invalid_byte_range_checked_before_lookup(
        self, store: FilesystemObjectStore
    ) -> None:
        with pytest.raises(ValueError):
            store.get("docs", "missing.txt", byte_range=(-1, 2))


class TestContainers:
    """Tests for container handling."""

    def test_create_is_idempotent(self, store: FilesystemObjectStore) -> None:
        assert store.create_container("docs") is True
        assert store.container_exists("docs")

    def test_list_containers_sorted(self, store: FilesystemObjectStore) -> None:
        store.create_container("alpha")

        assert store.list_containers() == ["alpha", "docs"]

    def test_put_into_missing_container_fails(self, store: FilesystemObjectStore) -> None:
        with pytest.raises(ContainerUnavailableError):
            store.put("missing", "a.txt", b"x")

    def test_object_exists_false_for_missing_container(
        self, store: FilesystemObjectStore
    ) -> None:
        assert store.object_exists("missing", "a.txt") is False

    def test_list_missing_container_fails(self, store: FilesystemObjectStore) -> None:
        with pytest.raises(ContainerUnavailableError):
            store.list_objects("missing")


class TestDeleteAndList:
    """Tests for deletion and listing."""

    def test_delete_removes_object(self, store: FilesystemObjectStore) -> None:
        store.put("docs", "gone.txt", b"x")

        store.delete("docs", "gone.txt")

        assert store.object_exists("docs", "gone.txt") is False
        with pytest.raises(ObjectNotFoundError):
            store.get("docs", "gone.txt")

    def test_delete_is_idempotent(self, store: FilesystemObjectStore) -> None:
        """Deleting an absent object or container is a no-op."""
        store.delete("docs", "never-existed.txt")
        store.delete("missing", "never-existed.txt")

    def test_list_returns_original_keys(self, store: FilesystemObjectStore) -> None:
        """Listing reports real keys, not the hashed file names."""
        store.put("docs", "a/b c.txt", b"1")
        store.put("docs", "z.txt", b"22")

        entries = {e.name: e for e in store.list_objects("docs")}

        assert set(entries) == {"a/b c.txt", "z.txt"}
        assert entries["z.txt"].size_bytes == 2

    def test_list_with_prefix(self, store: FilesystemObjectStore) -> None:
        store.put("docs", "img/cat.png", b"1")
        store.put("docs", "txt/readme", b"2")

        assert [e.name for e in store.list_objects("docs", prefix="img/")] == ["img/cat.png"]

    def test_tombstone_hint_from_content_type(self, store: FilesystemObjectStore) -> None:
        store.put("docs", "x.mask", b"", content_type=TOMBSTONE_CONTENT_TYPE)

        (entry,) = store.list_objects("docs")

        assert entry.is_tombstone_hint is True


class TestStreaming:
    """Tests for chunked reads and writes."""

    def test_open_stream_yields_chunks(self, store: FilesystemObjectStore) -> None:
        store.put("docs", "s.bin", b"abcdefghij")

        chunks = list(store.open_stream("docs", "s.bin", chunk_size=4))

        assert chunks == [b"abcd", b"efgh", b"ij"]

    def test_open_stream_missing_raises_eagerly(self, store: FilesystemObjectStore) -> None:
        """Missing objects raise before iteration starts."""
        with pytest.raises(ObjectNotFoundError):
            store.open_stream("docs", "missing.bin")

    def test_open_stream_survives_delete(self, store: FilesystemObjectStore) -> None:
        """An opened stream keeps reading after the object is deleted."""
        store.put("docs", "s.bin", b"abcdefghij")
        stream = store.open_stream("docs", "s.bin", chunk_size=4)

        store.delete("docs", "s.bin")

        assert b"".join(stream) == b"abcdefghij"
        assert store.object_exists("docs", "s.bin") is False

    def test_put_stream(self, store: FilesystemObjectStore) -> None:
        metadata = store.put_stream("docs", "s.bin", iter([b"ab", b"cd"]))

        assert metadata.size_bytes == 4
        assert metadata.etag == hashlib.sha256(b"abcd").hexdigest()
        assert store.get("docs", "s.bin").body == b"abcd"

    def test_failed_stream_leaves_nothing(self, store: FilesystemObjectStore) -> None:
        """An exception from the chunk source aborts the write completely."""

        def broken() -> Iterator[bytes]:
            yield b"partial"
            raise RuntimeError("source died")

        with pytest.raises(RuntimeError):
            store.put_stream("docs", "broken.bin", broken())

        assert store.object_exists("docs", "broken.bin") is False
        assert list(store.base_dir.joinpath("docs").iterdir()) == []

    def test_failed_stream_keeps_previous_version(self, store: FilesystemObjectStore) -> None:
        store.put("docs", "keep.bin", b"old")

        def broken() -> Iterator[bytes]:
            yield b"new"
            raise RuntimeError("source died")

        with pytest.raises(RuntimeError):
            store.put_stream("docs", "keep.bin", broken())

        assert store.get("docs", "keep.bin").body == b"old"


class TestPathTraversal:
    """Tests for path traversal prevention."""

    @pytest.mark.parametrize(
        "key",
        ["../escape", "a/../../b", "/abs/path", "~/home", "C:\\win", "a\\b", "nul\x00byte", ""],
    )
    def test_unsafe_keys_rejected(self, store: FilesystemObjectStore, key: str) -> None:
        with pytest.raises(PathTraversalError):
            store.put("docs", key, b"x")

    @pytest.mark.parametrize("container", ["..", "../up", "a/b", ".hidden", ""])
    def test_unsafe_containers_rejected(
        self, store: FilesystemObjectStore, container: str
    ) -> None:
        with pytest.raises(PathTraversalError):
            store.create_container(container)


class TestConfiguration:
    """Tests for base directory configuration."""

    def test_base_dir_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom_dir = tmp_path / "custom"
        monkeypatch.setenv("VENEER_OBJECT_STORE_BASE_DIR", str(custom_dir))

        fs = FilesystemObjectStore()

        assert fs.base_dir == custom_dir.resolve()
        assert custom_dir.is_dir()
