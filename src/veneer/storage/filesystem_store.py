"""Veneer Filesystem Object Storage backend.

Provides the overlay's local store with:
- Containers as physical directories under a base directory
- Path traversal protection for container names and keys
- SHA256 etags computed while writing
- Atomic writes (temp file + rename) so readers never see partial objects
- Streaming reads and writes for large payloads

Environment Variables:
    VENEER_OBJECT_STORE_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / veneer_objects)
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
import uuid
from collections.abc import Iterable, Iterator, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import BinaryIO

from veneer.storage.errors import (
    ContainerUnavailableError,
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
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

VENEER_OBJECT_STORE_BASE_DIR_ENV = "VENEER_OBJECT_STORE_BASE_DIR"

_CONTAINER_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.\-]{0,254}$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

_METADATA_SUFFIX = ".meta.json"
_CONTENT_SUFFIX = ".data"


def _is_path_traversal(key: str) -> bool:
    """Check if a key contains path traversal sequences.

    Detects:
    - ".." segments
    - Absolute paths (starting with / or drive letters like C:)
    - Backslashes (Windows path separators)
    - Null bytes and other control characters
    """
    if not key:
        return True

    if _CONTROL_CHARS.search(key):
        return True

    if "\\" in key:
        return True

    if key.startswith("/") or key.startswith("~"):
        return True

    # Windows drive letter (e.g., C:)
    if len(key) >= 2 and key[1] == ":":
        return True

    return any(segment == ".." for segment in key.split("/"))


def _validate_key(container: str, key: str) -> None:
    """Validate object key and raise if invalid."""
    if _is_path_traversal(key):
        raise PathTraversalError(
            message="Invalid key: path traversal or unsafe characters detected",
            container=container,
            key=key,
        )


def _validate_container(container: str) -> None:
    """Validate container name and raise if invalid."""
    if not _CONTAINER_PATTERN.match(container) or ".." in container:
        raise PathTraversalError(
            message="Invalid container name",
            container=container,
        )


class FilesystemObjectStore(ObjectStore):
    """Filesystem-based object storage implementation.

    Objects are stored in a directory structure:
        {base_dir}/{container}/
            {safe_key}_{key_hash}.data       # content
            {safe_key}_{key_hash}.meta.json  # metadata (holds the real key)

    The key hash keeps file names unique and bounded in length; the
    metadata file is the source of truth for the original key.
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                VENEER_OBJECT_STORE_BASE_DIR env var or OS temp directory.
        """
        if base_dir is None:
            base_dir = os.environ.get(VENEER_OBJECT_STORE_BASE_DIR_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "veneer_objects"
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to create base directory: {e.strerror}",
                cause=e,
            ) from e
        logger.debug("FilesystemObjectStore initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        """Return the base directory path."""
        return self._base_dir

    def _get_container_dir(self, container: str) -> Path:
        """Get the directory for a container, validating its name."""
        _validate_container(container)
        return self._base_dir / container

    def _require_container_dir(self, container: str) -> Path:
        container_dir = self._get_container_dir(container)
        if not container_dir.is_dir():
            raise ContainerUnavailableError(container=container)
        return container_dir

    def _object_stem(self, container: str, key: str) -> str:
        """Return the file name stem used for an object."""
        _validate_key(container, key)
        key_hash = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        safe_key = re.sub(r"[^a-zA-Z0-9_\-]", "_", key)[:64]
        return f"{safe_key}_{key_hash}"

    def _object_paths(self, container_dir: Path, stem: str) -> tuple[Path, Path]:
        return (
            container_dir / f"{stem}{_CONTENT_SUFFIX}",
            container_dir / f"{stem}{_METADATA_SUFFIX}",
        )

    def _read_metadata(self, meta_file: Path) -> StoredObjectMetadata | None:
        """Read a metadata file, returning None if missing or unreadable."""
        if not meta_file.exists():
            return None
        try:
            data = json.loads(meta_file.read_text(encoding="utf-8"))
            return StoredObjectMetadata.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError) as e:
            logger.warning("Failed to read metadata %s: %s", meta_file.name, e)
            return None

    def _write_metadata(self, meta_file: Path, metadata: StoredObjectMetadata) -> None:
        """Write metadata atomically."""
        tmp_file = meta_file.with_name(f"{meta_file.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp_file.write_text(
                json.dumps(metadata.to_dict(), indent=2),
                encoding="utf-8",
            )
            tmp_file.replace(meta_file)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageBackendError(
                message=f"Failed to write metadata: {e.strerror}",
                container=metadata.container,
                key=metadata.key,
                cause=e,
            ) from e

    def _write_chunks(
        self,
        content_file: Path,
        chunks: Iterable[bytes],
        container: str,
        key: str,
    ) -> tuple[str, int]:
        """Stream chunks into content_file atomically.

        Returns:
            Tuple of (sha256 hex digest, size in bytes).
        """
        tmp_file = content_file.with_name(f"{content_file.name}.{uuid.uuid4().hex}.tmp")
        digest = hashlib.sha256()
        size = 0
        try:
            with tmp_file.open("wb") as fh:
                for chunk in chunks:
                    digest.update(chunk)
                    fh.write(chunk)
                    size += len(chunk)
            tmp_file.replace(content_file)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageBackendError(
                message=f"Failed to write content: {e.strerror}",
                container=container,
                key=key,
                cause=e,
            ) from e
        except BaseException:
            tmp_file.unlink(missing_ok=True)
            raise
        return digest.hexdigest(), size

    @traced_storage_operation("container_exists")
    def container_exists(self, container: str) -> bool:
        """Return True if the container directory exists."""
        return self._get_container_dir(container).is_dir()

    @traced_storage_operation("create_container")
    def create_container(self, container: str) -> bool:
        """Create the container directory. Existing directories count as success."""
        container_dir = self._get_container_dir(container)
        try:
            container_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to create container directory: {e.strerror}",
                container=container,
                cause=e,
            ) from e
        logger.debug("Created container: container=%s", container)
        return True

    def list_containers(self) -> list[str]:
        """Return container names in sorted order."""
        try:
            return sorted(p.name for p in self._base_dir.iterdir() if p.is_dir())
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to list containers: {e.strerror}",
                cause=e,
            ) from e

    @traced_storage_operation("object_exists")
    def object_exists(self, container: str, key: str) -> bool:
        """Return True if both content and metadata files exist."""
        container_dir = self._get_container_dir(container)
        if not container_dir.is_dir():
            return False
        content_file, meta_file = self._object_paths(
            container_dir, self._object_stem(container, key)
        )
        return content_file.exists() and meta_file.exists()

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
        return self._store(container, key, [data], content_type, user_metadata)

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
        """Store an object from chunks without buffering it in memory."""
        return self._store(container, key, chunks, content_type, user_metadata)

    def _store(
        self,
        container: str,
        key: str,
        chunks: Iterable[bytes],
        content_type: str | None,
        user_metadata: Mapping[str, str] | None,
    ) -> StoredObjectMetadata:
        container_dir = self._require_container_dir(container)
        content_file, meta_file = self._object_paths(
            container_dir, self._object_stem(container, key)
        )

        etag, size = self._write_chunks(content_file, chunks, container, key)

        metadata = StoredObjectMetadata(
            container=container,
            key=key,
            etag=etag,
            size_bytes=size,
            content_type=content_type,
            created_at=datetime.now(UTC),
            user_metadata=dict(user_metadata or {}),
        )
        self._write_metadata(meta_file, metadata)

        logger.debug(
            "Stored object: container=%s key=%s etag=%s size=%d",
            container,
            key,
            etag,
            size,
        )
        return metadata

    def _locate(self, container: str, key: str) -> tuple[Path, StoredObjectMetadata]:
        """Return the content path and metadata of an existing object."""
        container_dir = self._require_container_dir(container)
        content_file, meta_file = self._object_paths(
            container_dir, self._object_stem(container, key)
        )
        metadata = self._read_metadata(meta_file)
        if metadata is None or not content_file.exists():
            raise ObjectNotFoundError(container=container, key=key)
        return content_file, metadata

    @traced_storage_operation("get")
    def get(
        self,
        container: str,
        key: str,
        *,
        byte_range: ByteRange | None = None,
    ) -> StoredObject:
        """Retrieve an object, optionally a byte range of it."""
        if byte_range is not None:
            validate_byte_range(byte_range)
        content_file, metadata = self._locate(container, key)
        try:
            with content_file.open("rb") as fh:
                if byte_range is None:
                    body = fh.read()
                else:
                    start, end = byte_range
                    fh.seek(start)
                    body = fh.read(end - start + 1)
        except FileNotFoundError as e:
            raise ObjectNotFoundError(container=container, key=key) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to read content: {e.strerror}",
                container=container,
                key=key,
                cause=e,
            ) from e
        return StoredObject(metadata=metadata, body=body)

    @traced_storage_operation("head")
    def head(self, container: str, key: str) -> StoredObjectMetadata:
        """Get object metadata without retrieving content."""
        _, metadata = self._locate(container, key)
        return metadata

    def open_stream(
        self,
        container: str,
        key: str,
        chunk_size: int | None = None,
    ) -> Iterator[bytes]:
        """Yield the object body from disk in chunks.

        The file is opened before returning, so a missing object raises
        before iteration starts and a later delete does not affect a stream
        that is already open.
        """
        content_file, _ = self._locate(container, key)
        try:
            fh = content_file.open("rb")
        except FileNotFoundError as e:
            raise ObjectNotFoundError(container=container, key=key) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to open content: {e.strerror}",
                container=container,
                key=key,
                cause=e,
            ) from e
        return self._iter_file(fh, chunk_size or DEFAULT_CHUNK_SIZE, container, key)

    def _iter_file(
        self,
        fh: BinaryIO,
        chunk_size: int,
        container: str,
        key: str,
    ) -> Iterator[bytes]:
        try:
            with fh:
                while chunk := fh.read(chunk_size):
                    yield chunk
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to stream content: {e.strerror}",
                container=container,
                key=key,
                cause=e,
            ) from e

    @traced_storage_operation("delete")
    def delete(self, container: str, key: str) -> None:
        """Delete an object. Missing objects and containers are a no-op."""
        container_dir = self._get_container_dir(container)
        if not container_dir.is_dir():
            return
        content_file, meta_file = self._object_paths(
            container_dir, self._object_stem(container, key)
        )
        try:
            meta_file.unlink(missing_ok=True)
            content_file.unlink(missing_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete object files: {e.strerror}",
                container=container,
                key=key,
                cause=e,
            ) from e
        logger.debug("Deleted object: container=%s key=%s", container, key)

    @traced_storage_operation("list_objects")
    def list_objects(
        self,
        container: str,
        *,
        prefix: str | None = None,
    ) -> list[ObjectEntry]:
        """List objects by reading every metadata file of the container."""
        container_dir = self._require_container_dir(container)
        entries: list[ObjectEntry] = []
        try:
            meta_files = sorted(container_dir.glob(f"*{_METADATA_SUFFIX}"))
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to list container: {e.strerror}",
                container=container,
                cause=e,
            ) from e

        for meta_file in meta_files:
            metadata = self._read_metadata(meta_file)
            if metadata is None:
                continue
            if prefix and not metadata.key.startswith(prefix):
                continue
            content_file = meta_file.with_name(
                meta_file.name[: -len(_METADATA_SUFFIX)] + _CONTENT_SUFFIX
            )
            if not content_file.exists():
                continue
            entries.append(metadata.to_entry())
        return entries
