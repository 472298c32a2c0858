"""Veneer Object Storage data models.

Provides typed dataclasses for object metadata, objects and listing entries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

TOMBSTONE_CONTENT_TYPE = "application/x-veneer-tombstone"


@dataclass(frozen=True)
class StoredObjectMetadata:
    """Metadata for a stored object.

    Attributes:
        container: Container holding the object.
        key: Logical key of the object within the container.
        etag: SHA256 hash of the object content (hex string).
        size_bytes: Size of the object content in bytes.
        content_type: MIME type of the content (e.g., "application/json").
        created_at: Timestamp when the object was written.
        user_metadata: Free-form string metadata supplied by the writer.
    """

    container: str
    key: str
    etag: str
    size_bytes: int
    content_type: str | None
    created_at: datetime
    user_metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert metadata to dictionary for JSON serialization."""
        return {
            "container": self.container,
            "key": self.key,
            "etag": self.etag,
            "size_bytes": self.size_bytes,
            "content_type": self.content_type,
            "created_at": self.created_at.isoformat(),
            "user_metadata": dict(self.user_metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredObjectMetadata:
        """Create metadata from dictionary."""
        created_at_raw = data.get("created_at")
        if isinstance(created_at_raw, str):
            created_at = datetime.fromisoformat(created_at_raw)
        elif isinstance(created_at_raw, datetime):
            created_at = created_at_raw
        else:
            created_at = datetime.now(UTC)

        size_bytes_raw = data.get("size_bytes")
        size_bytes = int(size_bytes_raw) if size_bytes_raw is not None else 0

        content_type_raw = data.get("content_type")
        content_type = str(content_type_raw) if content_type_raw else None

        user_metadata_raw = data.get("user_metadata") or {}
        user_metadata = {str(k): str(v) for k, v in user_metadata_raw.items()}

        return cls(
            container=str(data["container"]),
            key=str(data["key"]),
            etag=str(data["etag"]),
            size_bytes=size_bytes,
            content_type=content_type,
            created_at=created_at,
            user_metadata=user_metadata,
        )

    def to_entry(self) -> ObjectEntry:
        """Project the metadata onto a listing entry."""
        return ObjectEntry(
            name=self.key,
            size_bytes=self.size_bytes,
            etag=self.etag,
            content_type=self.content_type,
            is_tombstone_hint=self.content_type == TOMBSTONE_CONTENT_TYPE,
        )


@dataclass(frozen=True)
class StoredObject:
    """A stored object with metadata and body content.

    Attributes:
        metadata: Object metadata (container, key, etag, size, etc.).
        body: Object content as bytes.
    """

    metadata: StoredObjectMetadata
    body: bytes


@dataclass(frozen=True)
class ObjectEntry:
    """A single entry of a container listing.

    Attributes:
        name: Object key.
        size_bytes: Size of the object content in bytes.
        etag: SHA256 hash of the object content.
        content_type: MIME type, if recorded.
        is_tombstone_hint: True when the store recorded the entry as a
            tombstone marker. Informational; name classification is done
            by the overlay's tombstone policy.
    """

    name: str
    size_bytes: int
    etag: str
    content_type: str | None = None
    is_tombstone_hint: bool = False
