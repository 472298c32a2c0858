"""Typed results of overlay operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from veneer.storage.errors import ObjectStorageError


class Residency(str, Enum):
    """Where an object or container lives from the overlay's point of view.

    LOCAL: present in the local store.
    UPSTREAM: present upstream only, not yet promoted.
    PROMOTED: was upstream only and has just been copied/created locally.
    MASKED: hidden by a local tombstone.
    ABSENT: in neither store.
    """

    LOCAL = "local"
    UPSTREAM = "upstream"
    PROMOTED = "promoted"
    MASKED = "masked"
    ABSENT = "absent"

    @property
    def present(self) -> bool:
        """Return True if the overlay view reports the target as existing."""
        return self in (Residency.LOCAL, Residency.UPSTREAM, Residency.PROMOTED)


@dataclass
class BatchDeleteResult:
    """Outcome of a best-effort batch delete.

    Attributes:
        deleted: Names that were masked successfully, in request order.
        failed: Names that could not be masked, with the error raised.
    """

    deleted: list[str] = field(default_factory=list)
    failed: dict[str, ObjectStorageError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Return True if every name was deleted."""
        return not self.failed
