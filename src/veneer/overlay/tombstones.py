"""Tombstone naming policy.

A tombstone is a zero-length marker object named ``<name><mask_suffix>`` kept
only in the local store. Its presence hides ``<name>`` regardless of what the
upstream store holds.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MASK_SUFFIX = ".mask"


@dataclass(frozen=True)
class TombstonePolicy:
    """Maps object names to tombstone names and back.

    Names that legitimately end with the suffix are indistinguishable from
    tombstones; pick a suffix the workload never uses.
    """

    mask_suffix: str = DEFAULT_MASK_SUFFIX

    def __post_init__(self) -> None:
        if not self.mask_suffix:
            raise ValueError("mask_suffix must be a non-empty string")

    def tombstone_name(self, name: str) -> str:
        """Return the tombstone name masking ``name``."""
        return f"{name}{self.mask_suffix}"

    def original_name(self, tombstone_name: str) -> str:
        """Return the name masked by ``tombstone_name``.

        Only the trailing suffix is stripped; names without it are returned
        unchanged.
        """
        if self.is_tombstone(tombstone_name):
            return tombstone_name[: -len(self.mask_suffix)]
        return tombstone_name

    def is_tombstone(self, entry_name: str) -> bool:
        """Return True if ``entry_name`` is a tombstone name."""
        return entry_name.endswith(self.mask_suffix)
