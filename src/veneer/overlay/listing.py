"""Listing reconciliation: merge local and upstream namespaces."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from veneer.overlay.tombstones import TombstonePolicy
from veneer.storage.models import ObjectEntry

logger = logging.getLogger(__name__)


class ListingReconciler:
    """Merges two listings into one view, hiding masked names.

    Only local tombstones mask. Entries named in both listings appear once,
    taken from the local listing. Order: surviving local entries in input
    order, then upstream-only entries in input order.
    """

    def __init__(self, policy: TombstonePolicy) -> None:
        self._policy = policy

    def merge(
        self,
        local_entries: Iterable[ObjectEntry],
        upstream_entries: Iterable[ObjectEntry],
    ) -> list[ObjectEntry]:
        """Return the merged, tombstone-free listing."""
        masked: set[str] = set()
        merged: list[ObjectEntry] = []

        for entry in local_entries:
            if self._policy.is_tombstone(entry.name):
                original = self._policy.original_name(entry.name)
                logger.info(
                    "[merge]: Entry %s is a tombstone for %s",
                    entry.name,
                    original,
                )
                masked.add(original)
            else:
                merged.append(entry)

        seen = {entry.name for entry in merged}
        for entry in upstream_entries:
            if entry.name in seen:
                continue
            seen.add(entry.name)
            merged.append(entry)

        if not masked:
            return merged

        visible: list[ObjectEntry] = []
        for entry in merged:
            if entry.name in masked:
                logger.warning("[merge]: Entry %s is masked, removing from list", entry.name)
                continue
            visible.append(entry)
        return visible

    @staticmethod
    def merge_containers(
        local_names: Iterable[str],
        upstream_names: Iterable[str],
    ) -> list[str]:
        """Return the union of container names, local first, without duplicates."""
        return list(dict.fromkeys([*local_names, *upstream_names]))
