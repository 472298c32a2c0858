"""Veneer overlay store.

Layers a fast local store over a slower upstream store: reads promote
upstream objects into the local store, writes land locally, and deletes are
recorded as local tombstones that hide the upstream copy.

Environment Variables:
    VENEER_OVERLAY_LOCAL_DIR: Base directory of the local filesystem store
    VENEER_OVERLAY_MASK_SUFFIX: Tombstone name suffix (default: ".mask")
    VENEER_OVERLAY_PROMOTION_CHUNK_SIZE: Promotion chunk size in bytes
"""

from veneer.overlay.config import (
    OverlayConfig,
    OverlayConfigError,
    build_overlay_store,
    load_overlay_config,
)
from veneer.overlay.listing import ListingReconciler
from veneer.overlay.locks import KeyLockTable
from veneer.overlay.models import BatchDeleteResult, Residency
from veneer.overlay.mutation import MutationGate
from veneer.overlay.promotion import PromotionEngine
from veneer.overlay.store import OverlayObjectStore
from veneer.overlay.tombstones import DEFAULT_MASK_SUFFIX, TombstonePolicy

__all__ = [
    "OverlayObjectStore",
    "OverlayConfig",
    "OverlayConfigError",
    "build_overlay_store",
    "load_overlay_config",
    "TombstonePolicy",
    "DEFAULT_MASK_SUFFIX",
    "PromotionEngine",
    "MutationGate",
    "ListingReconciler",
    "KeyLockTable",
    "Residency",
    "BatchDeleteResult",
]
