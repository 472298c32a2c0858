"""Overlay store configuration.

Environment Variables:
    VENEER_OVERLAY_LOCAL_DIR: Base directory of the local filesystem store
        (required unless passed explicitly).
    VENEER_OVERLAY_MASK_SUFFIX: Tombstone name suffix (default: ".mask").
    VENEER_OVERLAY_PROMOTION_CHUNK_SIZE: Bytes per chunk when promoting
        objects from upstream (default: 1048576).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

from veneer.overlay.tombstones import DEFAULT_MASK_SUFFIX
from veneer.storage.object_store import DEFAULT_CHUNK_SIZE

if TYPE_CHECKING:
    from veneer.overlay.store import OverlayObjectStore
    from veneer.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

ENV_OVERLAY_LOCAL_DIR: Final[str] = "VENEER_OVERLAY_LOCAL_DIR"
ENV_OVERLAY_MASK_SUFFIX: Final[str] = "VENEER_OVERLAY_MASK_SUFFIX"
ENV_OVERLAY_PROMOTION_CHUNK_SIZE: Final[str] = "VENEER_OVERLAY_PROMOTION_CHUNK_SIZE"


class OverlayConfigError(Exception):
    """Raised when overlay configuration is invalid."""


@dataclass(frozen=True)
class OverlayConfig:
    """Overlay configuration (immutable).

    Attributes:
        local_base_dir: Directory holding the local filesystem store.
        mask_suffix: Suffix appended to object names to form tombstone names.
        promotion_chunk_size: Bytes per chunk when streaming from upstream.
    """

    local_base_dir: Path
    mask_suffix: str = DEFAULT_MASK_SUFFIX
    promotion_chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.mask_suffix:
            raise OverlayConfigError(f"{ENV_OVERLAY_MASK_SUFFIX} must be a non-empty string")
        if "/" in self.mask_suffix:
            raise OverlayConfigError(
                f"{ENV_OVERLAY_MASK_SUFFIX} must not contain '/', got {self.mask_suffix!r}"
            )
        if self.promotion_chunk_size <= 0:
            raise OverlayConfigError(
                f"{ENV_OVERLAY_PROMOTION_CHUNK_SIZE} must be a positive integer, "
                f"got {self.promotion_chunk_size}"
            )


def _parse_positive_int(env_var: str, default: int) -> int:
    """Parse a positive integer from environment variable.

    Raises:
        OverlayConfigError: If value is set but not a positive integer.
    """
    raw = os.environ.get(env_var)
    if raw is None or not raw.strip():
        return default

    raw = raw.strip()
    try:
        value = int(raw)
    except ValueError as e:
        raise OverlayConfigError(f"{env_var} must be a positive integer, got '{raw}'") from e

    if value <= 0:
        raise OverlayConfigError(f"{env_var} must be a positive integer, got {value}")

    return value


def load_overlay_config(local_base_dir: str | Path | None = None) -> OverlayConfig:
    """Load overlay configuration from environment variables.

    Args:
        local_base_dir: Overrides VENEER_OVERLAY_LOCAL_DIR when given.

    Returns:
        OverlayConfig with validated values.

    Raises:
        OverlayConfigError: If the local directory is missing or a value is invalid.
    """
    if local_base_dir is None:
        raw_dir = os.environ.get(ENV_OVERLAY_LOCAL_DIR, "").strip()
        if not raw_dir:
            raise OverlayConfigError(f"{ENV_OVERLAY_LOCAL_DIR} must be set")
        local_base_dir = raw_dir

    mask_suffix = os.environ.get(ENV_OVERLAY_MASK_SUFFIX)
    if mask_suffix is None:
        mask_suffix = DEFAULT_MASK_SUFFIX

    return OverlayConfig(
        local_base_dir=Path(local_base_dir),
        mask_suffix=mask_suffix,
        promotion_chunk_size=_parse_positive_int(
            ENV_OVERLAY_PROMOTION_CHUNK_SIZE, DEFAULT_CHUNK_SIZE
        ),
    )


def build_overlay_store(
    upstream: ObjectStore,
    config: OverlayConfig | None = None,
) -> OverlayObjectStore:
    """Create an overlay over ``upstream`` with a filesystem local store.

    Args:
        upstream: Upstream store handle.
        config: Overlay configuration. If None, loads from environment.

    Raises:
        OverlayConfigError: If configuration is invalid.
    """
    from veneer.overlay.store import OverlayObjectStore
    from veneer.storage.filesystem_store import FilesystemObjectStore

    if config is None:
        config = load_overlay_config()

    local = FilesystemObjectStore(base_dir=config.local_base_dir)
    logger.info(
        "Overlay configured: local=%s upstream=%s mask_suffix=%r",
        local.backend_name,
        upstream.backend_name,
        config.mask_suffix,
    )
    return OverlayObjectStore(
        local,
        upstream,
        mask_suffix=config.mask_suffix,
        promotion_chunk_size=config.promotion_chunk_size,
    )
