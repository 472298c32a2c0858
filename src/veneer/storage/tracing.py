"""Veneer Object Storage OpenTelemetry tracing integration.

Provides tracing decorators and utilities for storage operations.

Security:
    - Never export absolute filesystem paths in span attributes
    - Only container names and hashed keys in attributes
    - No payload bytes or user metadata values in any span attribute
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    return default


def _is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool("VENEER_OTEL_ENABLED", False)


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace storage operations with OpenTelemetry.

    The decorated method must take the container name as its first positional
    argument; if a second positional (or ``key=``) string argument is present
    it is recorded as a SHA256 hash.

    Args:
        operation: Operation name (e.g., "put", "get", "list_objects").

    Returns:
        Decorated function that emits OTel spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not _is_otel_enabled():
                return func(self, *args, **kwargs)

            try:
                from opentelemetry import trace
            except ImportError:
                return func(self, *args, **kwargs)

            tracer = trace.get_tracer("veneer.object_store")
            span_name = f"veneer.object_store.{operation}"

            with tracer.start_as_current_span(span_name) as span:
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                container = args[0] if args else kwargs.get("container")
                if isinstance(container, str):
                    span.set_attribute("veneer.container", container)
                key = args[1] if len(args) > 1 else kwargs.get("key")
                if isinstance(key, str):
                    # Keys may carry sensitive names; export only a digest.
                    key_sha256 = hashlib.sha256(key.encode("utf-8")).hexdigest()
                    span.set_attribute("veneer.object_key_sha256", key_sha256)

                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                if result is not None:
                    _add_result_attributes(span, result, operation)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any, operation: str) -> None:
    """Add result-based attributes to span safely.

    Only adds safe attributes (etag, size, content type, counts).
    """
    try:
        from veneer.storage.models import StoredObject, StoredObjectMetadata

        metadata: StoredObjectMetadata | None = None

        if isinstance(result, StoredObjectMetadata):
            metadata = result
        elif isinstance(result, StoredObject):
            metadata = result.metadata

        if metadata is not None:
            span.set_attribute("veneer.object_etag", metadata.etag)
            span.set_attribute("veneer.object_size_bytes", metadata.size_bytes)
            if metadata.content_type:
                span.set_attribute("veneer.object_content_type", metadata.content_type)

        if isinstance(result, list):
            span.set_attribute("veneer.entry_count", len(result))
        elif isinstance(result, bool):
            span.set_attribute("veneer.result", result)
        elif hasattr(result, "value") and operation in ("ensure_local", "residency"):
            span.set_attribute("veneer.residency", str(result.value))

    except Exception as e:
        logger.debug("Failed to add result attributes to span: %s", e)
