"""Veneer Observability module.

Provides OpenTelemetry tracing for storage and overlay operations.
"""

from veneer.observability.tracing import configure_tracing, reset_tracing

__all__ = ["configure_tracing", "reset_tracing"]
