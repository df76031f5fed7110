"""
hoist Telemetry Infrastructure

Architectural Intent:
- OpenTelemetry integration for deployment observability
- Step durations, run outcomes and per-step traces
"""

from hoist.infrastructure.telemetry.otel_exporter import (
    OTELExporter,
    OTELConfig,
    create_exporter,
)

__all__ = [
    "OTELExporter",
    "OTELConfig",
    "create_exporter",
]
