"""
Strata Telemetry Infrastructure

Architectural Intent:
- OpenTelemetry integration for run and resource metrics and traces
"""

from strata.infrastructure.telemetry.otel_exporter import (
    OTELExporter,
    OTELConfig,
    create_exporter,
)

__all__ = [
    "OTELExporter",
    "OTELConfig",
    "create_exporter",
]
