"""
OpenTelemetry Exporter for Strata

Architectural Intent:
- Exports run and resource-transition telemetry to OTLP-compatible backends
- Subscribes to domain events on the event bus; the engine never calls it
  directly
- The opentelemetry SDK is an optional extra, imported lazily

Security:
- Endpoint defaults to empty string (must be explicitly configured)
- Non-localhost http:// endpoints rejected unless insecure=True
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Any
from urllib.parse import urlparse
import logging
from datetime import datetime, UTC

from strata.domain.events.event_base import (
    DomainEvent,
    ResourceTransitioned,
    StackRunCompleted,
    StackRunStarted,
)

logger = logging.getLogger(__name__)


@dataclass
class OTELConfig:
    endpoint: str = ""
    service_name: str = "strata"
    environment: str = "development"
    enable_traces: bool = True
    enable_metrics: bool = True
    insecure: bool = False

    def __post_init__(self) -> None:
        if self.endpoint:
            parsed = urlparse(self.endpoint)
            is_localhost = parsed.hostname in ("localhost", "127.0.0.1", "::1")
            if parsed.scheme == "http" and not is_localhost and not self.insecure:
                raise ValueError(
                    f"Non-localhost HTTP endpoint '{self.endpoint}' requires "
                    "insecure=True or use https://. "
                    "Set insecure=True to explicitly allow plaintext export."
                )


class OTELExporter:
    """
    OpenTelemetry exporter for stack runs.

    Records:
    - strata.resource.transitions: counter per kind/operation/status
    - strata.run.duration_seconds: histogram per operation/status
    - one span per stack run, opened on StackRunStarted
    """

    def __init__(self, config: OTELConfig):
        self.config = config
        self._initialized = False
        self._metrics_buffer: list[dict[str, Any]] = []
        self._meter: Any = None
        self._instruments: dict[str, Any] = {}
        self._spans: dict[str, Any] = {}

    @property
    def enabled(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize OpenTelemetry SDK and exporters."""
        if not self.config.endpoint:
            logger.info("OTEL endpoint not configured, telemetry disabled")
            return

        try:
            from opentelemetry import trace
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
            from opentelemetry.sdk.resources import Resource, SERVICE_NAME
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )
            from opentelemetry import metrics
            from opentelemetry.sdk.metrics import MeterProvider
            from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
            from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
                OTLPMetricExporter,
            )
        except ImportError:
            logger.warning("OpenTelemetry SDK not installed, telemetry disabled")
            return

        resource = Resource(
            attributes={
                SERVICE_NAME: self.config.service_name,
                "environment": self.config.environment,
            }
        )

        if self.config.enable_traces:
            trace.set_tracer_provider(TracerProvider(resource=resource))
            trace.get_tracer_provider().add_span_processor(
                BatchSpanProcessor(
                    OTLPSpanExporter(endpoint=self.config.endpoint, insecure=self.config.insecure)
                )
            )

        if self.config.enable_metrics:
            reader = PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=self.config.endpoint, insecure=self.config.insecure)
            )
            metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))
            self._meter = metrics.get_meter(__name__)

        self._initialized = True
        logger.info("OTEL export enabled to %s", self.config.endpoint)

    def _counter(self, name: str) -> Any:
        if name not in self._instruments and self._meter:
            self._instruments[name] = self._meter.create_counter(name)
        return self._instruments.get(name)

    def _histogram(self, name: str, unit: str) -> Any:
        if name not in self._instruments and self._meter:
            self._instruments[name] = self._meter.create_histogram(name, unit=unit)
        return self._instruments.get(name)

    def record_metric(
        self,
        name: str,
        value: float,
        unit: str = "",
        attributes: Optional[dict[str, str]] = None,
    ) -> None:
        """Buffer a metric value and forward it to the SDK when enabled."""
        self._metrics_buffer.append(
            {
                "name": name,
                "value": value,
                "unit": unit,
                "attributes": attributes or {},
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )
        if not self._initialized:
            return
        if unit == "s":
            instrument = self._histogram(name, unit)
            if instrument:
                instrument.record(value, attributes=attributes or {})
        else:
            instrument = self._counter(name)
            if instrument:
                instrument.add(value, attributes=attributes or {})

    # -- Event handlers ------------------------------------------------------

    async def on_event(self, event: DomainEvent) -> None:
        if isinstance(event, ResourceTransitioned):
            self.record_metric(
                "strata.resource.transitions",
                1,
                attributes={
                    "stack": event.aggregate_id,
                    "kind": event.kind,
                    "operation": event.operation,
                    "status": event.status,
                },
            )
        elif isinstance(event, StackRunStarted):
            self._start_span(event)
        elif isinstance(event, StackRunCompleted):
            self.record_metric(
                "strata.run.duration_seconds",
                event.duration_seconds,
                unit="s",
                attributes={
                    "stack": event.aggregate_id,
                    "operation": event.operation,
                    "status": event.status,
                },
            )
            self._end_span(event)

    def _start_span(self, event: StackRunStarted) -> None:
        if not self._initialized:
            return
        from opentelemetry import trace

        tracer = trace.get_tracer(__name__)
        self._spans[event.aggregate_id] = tracer.start_span(
            f"strata.{event.operation}",
            attributes={"stack": event.aggregate_id, "changes": event.change_count},
        )

    def _end_span(self, event: StackRunCompleted) -> None:
        span = self._spans.pop(event.aggregate_id, None)
        if span is None:
            return
        span.set_attribute("status", event.status)
        span.end()

    def buffered(self) -> list[dict[str, Any]]:
        return list(self._metrics_buffer)

    async def export(self) -> None:
        """Flush the local buffer; the SDK reader exports on its own schedule."""
        if not self._initialized:
            return
        count = len(self._metrics_buffer)
        self._metrics_buffer.clear()
        logger.debug("Flushed %d buffered metrics", count)


async def create_exporter(
    endpoint: Optional[str] = None,
    insecure: bool = False,
    service_name: str = "strata",
) -> OTELExporter:
    """Factory function to create OTEL exporter."""
    config = OTELConfig(
        endpoint=endpoint or "",
        service_name=service_name,
        insecure=insecure,
    )
    exporter = OTELExporter(config)
    await exporter.initialize()
    return exporter
