"""
OpenTelemetry Exporter for hoist

Architectural Intent:
- Exports deployment step timings and run outcomes to OTLP-compatible backends
- One span per deployment step when tracing is enabled
- Telemetry is disabled unless an endpoint is configured; it never affects a run

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

from opentelemetry import metrics, trace

logger = logging.getLogger(__name__)


@dataclass
class OTELConfig:
    endpoint: str = ""
    service_name: str = "hoist"
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
                    "insecure=True or use https://."
                )


class OTELExporter:
    """
    OpenTelemetry exporter for deployment runs.

    Metrics:
    - hoist.step.duration_ms (histogram, attributes: step, success)
    - hoist.deployment.outcome (counter, attributes: outcome)
    """

    def __init__(self, config: OTELConfig):
        self.config = config
        self._initialized = False
        self._metrics_buffer: list[dict[str, Any]] = []
        self._step_histogram: Any = None
        self._outcome_counter: Any = None
        self._providers: list[Any] = []

    def initialize(self) -> None:
        """Initialize the OpenTelemetry SDK and OTLP exporters."""
        if not self.config.endpoint:
            logger.info("OTEL endpoint not configured, telemetry disabled")
            return

        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

        try:
            resource = Resource(attributes={SERVICE_NAME: self.config.service_name})

            if self.config.enable_traces:
                provider = TracerProvider(resource=resource)
                provider.add_span_processor(BatchSpanProcessor(
                    OTLPSpanExporter(endpoint=self.config.endpoint, insecure=self.config.insecure)
                ))
                trace.set_tracer_provider(provider)
                self._providers.append(provider)

            if self.config.enable_metrics:
                reader = PeriodicExportingMetricReader(
                    OTLPMetricExporter(endpoint=self.config.endpoint, insecure=self.config.insecure)
                )
                meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
                metrics.set_meter_provider(meter_provider)
                self._providers.append(meter_provider)
                meter = metrics.get_meter(__name__)
                self._step_histogram = meter.create_histogram("hoist.step.duration_ms", unit="ms")
                self._outcome_counter = meter.create_counter("hoist.deployment.outcome")

            self._initialized = True
        except Exception as e:
            logger.error("Failed to initialize OTEL: %s", e)
            self._initialized = False

    @property
    def enabled(self) -> bool:
        return self._initialized

    def _buffer(self, name: str, value: float, attributes: dict[str, str]) -> None:
        if not self._initialized:
            return
        self._metrics_buffer.append({
            "name": name,
            "value": value,
            "attributes": attributes,
            "timestamp": datetime.now(UTC).isoformat(),
        })

    def record_step(self, step: str, duration_ms: float, success: bool) -> None:
        attributes = {"step": step, "success": str(success).lower()}
        self._buffer("hoist.step.duration_ms", duration_ms, attributes)
        if self._step_histogram is not None:
            self._step_histogram.record(duration_ms, attributes=attributes)

    def record_outcome(self, outcome: str, failed_step: Optional[str] = None) -> None:
        attributes = {"outcome": outcome}
        if failed_step:
            attributes["failed_step"] = failed_step
        self._buffer("hoist.deployment.outcome", 1.0, attributes)
        if self._outcome_counter is not None:
            self._outcome_counter.add(1, attributes=attributes)

    def start_span(self, name: str, attributes: Optional[dict[str, str]] = None) -> Optional[Any]:
        if not self._initialized:
            return None
        tracer = trace.get_tracer(__name__)
        return tracer.start_span(name, attributes=attributes or {})

    def end_span(self, span: Any, error: Optional[BaseException] = None) -> None:
        if span is None:
            return
        if error is not None:
            span.record_exception(error)
            span.set_status(trace.Status(trace.StatusCode.ERROR, str(error)))
        span.end()

    def flush(self) -> None:
        """Push pending spans and metrics out before the process exits."""
        if not self._initialized:
            return
        for provider in self._providers:
            try:
                provider.force_flush()
            except Exception as e:
                logger.warning("OTEL flush failed: %s", e)
        exported = len(self._metrics_buffer)
        self._metrics_buffer.clear()
        if exported:
            logger.debug("Flushed %d buffered metrics", exported)


def create_exporter(
    endpoint: Optional[str] = None,
    service_name: str = "hoist",
    insecure: bool = False,
) -> OTELExporter:
    """Factory function to create an initialized exporter."""
    exporter = OTELExporter(OTELConfig(
        endpoint=endpoint or "", service_name=service_name, insecure=insecure,
    ))
    exporter.initialize()
    return exporter
