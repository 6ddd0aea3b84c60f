"""
Reporting contract shared by the metric collectors.

- The catalogue of the seven signals the service exports
- Common label sets attached to every observation
- Instrument registration that degrades to a no-op instrument on failure
- SDK bootstrap (traces + metrics) and trace-aware logging
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Sequence

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.instrumentation.botocore import BotocoreInstrumentor
from opentelemetry.instrumentation.pymongo import PymongoInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.aws import AwsXRayPropagator
from opentelemetry.sdk.extension.aws.trace import AwsXRayIdGenerator
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from otel_sample_app.config import Config

logger = logging.getLogger(__name__)

METER_NAME = "otel_sample_app"

RANDOM_METRIC_LABELS: Dict[str, str] = {"signal": "metric", "language": "python", "metricType": "random"}
REQUEST_METRIC_LABELS: Dict[str, str] = {"signal": "metric", "language": "python", "metricType": "request"}
TRACE_LABELS: Dict[str, str] = {"signal": "trace", "language": "python"}


class SignalKind(Enum):
    COUNTER = ("create_counter", metrics.NoOpCounter)
    UP_DOWN_COUNTER = ("create_up_down_counter", metrics.NoOpUpDownCounter)
    HISTOGRAM = ("create_histogram", metrics.NoOpHistogram)
    OBSERVABLE_COUNTER = ("create_observable_counter", metrics.NoOpObservableCounter)
    OBSERVABLE_GAUGE = ("create_observable_gauge", metrics.NoOpObservableGauge)
    OBSERVABLE_UP_DOWN_COUNTER = ("create_observable_up_down_counter", metrics.NoOpObservableUpDownCounter)

    @property
    def factory(self) -> str:
        return self.value[0]

    @property
    def noop(self):
        return self.value[1]

    @property
    def observable(self) -> bool:
        return self.name.startswith("OBSERVABLE_")


@dataclass(frozen=True)
class MetricSignal:
    name: str
    unit: str
    description: str
    kind: SignalKind

    def for_instance(self, instance_id: Optional[str]) -> "MetricSignal":
        """Suffix the name with the instance id so parallel test runs don't collide."""
        if not instance_id:
            return self
        return dataclasses.replace(self, name=f"{self.name}_{instance_id}")


TIME_ALIVE = MetricSignal(
    "timeAlive", "ms", "Total amount of time that the application has been alive", SignalKind.COUNTER
)
CPU_USAGE = MetricSignal("cpuUsage", "1", "Cpu usage percent", SignalKind.OBSERVABLE_GAUGE)
TOTAL_HEAP_SIZE = MetricSignal(
    "totalHeapSize", "By", "The current total heap size", SignalKind.OBSERVABLE_UP_DOWN_COUNTER
)
THREADS_ACTIVE = MetricSignal(
    "threadsActive", "1", "The total amount of threads active", SignalKind.UP_DOWN_COUNTER
)
TOTAL_BYTES_SENT = MetricSignal(
    "totalBytesSent",
    "By",
    "Keeps a sum of the total amount of bytes sent while the application is alive",
    SignalKind.COUNTER,
)
TOTAL_API_REQUESTS = MetricSignal(
    "totalApiRequests",
    "1",
    "Increments by one every time a sampleapp endpoint is used",
    SignalKind.OBSERVABLE_COUNTER,
)
LATENCY_TIME = MetricSignal(
    "latencyTime", "ms", "Measures latency time in buckets of 100 300 and 500", SignalKind.HISTOGRAM
)


def register_signal(meter: metrics.Meter, signal: MetricSignal, callbacks: Optional[Sequence[Callable]] = None):
    """
    Create the instrument for `signal` on `meter`.

    A rejected registration is logged and replaced by the API's no-op
    instrument of the same kind, so callers never need a None check.
    """
    create = getattr(meter, signal.kind.factory)
    kwargs = {"unit": signal.unit, "description": signal.description}
    if signal.kind.observable:
        kwargs["callbacks"] = list(callbacks or [])
    try:
        return create(signal.name, **kwargs)
    except Exception:
        logger.exception(f"Error registering {signal.name} metric")
        return signal.kind.noop(signal.name, **kwargs)


def xray_trace_id(span: trace.Span) -> str:
    """Render the span's trace id in X-Ray format: 1-<8 hex>-<24 hex>."""
    trace_id = format(span.get_span_context().trace_id, "032x")
    return f"1-{trace_id[0:8]}-{trace_id[8:]}"


def start_client(cfg: Config) -> Callable[[], None]:
    """
    Install the global tracer and meter providers.

    Spans use X-Ray compatible ids and propagation and are exported over
    OTLP. Metrics go to OTLP on the SDK's own schedule and are also
    exposed to Prometheus scrapes. Returns a shutdown callable.
    """
    resource = Resource.create({"service.name": cfg.service_name})

    tracer_provider = TracerProvider(resource=resource, id_generator=AwsXRayIdGenerator())
    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=cfg.otlp_endpoint, insecure=True))
    )
    trace.set_tracer_provider(tracer_provider)
    set_global_textmap(AwsXRayPropagator())

    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=[
            PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=cfg.otlp_endpoint, insecure=True)),
            PrometheusMetricReader(),
        ],
    )
    metrics.set_meter_provider(meter_provider)

    RequestsInstrumentor().instrument(tracer_provider=tracer_provider)
    BotocoreInstrumentor().instrument(tracer_provider=tracer_provider)
    PymongoInstrumentor().instrument(tracer_provider=tracer_provider)
    logger.info(f"Telemetry exporting to {cfg.otlp_endpoint} as {cfg.service_name}")

    def shutdown() -> None:
        meter_provider.shutdown()
        tracer_provider.shutdown()

    return shutdown


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - trace_id=%(trace_id)s span_id=%(span_id)s - %(message)s"


class TraceContextFilter(logging.Filter):
    """Stamp each record with the trace and span id of the current span."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = trace.get_current_span().get_span_context()
        record.trace_id = format(ctx.trace_id, "032x") if ctx.is_valid else "-"
        record.span_id = format(ctx.span_id, "016x") if ctx.is_valid else "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(TraceContextFilter())
