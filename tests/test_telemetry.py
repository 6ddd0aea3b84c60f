import logging
import re

from opentelemetry import metrics
from opentelemetry.sdk.trace import TracerProvider

from otel_sample_app.telemetry import (
    CPU_USAGE,
    LATENCY_TIME,
    TIME_ALIVE,
    SignalKind,
    TraceContextFilter,
    register_signal,
    xray_trace_id,
)
from tests.helpers import FailingMeter


def test_for_instance_suffixes_name():
    assert TIME_ALIVE.for_instance("run7").name == "timeAlive_run7"
    assert TIME_ALIVE.for_instance(None) is TIME_ALIVE
    assert TIME_ALIVE.for_instance("run7").unit == "ms"


def test_observable_kinds():
    assert SignalKind.OBSERVABLE_GAUGE.observable
    assert SignalKind.OBSERVABLE_COUNTER.observable
    assert not SignalKind.HISTOGRAM.observable
    assert not SignalKind.UP_DOWN_COUNTER.observable


def test_register_signal_on_sdk_meter(meter_provider, read_metrics):
    meter = meter_provider.get_meter("test")
    histogram = register_signal(meter, LATENCY_TIME)
    histogram.record(120)
    (point,) = read_metrics()["latencyTime"]
    assert point.count == 1


def test_register_signal_falls_back_to_noop(caplog):
    with caplog.at_level(logging.ERROR):
        counter = register_signal(FailingMeter(), TIME_ALIVE)
        gauge = register_signal(FailingMeter(), CPU_USAGE, callbacks=[lambda options: []])
    assert isinstance(counter, metrics.NoOpCounter)
    assert isinstance(gauge, metrics.NoOpObservableGauge)
    counter.add(5)
    assert "Error registering timeAlive metric" in caplog.text


def test_xray_trace_id_format():
    tracer = TracerProvider().get_tracer("test")
    with tracer.start_as_current_span("span") as span:
        trace_id = xray_trace_id(span)
        raw = format(span.get_span_context().trace_id, "032x")
    assert re.match(r"^1-[0-9a-f]{8}-[0-9a-f]{24}$", trace_id)
    assert trace_id == f"1-{raw[:8]}-{raw[8:]}"


def test_trace_context_filter():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    TraceContextFilter().filter(record)
    assert record.trace_id == "-"
    assert record.span_id == "-"

    tracer = TracerProvider().get_tracer("test")
    with tracer.start_as_current_span("span") as span:
        TraceContextFilter().filter(record)
        ctx = span.get_span_context()
    assert record.trace_id == format(ctx.trace_id, "032x")
    assert record.span_id == format(ctx.span_id, "016x")
