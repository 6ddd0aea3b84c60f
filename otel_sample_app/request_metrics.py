"""Request-based metrics updated inline by the endpoint handlers."""

from __future__ import annotations

import random
import threading
from typing import Dict, Iterable, Optional

from opentelemetry import metrics
from opentelemetry.metrics import CallbackOptions, Observation

from otel_sample_app.config import Config
from otel_sample_app.telemetry import (
    LATENCY_TIME,
    METER_NAME,
    REQUEST_METRIC_LABELS,
    TOTAL_API_REQUESTS,
    TOTAL_BYTES_SENT,
    register_signal,
)

BYTES_SENT_UPPER_BOUND = 1024
LATENCY_UPPER_BOUND = 512


class RequestMetricCollector:
    """
    Counts API requests and records per-call bytes sent and latency.

    The request counter is shared by every request-handling thread and is
    only touched under the lock. totalApiRequests reads it from an SDK
    callback on the SDK's collection schedule.
    """

    def __init__(
        self,
        cfg: Config,
        meter_provider: Optional[metrics.MeterProvider] = None,
        rng: Optional[random.Random] = None,
        labels: Optional[Dict[str, str]] = None,
    ):
        self.config = cfg
        self.rng = rng or random.Random()
        self.labels = dict(REQUEST_METRIC_LABELS if labels is None else labels)

        self._lock = threading.Lock()
        self._requests = 0
        self._bytes_sent = 0

        provider = meter_provider or metrics.get_meter_provider()
        self.meter = provider.get_meter(METER_NAME)

        instance_id = cfg.instance_id
        self.total_bytes_sent = register_signal(self.meter, TOTAL_BYTES_SENT.for_instance(instance_id))
        self.total_api_requests = register_signal(
            self.meter, TOTAL_API_REQUESTS.for_instance(instance_id), callbacks=[self._observe_total_requests]
        )
        self.latency_time = register_signal(self.meter, LATENCY_TIME.for_instance(instance_id))

    def record_request(self) -> None:
        with self._lock:
            self._requests += 1

    def current_request_count(self) -> int:
        with self._lock:
            return self._requests

    @property
    def bytes_sent(self) -> int:
        with self._lock:
            return self._bytes_sent

    def record_bytes_sent(self) -> int:
        """Add a value in [0, 1024) to totalBytesSent and return it."""
        value = self.rng.randrange(0, BYTES_SENT_UPPER_BOUND)
        self.total_bytes_sent.add(value, attributes=self.labels)
        with self._lock:
            self._bytes_sent += value
        return value

    def record_latency_sample(self) -> int:
        """Record a value in [0, 512) into the latencyTime histogram and return it."""
        value = self.rng.randrange(0, LATENCY_UPPER_BOUND)
        self.latency_time.record(value, attributes=self.labels)
        return value

    def record_outbound_call(self) -> None:
        self.record_request()
        self.record_bytes_sent()
        self.record_latency_sample()

    def _observe_total_requests(self, options: CallbackOptions) -> Iterable[Observation]:
        yield Observation(self.current_request_count(), self.labels)
