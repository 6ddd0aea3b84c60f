"""
Synthetic metric generator.

Produces plausible-looking values for four signals with nothing real
behind them:

- timeAlive: counter advanced on every tick of the background loop
- threadsActive: up-down counter driven by a bounded triangle walk
- cpuUsage / totalHeapSize: sampled lazily whenever the SDK collects
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from opentelemetry import metrics
from opentelemetry.metrics import CallbackOptions, Observation

from otel_sample_app.config import Config
from otel_sample_app.telemetry import (
    CPU_USAGE,
    METER_NAME,
    RANDOM_METRIC_LABELS,
    THREADS_ACTIVE,
    TIME_ALIVE,
    TOTAL_HEAP_SIZE,
    register_signal,
)

logger = logging.getLogger(__name__)


def sample_cpu_usage(upper_bound: int, rng: random.Random) -> int:
    """Uniform int in [0, upper_bound)."""
    return rng.randrange(0, upper_bound)


def sample_heap_size(upper_bound: int, rng: random.Random) -> int:
    """Uniform int in [0, upper_bound)."""
    return rng.randrange(0, upper_bound)


@dataclass
class ThreadsOscillator:
    """
    Bounded bidirectional walk over [0, upper_bound].

    Climbs by one per tick until it reaches upper_bound. The tick that finds
    it at the bound flips the direction and already steps back down, so the
    peak is held for one tick only (and likewise at 0).
    """

    upper_bound: int
    count: int = 0
    ascending: bool = True

    def advance(self) -> int:
        """Move one step and return the applied delta (+1, -1 or 0)."""
        if self.ascending:
            if self.count < self.upper_bound:
                delta = 1
            else:
                self.ascending = False
                delta = -1 if self.count > 0 else 0
        else:
            if self.count > 0:
                delta = -1
            else:
                self.ascending = True
                delta = 1 if self.count < self.upper_bound else 0
        self.count += delta
        return delta


@dataclass
class GeneratorState:
    """Latest value of each synthetic signal. Owned by one collector."""

    threads: ThreadsOscillator
    time_alive_ms: int = 0
    cpu_usage: int = 0
    total_heap_size: int = 0

    @property
    def threads_active(self) -> int:
        return self.threads.count


class RandomMetricCollector:
    """
    Holds and updates the four random-based instruments.

    The tick-driven signals are only written by the loop started with
    start(); the observable ones are sampled from SDK callbacks registered
    once here.
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
        self.labels = dict(RANDOM_METRIC_LABELS if labels is None else labels)
        self.state = GeneratorState(threads=ThreadsOscillator(cfg.threads_active_upper_bound))

        provider = meter_provider or metrics.get_meter_provider()
        self.meter = provider.get_meter(METER_NAME)

        instance_id = cfg.instance_id
        self.total_heap_size = register_signal(
            self.meter, TOTAL_HEAP_SIZE.for_instance(instance_id), callbacks=[self._observe_heap_size]
        )
        self.threads_active = register_signal(self.meter, THREADS_ACTIVE.for_instance(instance_id))
        self.time_alive = register_signal(self.meter, TIME_ALIVE.for_instance(instance_id))
        self.cpu_usage = register_signal(
            self.meter, CPU_USAGE.for_instance(instance_id), callbacks=[self._observe_cpu_usage]
        )

        # created per start(); an Event stays bound to the loop that first waits on it
        self._stop: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    # -- tick driven -------------------------------------------------------

    def advance_time_alive(self, increment: Optional[int] = None) -> int:
        if increment is None:
            increment = self.config.time_alive_increment
        delta = increment * 1000  # ms
        self.time_alive.add(delta, attributes=self.labels)
        self.state.time_alive_ms += delta
        return delta

    def advance_threads_active(self) -> int:
        delta = self.state.threads.advance()
        if delta:
            self.threads_active.add(delta, attributes=self.labels)
        return delta

    def tick(self) -> None:
        self.advance_time_alive()
        self.advance_threads_active()

    # -- pull based --------------------------------------------------------

    def _observe_cpu_usage(self, options: CallbackOptions) -> Iterable[Observation]:
        value = sample_cpu_usage(self.config.cpu_usage_upper_bound, self.rng)
        self.state.cpu_usage = value
        yield Observation(value, self.labels)

    def _observe_heap_size(self, options: CallbackOptions) -> Iterable[Observation]:
        value = sample_heap_size(self.config.total_heap_size_upper_bound, self.rng)
        self.state.total_heap_size = value
        yield Observation(value, self.labels)

    # -- background loop ---------------------------------------------------

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Tick every time_interval seconds until `stop` is set."""
        if stop is None:
            stop = self._stop = asyncio.Event()
        interval = self.config.time_interval
        logger.info(f"Random metric generator started (interval={interval}s)")
        while not stop.is_set():
            self.tick()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Random metric generator stopped")

    def start(self) -> asyncio.Task:
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stop))
        return self._task

    async def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
