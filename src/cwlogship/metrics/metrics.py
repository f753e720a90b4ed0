"""
Async metrics collection for the shipping pipeline.

Implements Prometheus-compatible counters and histograms for batching and
delivery, most importantly a dropped-batch counter so gaps in the remote log
store can be alerted on.

Design goals:
- Zero global state; instances are pipeline-scoped with an isolated registry
- In-memory counters always tracked so tests can assert on them
- Safe no-op export when metrics are disabled by settings
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram


@dataclass
class PipelineMetrics:
    """Captured runtime metrics for quick assertions in tests."""

    messages_submitted: int = 0
    batches_flushed: int = 0
    batches_delivered: int = 0
    batches_dropped: int = 0
    events_delivered: int = 0
    events_dropped: int = 0
    cursor_retries: int = 0
    remote_calls: dict[str, int] = field(default_factory=dict)


class MetricsCollector:
    """Pipeline-scoped async metrics collector."""

    def __init__(self, *, enabled: bool = False) -> None:
        self._enabled = bool(enabled)
        self._lock = asyncio.Lock()
        self._state = PipelineMetrics()

        self._c_submitted: Any | None = None
        self._c_flushed: Any | None = None
        self._c_delivered: Any | None = None
        self._c_dropped: Any | None = None
        self._c_events_delivered: Any | None = None
        self._c_events_dropped: Any | None = None
        self._c_remote_calls: Any | None = None
        self._c_cursor_retries: Any | None = None
        self._h_batch_events: Any | None = None
        self._h_delivery_latency: Any | None = None
        self._registry: CollectorRegistry | None = None

        if self._enabled:
            # Isolated registry avoids global duplication across pipelines
            self._registry = CollectorRegistry()
            self._c_submitted = Counter(
                "cwlogship_messages_submitted_total",
                "Messages accepted into the pipeline",
                registry=self._registry,
            )
            self._c_flushed = Counter(
                "cwlogship_batches_flushed_total",
                "Batches emitted by the batcher",
                ["reason"],
                registry=self._registry,
            )
            self._c_delivered = Counter(
                "cwlogship_batches_delivered_total",
                "Batches accepted by the remote log service",
                registry=self._registry,
            )
            self._c_dropped = Counter(
                "cwlogship_batches_dropped_total",
                "Batches dropped after a failed delivery attempt",
                ["error"],
                registry=self._registry,
            )
            self._c_events_delivered = Counter(
                "cwlogship_events_delivered_total",
                "Log events accepted by the remote log service",
                registry=self._registry,
            )
            self._c_events_dropped = Counter(
                "cwlogship_events_dropped_total",
                "Log events lost with dropped batches",
                registry=self._registry,
            )
            self._c_remote_calls = Counter(
                "cwlogship_remote_calls_total",
                "Remote log service calls by operation",
                ["operation"],
                registry=self._registry,
            )
            self._c_cursor_retries = Counter(
                "cwlogship_cursor_retries_total",
                "Appends retried after a stale sequencing cursor",
                registry=self._registry,
            )
            self._h_batch_events = Histogram(
                "cwlogship_batch_events",
                "Events per flushed batch",
                buckets=(1, 10, 50, 100, 500, 1000, 5000, 10000),
                registry=self._registry,
            )
            self._h_delivery_latency = Histogram(
                "cwlogship_delivery_seconds",
                "Latency of one batch delivery, including resolution",
                buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
                registry=self._registry,
            )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def registry(self) -> CollectorRegistry | None:
        """Expose the isolated Prometheus registry when enabled."""
        return self._registry

    async def record_submitted(self, count: int = 1) -> None:
        async with self._lock:
            self._state.messages_submitted += count
        if self._c_submitted is not None:
            self._c_submitted.inc(count)

    async def record_flush(self, *, reason: str, event_count: int) -> None:
        async with self._lock:
            self._state.batches_flushed += 1
        if self._c_flushed is not None:
            self._c_flushed.labels(reason=reason).inc()
        if self._h_batch_events is not None:
            self._h_batch_events.observe(event_count)

    async def record_delivered(
        self, *, event_count: int, latency_seconds: float | None = None
    ) -> None:
        async with self._lock:
            self._state.batches_delivered += 1
            self._state.events_delivered += event_count
        if not self._enabled:
            return
        if self._c_delivered is not None:
            self._c_delivered.inc()
        if self._c_events_delivered is not None:
            self._c_events_delivered.inc(event_count)
        if latency_seconds is not None and self._h_delivery_latency is not None:
            self._h_delivery_latency.observe(latency_seconds)

    async def record_dropped(self, *, event_count: int, error: str | None) -> None:
        async with self._lock:
            self._state.batches_dropped += 1
            self._state.events_dropped += event_count
        if not self._enabled:
            return
        if self._c_dropped is not None:
            self._c_dropped.labels(error=error or "unknown").inc()
        if self._c_events_dropped is not None:
            self._c_events_dropped.inc(event_count)

    async def record_remote_call(self, operation: str) -> None:
        async with self._lock:
            calls = self._state.remote_calls
            calls[operation] = calls.get(operation, 0) + 1
        if self._c_remote_calls is not None:
            self._c_remote_calls.labels(operation=operation).inc()

    async def record_cursor_retry(self) -> None:
        async with self._lock:
            self._state.cursor_retries += 1
        if self._c_cursor_retries is not None:
            self._c_cursor_retries.inc()

    async def snapshot(self) -> PipelineMetrics:
        # Lightweight copy without exposing internals
        async with self._lock:
            s = self._state
            return PipelineMetrics(
                messages_submitted=s.messages_submitted,
                batches_flushed=s.batches_flushed,
                batches_delivered=s.batches_delivered,
                batches_dropped=s.batches_dropped,
                events_delivered=s.events_delivered,
                events_dropped=s.events_dropped,
                cursor_retries=s.cursor_retries,
                remote_calls=dict(s.remote_calls),
            )
