"""
Per-destination batching of tagged messages.

``Batcher`` holds one open buffer per destination and turns the message
stream into ``Batch`` values bounded by byte size, event count and age. It
performs no I/O. ``BatchWorker`` runs it as an asyncio task between the
inbound message queue and the delivery queue.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Union

from ..metrics.metrics import MetricsCollector
from .diagnostics import debug, warn
from .models import (
    Batch,
    Destination,
    FlushReason,
    TaggedMessage,
    encodable_text,
    event_size,
)
from .settings import EVENT_OVERHEAD_BYTES, BatchingSettings


class _Close:
    """Queue sentinel: flush everything and forward downstream."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "CLOSE"


CLOSE = _Close()

# Inbound messages and flushed batches, each terminated by CLOSE
MessageQueue = asyncio.Queue[Union[TaggedMessage, _Close]]
BatchQueue = asyncio.Queue[Union[Batch, _Close]]


def truncate_to_fit(text: str, limit: int) -> str:
    """Cut ``text`` on a UTF-8 boundary so its event size is at most ``limit``."""
    budget = limit - EVENT_OVERHEAD_BYTES
    text = encodable_text(text)
    encoded = text.encode("utf-8")
    if len(encoded) <= budget:
        return text
    return encoded[:budget].decode("utf-8", errors="ignore")


class _Buffer:
    __slots__ = ("messages", "size", "deadline")

    def __init__(self, deadline: float) -> None:
        self.messages: list[TaggedMessage] = []
        self.size = 0
        self.deadline = deadline


class Batcher:
    """Groups messages by destination and decides when to flush."""

    def __init__(
        self,
        settings: BatchingSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or BatchingSettings()
        self._clock = clock
        self._buffers: dict[Destination, _Buffer] = {}

    @property
    def pending_messages(self) -> int:
        return sum(len(b.messages) for b in self._buffers.values())

    @property
    def pending_destinations(self) -> int:
        return len(self._buffers)

    def add(self, message: TaggedMessage) -> list[Batch]:
        """Buffer ``message``; return any batches this caused to flush."""
        cfg = self._settings
        flushed: list[Batch] = []
        message = self._fit(message)
        size = message.size
        dest = message.destination

        buf = self._buffers.get(dest)
        if buf is not None and buf.size + size > cfg.max_batch_bytes:
            flushed.append(self._close(dest, FlushReason.SIZE))
            buf = None
        if buf is None:
            buf = _Buffer(self._clock() + cfg.flush_interval_seconds)
            self._buffers[dest] = buf

        buf.messages.append(message)
        buf.size += size

        if buf.size >= cfg.max_batch_bytes:
            flushed.append(self._close(dest, FlushReason.SIZE))
        elif len(buf.messages) >= cfg.max_batch_events:
            flushed.append(self._close(dest, FlushReason.COUNT))
        return flushed

    def next_deadline(self) -> float | None:
        if not self._buffers:
            return None
        return min(b.deadline for b in self._buffers.values())

    def flush_expired(self, now: float | None = None) -> list[Batch]:
        """Flush every buffer whose age reached the flush interval."""
        if now is None:
            now = self._clock()
        expired = [d for d, b in self._buffers.items() if b.deadline <= now]
        return [self._close(d, FlushReason.TIMER) for d in expired]

    def flush_all(self) -> list[Batch]:
        return [self._close(d, FlushReason.SHUTDOWN) for d in list(self._buffers)]

    def _fit(self, message: TaggedMessage) -> TaggedMessage:
        limit = self._settings.event_byte_limit
        dest = message.destination
        text = encodable_text(message.text)
        if text is not message.text:
            warn(
                "batcher",
                "replaced characters that are not valid UTF-8",
                group=dest.group,
                stream=dest.stream,
                container=message.container_id,
            )
        if event_size(text) > limit:
            warn(
                "batcher",
                "message truncated to event size limit",
                group=dest.group,
                stream=dest.stream,
                original_bytes=event_size(text),
                limit=limit,
            )
            text = truncate_to_fit(text, limit)
        if text is message.text:
            return message
        return TaggedMessage(
            text=text,
            container_id=message.container_id,
            destination=dest,
            arrival_time=message.arrival_time,
        )

    def _close(self, dest: Destination, reason: FlushReason) -> Batch:
        buf = self._buffers.pop(dest)
        return Batch(
            destination=dest,
            messages=tuple(buf.messages),
            size_bytes=buf.size,
            reason=reason,
        )


class BatchWorker:
    """Feeds a ``Batcher`` from the inbound queue and emits flushed batches.

    Putting onto a full ``outbox`` blocks this task, which in turn lets the
    inbound queue fill up and blocks producers: remote latency propagates
    back to ingestion as backpressure.
    """

    def __init__(
        self,
        *,
        batcher: Batcher,
        inbox: MessageQueue,
        outbox: BatchQueue,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._batcher = batcher
        self._inbox = inbox
        self._outbox = outbox
        self._metrics = metrics
        self._clock = clock

    async def run(self) -> None:
        try:
            while True:
                deadline = self._batcher.next_deadline()
                timeout: float | None = None
                if deadline is not None:
                    timeout = max(0.0, deadline - self._clock())
                try:
                    item = await asyncio.wait_for(self._inbox.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    item = None

                if item is CLOSE:
                    await self._emit(self._batcher.flush_all())
                    await self._outbox.put(CLOSE)
                    return
                if item is not None:
                    await self._emit(self._add(item))  # type: ignore[arg-type]
                await self._emit(self._batcher.flush_expired())
        except asyncio.CancelledError:
            return

    def _add(self, message: TaggedMessage) -> list[Batch]:
        try:
            return self._batcher.add(message)
        except Exception as exc:  # noqa: BLE001
            warn(
                "batcher",
                "message skipped",
                container=message.container_id,
                destination=str(message.destination),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return []

    async def _emit(self, batches: list[Batch]) -> None:
        for batch in batches:
            debug(
                "batcher",
                "batch flushed",
                group=batch.destination.group,
                stream=batch.destination.stream,
                events=batch.event_count,
                size=batch.size_bytes,
                reason=batch.reason.value,
            )
            if self._metrics is not None:
                await self._metrics.record_flush(
                    reason=batch.reason.value, event_count=batch.event_count
                )
            await self._outbox.put(batch)


__all__ = [
    "CLOSE",
    "BatchQueue",
    "MessageQueue",
    "BatchWorker",
    "Batcher",
    "truncate_to_fit",
]
