"""
Delivery of batches to the remote log service.

``DeliveryEngine.deliver`` takes one batch through the per-destination
protocol:

1. Use the cached sequencing cursor when one is known, otherwise resolve it:
   check the group exists (exact name match only), create it and apply its
   retention policy when missing, then look the stream up by prefix, creating
   it and re-querying exactly once when missing.
2. Append the batch's events in order with that cursor.
3. Cache the returned next cursor against the destination.

Any failure drops the batch; nothing is requeued. A stale-cursor rejection
invalidates the cached cursor and retries the append once after
re-resolution (``retry_on_stale_cursor``).

Correct cursor caching requires a single writer per destination. The
pipeline guarantees it by running one ``DeliveryWorker`` per shard and
routing each destination to exactly one shard.
"""

from __future__ import annotations

import asyncio
import time
import zlib
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from ..caching.cache import DeliveryContext
from ..metrics.metrics import MetricsCollector
from ..remote.base import RemoteLogService
from .batcher import CLOSE, BatchQueue
from .diagnostics import debug, error, warn
from .errors import (
    AmbiguousDestinationError,
    CursorMismatchError,
    RemoteTimeoutError,
    ResolutionExhaustedError,
    ShipperError,
    TransportError,
)
from .models import Batch, Destination, DestinationPhase, LogEvent
from .settings import DeliverySettings

T = TypeVar("T")

# One stream creation followed by one re-query; never more
STREAM_CREATE_ATTEMPTS = 1

_ALREADY_EXISTS = "ResourceAlreadyExistsException"
_NOT_FOUND = "ResourceNotFoundException"


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    DROPPED = "dropped"
    EMPTY = "empty"


class DeliveryEngine:
    """Delivers batches one at a time while maintaining destination state."""

    def __init__(
        self,
        service: RemoteLogService,
        context: DeliveryContext,
        settings: DeliverySettings | None = None,
        *,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._service = service
        self._context = context
        self._settings = settings or DeliverySettings()
        self._metrics = metrics

    @property
    def context(self) -> DeliveryContext:
        return self._context

    async def deliver(self, batch: Batch) -> DeliveryOutcome:
        if not batch.messages:
            debug("delivery", "the batch does not have any messages")
            return DeliveryOutcome.EMPTY

        dest = batch.destination
        debug(
            "delivery",
            "submitting batch",
            group=dest.group,
            stream=dest.stream,
            events=batch.event_count,
            size=batch.size_bytes,
        )
        start = time.perf_counter()
        try:
            await self._deliver(batch)
        except ShipperError as exc:
            if exc.destination is None:
                exc.destination = dest
            await self._drop(batch, exc.to_fields(), type(exc).__name__)
            if isinstance(exc, TransportError) and exc.code == _NOT_FOUND:
                # Remote resource vanished; rediscover it on the next batch
                self._context.destinations.pop(dest)
            return DeliveryOutcome.DROPPED
        except Exception as exc:  # noqa: BLE001
            fields = {"error_type": type(exc).__name__, "error": str(exc)}
            error("delivery", "unexpected delivery failure", **fields)
            await self._drop(batch, fields, type(exc).__name__)
            return DeliveryOutcome.DROPPED

        if self._metrics is not None:
            await self._metrics.record_delivered(
                event_count=batch.event_count,
                latency_seconds=time.perf_counter() - start,
            )
        return DeliveryOutcome.DELIVERED

    async def _deliver(self, batch: Batch) -> None:
        dest = batch.destination
        events = batch.to_events()
        cursor = await self._cursor_for(dest)
        try:
            next_cursor = await self._append(dest, cursor, events)
        except CursorMismatchError as exc:
            if not self._settings.retry_on_stale_cursor:
                raise
            warn(
                "delivery",
                "stale sequencing cursor; re-resolving",
                group=dest.group,
                stream=dest.stream,
                expected=exc.expected_cursor,
            )
            self._context.state_for(dest).invalidate_cursor()
            if self._metrics is not None:
                await self._metrics.record_cursor_retry()
            cursor = await self.resolve_cursor(dest)
            next_cursor = await self._append(dest, cursor, events)

        state = self._context.state_for(dest)
        state.phase = DestinationPhase.CURSOR_KNOWN
        state.cursor = next_cursor
        debug(
            "delivery",
            "caching new sequence token",
            group=dest.group,
            stream=dest.stream,
            cursor=next_cursor,
        )

    async def _cursor_for(self, dest: Destination) -> str | None:
        known, cursor = self._context.cached_cursor(dest)
        if known:
            debug("delivery", "got token from cache", destination=str(dest), cursor=cursor)
            return cursor
        debug("delivery", "fetching token from remote", destination=str(dest))
        return await self.resolve_cursor(dest)

    async def resolve_cursor(self, dest: Destination) -> str | None:
        """Make sure the group and stream exist and return the stream's cursor."""
        state = self._context.state_for(dest)
        if not state.group_known:
            await self._ensure_group(dest)
            state.phase = DestinationPhase.GROUP_RESOLVED
        cursor = await self._resolve_stream(dest)
        if state.phase is DestinationPhase.GROUP_RESOLVED:
            state.phase = DestinationPhase.STREAM_RESOLVED
        return cursor

    async def _ensure_group(self, dest: Destination) -> None:
        group = dest.group
        debug("delivery", "checking for group", group=group)
        names = await self._call("list_groups", self._service.list_groups, group)
        # A prefix match is not existence
        if group in names:
            return

        debug("delivery", "creating group", group=group)
        try:
            await self._call("create_group", self._service.create_group, group)
        except TransportError as exc:
            if exc.code != _ALREADY_EXISTS:
                raise
            debug("delivery", "group created concurrently", group=group)
            return

        days = self._context.retention_for(group)
        if days is None:
            return
        debug("delivery", "creating group retention policy", group=group, days=days)
        try:
            await self._call("set_retention", self._service.set_retention, group, days)
        except ShipperError as exc:
            fields = exc.to_fields()
            fields.update(group=group, days=days)
            warn("delivery", "retention policy not applied", **fields)

    async def _resolve_stream(self, dest: Destination) -> str | None:
        group, stream = dest.group, dest.stream
        for attempt in range(STREAM_CREATE_ATTEMPTS + 1):
            debug("delivery", "describing stream", group=group, stream=stream)
            matches = await self._call(
                "list_streams", self._service.list_streams, group, stream
            )
            if len(matches) > 1:
                raise AmbiguousDestinationError(dest, [m.name for m in matches])
            if matches:
                if matches[0].name != stream:
                    warn(
                        "delivery",
                        "only prefix match is a different stream",
                        group=group,
                        stream=stream,
                        matched=matches[0].name,
                    )
                return matches[0].cursor
            if attempt == STREAM_CREATE_ATTEMPTS:
                break
            debug("delivery", "creating stream", group=group, stream=stream)
            try:
                await self._call(
                    "create_stream", self._service.create_stream, group, stream
                )
            except TransportError as exc:
                if exc.code != _ALREADY_EXISTS:
                    raise
        raise ResolutionExhaustedError(
            f"stream {stream} in group {group} still missing after creation",
            destination=dest,
        )

    async def _append(
        self, dest: Destination, cursor: str | None, events: Sequence[LogEvent]
    ) -> str | None:
        debug(
            "delivery",
            "posting log events",
            group=dest.group,
            stream=dest.stream,
            events=len(events),
            cursor=cursor,
        )
        return await self._call(
            "append_events",
            self._service.append_events,
            dest.group,
            dest.stream,
            cursor,
            events,
        )

    async def _call(
        self, operation: str, fn: Callable[..., Awaitable[T]], *args: Any
    ) -> T:
        if self._metrics is not None:
            await self._metrics.record_remote_call(operation)
        timeout = self._settings.call_timeout_seconds
        try:
            return await asyncio.wait_for(fn(*args), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise RemoteTimeoutError(
                f"{operation} timed out after {timeout}s", operation=operation
            ) from exc

    async def _drop(
        self, batch: Batch, fields: dict[str, Any], error_name: str
    ) -> None:
        fields.setdefault("group", batch.destination.group)
        fields.setdefault("stream", batch.destination.stream)
        warn(
            "delivery",
            "batch dropped",
            events=batch.event_count,
            size=batch.size_bytes,
            **fields,
        )
        if self._metrics is not None:
            await self._metrics.record_dropped(
                event_count=batch.event_count, error=error_name
            )


class DeliveryWorker:
    """Drains one batch queue, delivering strictly one batch at a time."""

    def __init__(
        self,
        *,
        engine: DeliveryEngine,
        inbox: BatchQueue,
        name: str = "delivery-0",
    ) -> None:
        self._engine = engine
        self._inbox = inbox
        self.name = name

    async def run(self) -> None:
        try:
            while True:
                item = await self._inbox.get()
                if item is CLOSE:
                    return
                await self._engine.deliver(item)  # type: ignore[arg-type]
        except asyncio.CancelledError:
            return


def shard_for(destination: Destination, shards: int) -> int:
    """Stable shard index for a destination across process restarts."""
    return zlib.crc32(str(destination).encode("utf-8")) % shards


class DeliveryDispatcher:
    """Fans batches out to per-shard serial workers.

    Each destination always lands on the same shard, so appends for one
    destination stay strictly sequential while different destinations are
    delivered in parallel.
    """

    def __init__(
        self,
        *,
        engine: DeliveryEngine,
        inbox: BatchQueue,
        workers: int,
        queue_size: int = 16,
    ) -> None:
        if workers <= 0:
            raise ValueError("workers must be > 0")
        self._inbox = inbox
        self._queues: list[BatchQueue] = [
            asyncio.Queue(maxsize=queue_size) for _ in range(workers)
        ]
        self._workers = [
            DeliveryWorker(engine=engine, inbox=q, name=f"delivery-{i}")
            for i, q in enumerate(self._queues)
        ]

    @property
    def shards(self) -> int:
        return len(self._queues)

    async def run(self) -> None:
        tasks = [asyncio.create_task(w.run()) for w in self._workers]
        try:
            while True:
                item = await self._inbox.get()
                if item is CLOSE:
                    for q in self._queues:
                        await q.put(CLOSE)
                    break
                index = shard_for(item.destination, len(self._queues))  # type: ignore[union-attr]
                await self._queues[index].put(item)
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)


__all__ = [
    "STREAM_CREATE_ATTEMPTS",
    "DeliveryDispatcher",
    "DeliveryEngine",
    "DeliveryOutcome",
    "DeliveryWorker",
    "shard_for",
]
