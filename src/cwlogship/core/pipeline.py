"""
Staged shipping pipeline: ingestion → batching → delivery.

Stages run as independent asyncio tasks connected by bounded queues. A
single delivery task (or one per shard when ``delivery.workers > 1``) owns
all appends, which keeps at most one append in flight per destination.
"""

from __future__ import annotations

import asyncio
import time
import types
from typing import Callable

from ..caching.cache import DeliveryContext
from ..metrics.metrics import MetricsCollector
from ..remote.base import RemoteLogService
from .batcher import CLOSE, Batcher, BatchQueue, BatchWorker, MessageQueue
from .delivery import DeliveryDispatcher, DeliveryEngine, DeliveryWorker
from .diagnostics import configure, debug, error, warn
from .errors import RegionUnresolvedError
from .models import LogRecord, TaggedMessage
from .naming import CachingResolver, DestinationResolver, EnvDestinationResolver
from .region import resolve_region
from .settings import Settings


class ShipperPipeline:
    """Owns the queues, tasks and caches of one shipping pipeline."""

    def __init__(
        self,
        service: RemoteLogService,
        resolver: DestinationResolver,
        settings: Settings | None = None,
        *,
        metrics: MetricsCollector | None = None,
        context: DeliveryContext | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or Settings()
        capacity = self._settings.delivery.cache_capacity
        self._context = context or DeliveryContext(capacity)
        if isinstance(resolver, CachingResolver):
            self._resolver = resolver
        else:
            self._resolver = CachingResolver(
                resolver, self._context, capacity=capacity
            )
        self._metrics = metrics or MetricsCollector(
            enabled=self._settings.enable_metrics
        )
        self._service = service
        self._engine = DeliveryEngine(
            service, self._context, self._settings.delivery, metrics=self._metrics
        )
        self._clock = clock
        self._batcher: Batcher | None = None
        self._inbox: MessageQueue | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._accepting = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def context(self) -> DeliveryContext:
        return self._context

    @property
    def engine(self) -> DeliveryEngine:
        return self._engine

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def service(self) -> RemoteLogService:
        return self._service

    @property
    def is_running(self) -> bool:
        return self._accepting

    async def start(self) -> None:
        if self._tasks:
            return
        cfg = self._settings.pipeline
        self._inbox = asyncio.Queue(maxsize=cfg.inbound_queue_size)
        batches: BatchQueue = asyncio.Queue(maxsize=cfg.batch_queue_size)
        self._batcher = Batcher(self._settings.batching, clock=self._clock)
        batch_worker = BatchWorker(
            batcher=self._batcher,
            inbox=self._inbox,
            outbox=batches,
            metrics=self._metrics,
            clock=self._clock,
        )
        workers = self._settings.delivery.workers
        if workers == 1:
            delivery = DeliveryWorker(engine=self._engine, inbox=batches).run()
        else:
            delivery = DeliveryDispatcher(
                engine=self._engine,
                inbox=batches,
                workers=workers,
                queue_size=cfg.batch_queue_size,
            ).run()
        self._tasks = [
            asyncio.create_task(batch_worker.run(), name="cwlogship-batcher"),
            asyncio.create_task(delivery, name="cwlogship-delivery"),
        ]
        self._accepting = True
        debug("pipeline", "started", delivery_workers=workers)

    async def submit(self, record: LogRecord) -> bool:
        """Tag ``record`` with its destination and queue it for batching.

        Waits while the inbound queue is full. Returns False when the
        destination could not be resolved and the record was skipped.
        """
        try:
            message = self._resolver.tag(record)
        except Exception as exc:  # noqa: BLE001
            warn(
                "pipeline",
                "error resolving destination; record skipped",
                container=record.container.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return False
        await self.submit_message(message)
        return True

    async def submit_message(self, message: TaggedMessage) -> None:
        """Queue an already tagged message for batching."""
        if not self._accepting or self._inbox is None:
            raise RuntimeError("pipeline is not running")
        await self._inbox.put(message)
        await self._metrics.record_submitted()

    async def stop(self, *, drain: bool = True, timeout: float | None = None) -> bool:
        """Stop accepting records and shut the stages down.

        With ``drain`` every accepted message is flushed and delivered first,
        within ``timeout`` (default ``pipeline.shutdown_timeout_seconds``).
        Returns False when work had to be abandoned.
        """
        if not self._tasks:
            return True
        self._accepting = False
        if timeout is None:
            timeout = self._settings.pipeline.shutdown_timeout_seconds
        drained = False
        try:
            if drain and self._inbox is not None:
                inbox, tasks = self._inbox, list(self._tasks)

                async def _drain() -> None:
                    await inbox.put(CLOSE)
                    await asyncio.gather(*tasks)

                try:
                    await asyncio.wait_for(_drain(), timeout=timeout)
                    drained = True
                except asyncio.TimeoutError:
                    pass
                except Exception as exc:  # noqa: BLE001
                    error(
                        "pipeline",
                        "pipeline stage failed during shutdown",
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )

            if not drained:
                warn(
                    "pipeline",
                    "shutdown abandoned undelivered messages",
                    buffered=self._batcher.pending_messages if self._batcher else 0,
                    queued=self._inbox.qsize() if self._inbox is not None else 0,
                )
        finally:
            for task in self._tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
            self._inbox = None
            self._batcher = None
        debug("pipeline", "stopped", drained=drained)
        return drained

    async def __aenter__(self) -> ShipperPipeline:
        await self.start()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc: BaseException | None,
        _tb: types.TracebackType | None,
    ) -> None:
        await self.stop()


async def build_pipeline(
    settings: Settings | None = None,
    *,
    resolver: DestinationResolver | None = None,
    service: RemoteLogService | None = None,
) -> ShipperPipeline:
    """Wire a pipeline against CloudWatch Logs from settings.

    A region that cannot be determined is logged once; the pipeline still
    starts and its deliveries fail as transport errors until it is fixed.
    """
    settings = settings or Settings()
    configure(debug=settings.debug)
    if service is None:
        from ..remote.cloudwatch import CloudWatchLogService

        region: str | None = None
        try:
            region = await resolve_region(
                settings.aws.region,
                use_instance_metadata=settings.aws.instance_metadata_enabled,
                metadata_timeout_seconds=settings.aws.metadata_timeout_seconds,
            )
        except RegionUnresolvedError as exc:
            error("pipeline", "could not get region", **exc.to_fields())
        debug("pipeline", "creating AWS CloudWatch client", region=region)
        service = CloudWatchLogService(
            region=region, timeout_seconds=settings.delivery.call_timeout_seconds
        )
    return ShipperPipeline(service, resolver or EnvDestinationResolver(), settings)


__all__ = ["ShipperPipeline", "build_pipeline"]
