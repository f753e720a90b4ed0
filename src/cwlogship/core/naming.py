"""
Destination naming: the capability that maps a log source to its destination.

Naming is pluggable and kept apart from batching and delivery. The pipeline
only calls ``resolve`` synchronously through a ``CachingResolver``, which
guarantees each container identity is resolved once per process.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ..caching.cache import DeliveryContext, LRUCache
from .diagnostics import debug, warn
from .errors import RetentionConfigError
from .models import ContainerInfo, Destination, LogRecord, TaggedMessage, utcnow

GROUP_ENV = "LOGSPOUT_GROUP"
STREAM_ENV = "LOGSPOUT_STREAM"
RETENTION_ENV = "LOGSPOUT_CLOUDWATCH_RETENTION_DAYS"


@dataclass(frozen=True)
class Resolution:
    destination: Destination
    retention_days: int | None = None


@runtime_checkable
class DestinationResolver(Protocol):
    def resolve(self, container: ContainerInfo) -> Resolution:
        """Return the destination (and optional retention) for ``container``."""
        ...


def parse_retention_days(value: object) -> int:
    """Parse a retention setting into a positive day count."""
    if isinstance(value, bool):
        raise RetentionConfigError(value)
    try:
        days = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise RetentionConfigError(value, cause=exc) from exc
    if days <= 0:
        raise RetentionConfigError(value)
    return days


class StaticDestinationResolver:
    """Sends every container to one group; the stream defaults per container."""

    def __init__(
        self,
        group: str,
        stream: str | None = None,
        retention_days: int | str | None = None,
    ) -> None:
        self._group = group
        self._stream = stream
        self._retention = (
            None if retention_days is None else parse_retention_days(retention_days)
        )

    def resolve(self, container: ContainerInfo) -> Resolution:
        return Resolution(
            destination=Destination(
                self._group, self._stream or container.display_name
            ),
            retention_days=self._retention,
        )


class EnvDestinationResolver:
    """Reads per-container overrides from its environment, then its labels.

    ``LOGSPOUT_GROUP`` defaults to the shipper's host name and
    ``LOGSPOUT_STREAM`` to the container name.
    """

    def __init__(
        self,
        *,
        default_group: str | None = None,
        default_stream: str | None = None,
    ) -> None:
        self._default_group = default_group or socket.gethostname()
        self._default_stream = default_stream

    @staticmethod
    def _lookup(container: ContainerInfo, key: str) -> str | None:
        value = container.env.get(key) or container.labels.get(key)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def resolve(self, container: ContainerInfo) -> Resolution:
        group = self._lookup(container, GROUP_ENV) or self._default_group
        stream = (
            self._lookup(container, STREAM_ENV)
            or self._default_stream
            or container.display_name
        )
        retention: int | None = None
        raw = self._lookup(container, RETENTION_ENV)
        if raw is not None:
            try:
                retention = parse_retention_days(raw)
            except RetentionConfigError as exc:
                warn(
                    "naming",
                    "ignoring retention setting",
                    container=container.id,
                    **exc.to_fields(),
                )
        return Resolution(Destination(group, stream), retention)


class CachingResolver:
    """Resolves each container id once and tags records with the result."""

    def __init__(
        self,
        inner: DestinationResolver,
        context: DeliveryContext,
        *,
        capacity: int = 10_000,
    ) -> None:
        self._inner = inner
        self._context = context
        self._cache: LRUCache[str, Resolution] = LRUCache(capacity)

    def resolve(self, container: ContainerInfo) -> Resolution:
        cached = self._cache.get(container.id)
        if cached is not None:
            return cached
        resolution = self._inner.resolve(container)
        self._cache.set(container.id, resolution)
        if resolution.retention_days is not None:
            self._context.register_retention(
                resolution.destination.group, resolution.retention_days
            )
        debug(
            "naming",
            "resolved destination",
            container=container.id,
            group=resolution.destination.group,
            stream=resolution.destination.stream,
            retention_days=resolution.retention_days,
        )
        return resolution

    def tag(self, record: LogRecord) -> TaggedMessage:
        resolution = self.resolve(record.container)
        return TaggedMessage(
            text=record.text,
            container_id=record.container.id,
            destination=resolution.destination,
            arrival_time=record.time or utcnow(),
        )

    def clear(self) -> None:
        self._cache.clear()


__all__ = [
    "GROUP_ENV",
    "RETENTION_ENV",
    "STREAM_ENV",
    "CachingResolver",
    "DestinationResolver",
    "EnvDestinationResolver",
    "Resolution",
    "StaticDestinationResolver",
    "parse_retention_days",
]
