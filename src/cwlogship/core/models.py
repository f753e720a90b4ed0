"""
Value types flowing through the shipping pipeline.

A ``LogRecord`` arrives from ingestion, is tagged with its ``Destination`` to
become a ``TaggedMessage``, is grouped into a ``Batch`` by the batcher and is
finally turned into ``LogEvent`` values for a single append call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping

from .settings import EVENT_OVERHEAD_BYTES


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def encodable_text(text: str) -> str:
    """Return ``text`` with characters UTF-8 cannot encode replaced by ``?``.

    Lines decoded with ``surrogateescape`` (stdin under the C locale) carry
    lone surrogates; those cannot be sized, truncated or sent as-is.
    """
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return text.encode("utf-8", "replace").decode("utf-8")
    return text


def event_size(text: str) -> int:
    """Bytes an event occupies in an append call, including overhead."""
    return len(text.encode("utf-8", "replace")) + EVENT_OVERHEAD_BYTES


@dataclass(frozen=True)
class Destination:
    """A (log group, log stream) pair; the key for all remote-side state."""

    group: str
    stream: str

    def __post_init__(self) -> None:
        if not self.group:
            raise ValueError("Destination group cannot be empty")
        if not self.stream:
            raise ValueError("Destination stream cannot be empty")

    def __str__(self) -> str:
        return f"{self.group}/{self.stream}"


@dataclass(frozen=True)
class ContainerInfo:
    """Identity and metadata of a log source."""

    id: str
    name: str = ""
    hostname: str = ""
    env: Mapping[str, str] = field(default_factory=dict)
    labels: Mapping[str, str] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.name.lstrip("/") or self.id


@dataclass(frozen=True)
class LogRecord:
    """One raw log line handed over by ingestion."""

    container: ContainerInfo
    text: str
    time: datetime | None = None


@dataclass(frozen=True)
class TaggedMessage:
    """A log line bound to its resolved destination."""

    text: str
    container_id: str
    destination: Destination
    arrival_time: datetime = field(default_factory=utcnow)

    @property
    def size(self) -> int:
        return event_size(self.text)

    @property
    def timestamp_millis(self) -> int:
        arrival = self.arrival_time
        if arrival.tzinfo is None:
            arrival = arrival.replace(tzinfo=timezone.utc)
        return int(arrival.timestamp() * 1000)


class FlushReason(str, Enum):
    SIZE = "size"
    COUNT = "count"
    TIMER = "timer"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class Batch:
    """An ordered, immutable group of messages for one destination."""

    destination: Destination
    messages: tuple[TaggedMessage, ...]
    size_bytes: int
    reason: FlushReason = FlushReason.SHUTDOWN

    @property
    def event_count(self) -> int:
        return len(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def to_events(self) -> list[LogEvent]:
        """Build append-events in batch order."""
        return [
            LogEvent(message=m.text, timestamp=m.timestamp_millis)
            for m in self.messages
        ]


@dataclass(frozen=True)
class LogEvent:
    """One event of an append call; ``timestamp`` is epoch milliseconds."""

    message: str
    timestamp: int

    def to_dict(self) -> dict[str, object]:
        return {"timestamp": self.timestamp, "message": self.message}


@dataclass(frozen=True)
class StreamInfo:
    """A stream listing row; ``cursor`` is None for never-appended streams."""

    name: str
    cursor: str | None = None


class DestinationPhase(str, Enum):
    UNKNOWN = "unknown"
    GROUP_RESOLVED = "group_resolved"
    STREAM_RESOLVED = "stream_resolved"
    CURSOR_KNOWN = "cursor_known"


@dataclass
class DestinationState:
    """What this process knows about a destination's remote resources.

    ``cursor`` is only meaningful in the ``CURSOR_KNOWN`` phase, where None
    means the last successful append returned no next cursor.
    """

    phase: DestinationPhase = DestinationPhase.UNKNOWN
    cursor: str | None = None

    @property
    def group_known(self) -> bool:
        return self.phase is not DestinationPhase.UNKNOWN

    @property
    def cursor_known(self) -> bool:
        return self.phase is DestinationPhase.CURSOR_KNOWN

    def invalidate_cursor(self) -> None:
        """Forget the cursor while keeping resource knowledge."""
        self.cursor = None
        if self.phase is DestinationPhase.CURSOR_KNOWN:
            self.phase = DestinationPhase.STREAM_RESOLVED


__all__ = [
    "Batch",
    "ContainerInfo",
    "Destination",
    "DestinationPhase",
    "DestinationState",
    "FlushReason",
    "LogEvent",
    "LogRecord",
    "StreamInfo",
    "TaggedMessage",
    "encodable_text",
    "event_size",
    "utcnow",
]
