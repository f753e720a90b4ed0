"""
In-memory stand-in for the remote log service.

``InMemoryLogService`` enforces the same ordering contract as CloudWatch
Logs: every append after a stream's first must present the cursor returned by
the previous append, otherwise ``CursorMismatchError`` is raised. Every call
is recorded in ``calls`` so tests can assert exact call sequences.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Sequence

from ..core.errors import CursorMismatchError, TransportError
from ..core.models import LogEvent, StreamInfo


@dataclass
class _Stream:
    cursor: str | None = None
    events: list[LogEvent] = field(default_factory=list)
    visible: bool = True


class InMemoryLogService:
    """Recording fake of ``RemoteLogService``."""

    name = "memory"

    def __init__(
        self,
        *,
        latency_seconds: float = 0.0,
        hide_created_streams: bool = False,
    ) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.retention: dict[str, int] = {}
        self._groups: dict[str, dict[str, _Stream]] = {}
        self._failures: dict[str, list[BaseException]] = defaultdict(list)
        self._latency = latency_seconds
        self._hide_created_streams = hide_created_streams
        self._next_cursor = 0
        self._in_flight: dict[tuple[str, str], int] = defaultdict(int)
        self.max_in_flight: dict[tuple[str, str], int] = defaultdict(int)

    # -- seeding and inspection -------------------------------------------

    def add_group(self, group: str) -> None:
        self._groups.setdefault(group, {})

    def add_stream(self, group: str, stream: str, cursor: str | None = None) -> None:
        self.add_group(group)
        self._groups[group][stream] = _Stream(cursor=cursor)

    def set_cursor(self, group: str, stream: str, cursor: str | None) -> None:
        """Move a stream's expected cursor, as a foreign writer would."""
        self._groups[group][stream].cursor = cursor

    def events(self, group: str, stream: str) -> list[LogEvent]:
        return list(self._groups[group][stream].events)

    def messages(self, group: str, stream: str) -> list[str]:
        return [e.message for e in self.events(group, stream)]

    def has_group(self, group: str) -> bool:
        return group in self._groups

    def operations(self) -> list[str]:
        return [c[0] for c in self.calls]

    def fail_next(self, operation: str, exc: BaseException) -> None:
        """Make the next call to ``operation`` raise ``exc``."""
        self._failures[operation].append(exc)

    # -- RemoteLogService --------------------------------------------------

    async def _enter(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        if self._latency:
            await asyncio.sleep(self._latency)
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    async def list_groups(self, prefix: str) -> list[str]:
        await self._enter("list_groups", prefix)
        return [g for g in self._groups if g.startswith(prefix)]

    async def create_group(self, group: str) -> None:
        await self._enter("create_group", group)
        if group in self._groups:
            raise TransportError(
                f"group {group} already exists",
                operation="create_group",
                code="ResourceAlreadyExistsException",
            )
        self._groups[group] = {}

    async def set_retention(self, group: str, days: int) -> None:
        await self._enter("set_retention", group, days)
        self._require_group(group, "set_retention")
        self.retention[group] = days

    async def list_streams(self, group: str, prefix: str) -> list[StreamInfo]:
        await self._enter("list_streams", group, prefix)
        streams = self._require_group(group, "list_streams")
        return [
            StreamInfo(name=name, cursor=s.cursor)
            for name, s in streams.items()
            if s.visible and name.startswith(prefix)
        ]

    async def create_stream(self, group: str, stream: str) -> None:
        await self._enter("create_stream", group, stream)
        streams = self._require_group(group, "create_stream")
        if stream in streams:
            raise TransportError(
                f"stream {stream} already exists",
                operation="create_stream",
                code="ResourceAlreadyExistsException",
            )
        streams[stream] = _Stream(visible=not self._hide_created_streams)

    async def append_events(
        self,
        group: str,
        stream: str,
        cursor: str | None,
        events: Sequence[LogEvent],
    ) -> str | None:
        key = (group, stream)
        self._in_flight[key] += 1
        self.max_in_flight[key] = max(self.max_in_flight[key], self._in_flight[key])
        try:
            await self._enter("append_events", group, stream, cursor, len(events))
            target = self._require_group(group, "append_events").get(stream)
            if target is None:
                raise TransportError(
                    f"stream {stream} does not exist",
                    operation="append_events",
                    code="ResourceNotFoundException",
                )
            if cursor != target.cursor:
                raise CursorMismatchError(
                    f"expected cursor {target.cursor!r}, got {cursor!r}",
                    expected_cursor=target.cursor,
                )
            target.events.extend(events)
            self._next_cursor += 1
            target.cursor = f"cursor-{self._next_cursor}"
            return target.cursor
        finally:
            self._in_flight[key] -= 1

    def _require_group(self, group: str, operation: str) -> dict[str, _Stream]:
        streams = self._groups.get(group)
        if streams is None:
            raise TransportError(
                f"group {group} does not exist",
                operation=operation,
                code="ResourceNotFoundException",
            )
        return streams


__all__ = ["InMemoryLogService"]
