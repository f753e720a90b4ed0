from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from ..core.models import LogEvent, StreamInfo


@runtime_checkable
class RemoteLogService(Protocol):
    """Async interface of the remote log-ingestion service.

    Implementations raise ``TransportError`` (or a subclass) for any failed
    call; ``append_events`` raises ``CursorMismatchError`` when the supplied
    cursor does not match what the service expects for the stream.
    """

    async def list_groups(self, prefix: str) -> list[str]:
        """Return the names of all groups starting with ``prefix``."""
        ...

    async def create_group(self, group: str) -> None: ...

    async def set_retention(self, group: str, days: int) -> None: ...

    async def list_streams(self, group: str, prefix: str) -> list[StreamInfo]:
        """Return every stream in ``group`` whose name starts with ``prefix``."""
        ...

    async def create_stream(self, group: str, stream: str) -> None: ...

    async def append_events(
        self,
        group: str,
        stream: str,
        cursor: str | None,
        events: Sequence[LogEvent],
    ) -> str | None:
        """Append ``events`` in order and return the next cursor, if any."""
        ...


__all__ = ["RemoteLogService"]
