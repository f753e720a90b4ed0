"""
AWS CloudWatch Logs implementation of ``RemoteLogService``.

The ``boto3`` client is synchronous; every call is pushed to a worker thread
with ``asyncio.to_thread`` so the event loop never blocks on network I/O.
The client is created lazily on first use so that a missing region surfaces
as a delivery failure instead of preventing startup.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..core.diagnostics import debug, warn
from ..core.errors import CursorMismatchError, TransportError
from ..core.models import LogEvent, StreamInfo


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class CloudWatchLogService:
    """``RemoteLogService`` backed by the CloudWatch Logs API."""

    name = "cloudwatch"

    def __init__(
        self,
        *,
        region: str | None,
        timeout_seconds: float = 10.0,
        client: Any = None,
        client_factory: Callable[..., Any] | None = None,
    ) -> None:
        self._region = region
        self._timeout = timeout_seconds
        self._client = client
        self._client_factory = client_factory or boto3.client

    @property
    def region(self) -> str | None:
        return self._region

    def _get_client(self) -> Any:
        if self._client is None:
            debug("cloudwatch", "creating AWS CloudWatch client", region=self._region)
            self._client = self._client_factory(
                "logs",
                region_name=self._region,
                config=Config(
                    connect_timeout=self._timeout,
                    read_timeout=self._timeout,
                    retries={"max_attempts": 2, "mode": "standard"},
                ),
            )
        return self._client

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        def _invoke() -> dict[str, Any]:
            client = self._get_client()
            return getattr(client, operation)(**kwargs)

        try:
            return await asyncio.to_thread(_invoke)
        except ClientError as exc:
            code = _error_code(exc)
            if code == "InvalidSequenceTokenException":
                raise CursorMismatchError(
                    str(exc),
                    expected_cursor=exc.response.get("expectedSequenceToken"),
                    operation=operation,
                    code=code,
                    cause=exc,
                ) from exc
            raise TransportError(
                str(exc), operation=operation, code=code, cause=exc
            ) from exc
        except BotoCoreError as exc:
            raise TransportError(
                str(exc), operation=operation, code=type(exc).__name__, cause=exc
            ) from exc

    async def _paginate(
        self, operation: str, result_key: str, **kwargs: Any
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        token: str | None = None
        while True:
            if token:
                kwargs["nextToken"] = token
            resp = await self._call(operation, **kwargs)
            items.extend(resp.get(result_key, []))
            token = resp.get("nextToken")
            if not token:
                return items

    async def list_groups(self, prefix: str) -> list[str]:
        groups = await self._paginate(
            "describe_log_groups", "logGroups", logGroupNamePrefix=prefix
        )
        return [g["logGroupName"] for g in groups]

    async def create_group(self, group: str) -> None:
        await self._call("create_log_group", logGroupName=group)

    async def set_retention(self, group: str, days: int) -> None:
        await self._call(
            "put_retention_policy", logGroupName=group, retentionInDays=days
        )

    async def list_streams(self, group: str, prefix: str) -> list[StreamInfo]:
        streams = await self._paginate(
            "describe_log_streams",
            "logStreams",
            logGroupName=group,
            logStreamNamePrefix=prefix,
        )
        return [
            StreamInfo(name=s["logStreamName"], cursor=s.get("uploadSequenceToken"))
            for s in streams
        ]

    async def create_stream(self, group: str, stream: str) -> None:
        await self._call("create_log_stream", logGroupName=group, logStreamName=stream)

    async def append_events(
        self,
        group: str,
        stream: str,
        cursor: str | None,
        events: Sequence[LogEvent],
    ) -> str | None:
        kwargs: dict[str, Any] = {
            "logGroupName": group,
            "logStreamName": stream,
            "logEvents": [e.to_dict() for e in events],
        }
        if cursor is not None:
            kwargs["sequenceToken"] = cursor
        resp = await self._call("put_log_events", **kwargs)
        rejected = resp.get("rejectedLogEventsInfo")
        if rejected:
            warn(
                "cloudwatch",
                "some events were rejected",
                group=group,
                stream=stream,
                rejected=rejected,
            )
        return resp.get("nextSequenceToken")


__all__ = ["CloudWatchLogService"]
