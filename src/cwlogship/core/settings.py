"""
Configuration models for cwlogship using Pydantic v2 Settings.

Settings are read from ``CWLOGSHIP_``-prefixed environment variables, with
``__`` as the nested delimiter (``CWLOGSHIP_BATCHING__MAX_BATCH_EVENTS=500``).
The plain ``DEBUG`` variable is honoured as well.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import (  # type: ignore[import-not-found]
    BaseSettings,
    SettingsConfigDict,
)

# Fixed per-event overhead CloudWatch adds when sizing a PutLogEvents call
EVENT_OVERHEAD_BYTES = 26
MAX_BATCH_BYTES = 1_048_576
MAX_BATCH_EVENTS = 10_000
MAX_EVENT_BYTES = 262_144

_FALSY = {"", "0", "false", "no", "off"}


class AwsSettings(BaseModel):
    """Remote endpoint selection."""

    region: str = Field(
        default="auto",
        description=(
            "AWS region; 'auto' resolves from the environment, then instance metadata"
        ),
    )
    instance_metadata_enabled: bool = Field(
        default=True,
        description="Query the EC2 instance metadata service when region is 'auto'",
    )
    metadata_timeout_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="Timeout for instance metadata requests",
    )

    @field_validator("region")
    @classmethod
    def _strip_region(cls, value: str) -> str:
        return value.strip()


class BatchingSettings(BaseModel):
    """Flush policy for per-destination buffers."""

    max_batch_bytes: int = Field(
        default=MAX_BATCH_BYTES,
        le=MAX_BATCH_BYTES,
        description="Maximum batch size in bytes, including per-event overhead",
    )
    max_batch_events: int = Field(
        default=MAX_BATCH_EVENTS,
        ge=1,
        le=MAX_BATCH_EVENTS,
        description="Maximum number of events per batch",
    )
    max_event_bytes: int = Field(
        default=MAX_EVENT_BYTES,
        le=MAX_EVENT_BYTES,
        description="Maximum size of one event; longer messages are truncated",
    )
    flush_interval_seconds: float = Field(
        default=4.0,
        gt=0.0,
        description="Maximum time a non-empty buffer waits before it is flushed",
    )

    @field_validator("max_batch_bytes", "max_event_bytes")
    @classmethod
    def _ensure_room_for_one_event(cls, value: int) -> int:
        if value <= EVENT_OVERHEAD_BYTES:
            raise ValueError(
                f"byte limits must exceed the {EVENT_OVERHEAD_BYTES}-byte event overhead"
            )
        return value

    @property
    def event_byte_limit(self) -> int:
        """Largest size a single event may occupy inside a batch."""
        return min(self.max_event_bytes, self.max_batch_bytes)


class DeliverySettings(BaseModel):
    """Delivery engine behaviour."""

    call_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Upper bound for each remote call; a timeout drops the batch",
    )
    retry_on_stale_cursor: bool = Field(
        default=True,
        description=(
            "Invalidate the cached cursor and retry once when the remote reports "
            "a sequencing cursor mismatch"
        ),
    )
    workers: int = Field(
        default=1,
        ge=1,
        description="Delivery workers; destinations are sharded across them",
    )
    cache_capacity: int = Field(
        default=10_000,
        ge=1,
        description="Maximum number of destinations and containers kept in caches",
    )


class PipelineSettings(BaseModel):
    """Queue bounds and shutdown behaviour."""

    inbound_queue_size: int = Field(
        default=10_000,
        ge=1,
        description="Messages accepted before submit() blocks",
    )
    batch_queue_size: int = Field(
        default=16,
        ge=1,
        description="Flushed batches waiting for delivery before batching blocks",
    )
    shutdown_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Time allowed to drain accepted messages on stop()",
    )


class Settings(BaseSettings):
    """Top-level configuration model."""

    debug: bool = Field(
        default=False,
        validation_alias=AliasChoices("cwlogship_debug", "debug"),
        description="Verbose step-by-step logging of the delivery protocol",
    )
    enable_metrics: bool = Field(
        default=False,
        description="Export Prometheus metrics from an isolated registry",
    )

    aws: AwsSettings = Field(default_factory=AwsSettings)
    batching: BatchingSettings = Field(default_factory=BatchingSettings)
    delivery: DeliverySettings = Field(default_factory=DeliverySettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)

    model_config = SettingsConfigDict(
        env_prefix="CWLOGSHIP_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("debug", mode="before")
    @classmethod
    def _coerce_debug(cls, value: Any) -> Any:
        # Any non-empty DEBUG value turns verbose logging on
        if isinstance(value, str):
            return value.strip().lower() not in _FALSY
        return value

    def to_json(self) -> str:
        import json

        return json.dumps(self.model_dump(exclude_none=True))

    def to_dict(self) -> dict[str, object]:
        from typing import cast

        return cast(dict[str, object], self.model_dump(exclude_none=True))


__all__ = [
    "EVENT_OVERHEAD_BYTES",
    "AwsSettings",
    "BatchingSettings",
    "DeliverySettings",
    "PipelineSettings",
    "Settings",
]
