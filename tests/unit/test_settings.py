from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from cwlogship.core.settings import (
    MAX_BATCH_BYTES,
    MAX_BATCH_EVENTS,
    MAX_EVENT_BYTES,
    BatchingSettings,
    DeliverySettings,
    Settings,
)


def test_defaults_match_remote_limits() -> None:
    settings = Settings()
    assert settings.debug is False
    assert settings.aws.region == "auto"
    assert settings.batching.max_batch_bytes == MAX_BATCH_BYTES == 1_048_576
    assert settings.batching.max_batch_events == MAX_BATCH_EVENTS == 10_000
    assert settings.batching.max_event_bytes == MAX_EVENT_BYTES == 262_144
    assert settings.batching.flush_interval_seconds == 4.0
    assert settings.delivery.retry_on_stale_cursor is True
    assert settings.delivery.workers == 1


def test_nested_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CWLOGSHIP_BATCHING__MAX_BATCH_EVENTS", "500")
    monkeypatch.setenv("CWLOGSHIP_DELIVERY__WORKERS", "4")
    monkeypatch.setenv("CWLOGSHIP_AWS__REGION", " eu-west-1 ")

    settings = Settings()

    assert settings.batching.max_batch_events == 500
    assert settings.delivery.workers == 4
    assert settings.aws.region == "eu-west-1"


@pytest.mark.parametrize("value", ["1", "true", "yes", "anything"])
def test_plain_debug_variable_enables_debug(
    monkeypatch: pytest.MonkeyPatch, value: str
) -> None:
    monkeypatch.setenv("DEBUG", value)
    assert Settings().debug is True


@pytest.mark.parametrize("value", ["", "0", "false", "off"])
def test_falsy_debug_values(monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setenv("DEBUG", value)
    assert Settings().debug is False


def test_prefixed_debug_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CWLOGSHIP_DEBUG", "1")
    assert Settings().debug is True


def test_limits_above_remote_maximum_rejected() -> None:
    with pytest.raises(ValidationError):
        BatchingSettings(max_batch_bytes=MAX_BATCH_BYTES + 1)
    with pytest.raises(ValidationError):
        BatchingSettings(max_batch_events=MAX_BATCH_EVENTS + 1)
    with pytest.raises(ValidationError):
        BatchingSettings(max_event_bytes=MAX_EVENT_BYTES + 1)


def test_byte_limits_must_fit_one_event() -> None:
    with pytest.raises(ValidationError, match="event overhead"):
        BatchingSettings(max_batch_bytes=26)


def test_event_byte_limit_is_the_smaller_limit() -> None:
    assert BatchingSettings(max_batch_bytes=1_000).event_byte_limit == 1_000
    assert BatchingSettings().event_byte_limit == MAX_EVENT_BYTES


def test_delivery_rejects_zero_workers() -> None:
    with pytest.raises(ValidationError):
        DeliverySettings(workers=0)


def test_to_json_round_trips_through_model() -> None:
    settings = Settings(debug=True)
    data = json.loads(settings.to_json())
    assert data["debug"] is True
    assert data["batching"]["max_batch_events"] == MAX_BATCH_EVENTS
    assert settings.to_dict()["enable_metrics"] is False
