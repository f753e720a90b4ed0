from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from cwlogship.caching.cache import DeliveryContext
from cwlogship.core.errors import RetentionConfigError
from cwlogship.core.models import ContainerInfo, Destination, LogRecord
from cwlogship.core.naming import (
    GROUP_ENV,
    RETENTION_ENV,
    STREAM_ENV,
    CachingResolver,
    DestinationResolver,
    EnvDestinationResolver,
    Resolution,
    StaticDestinationResolver,
    parse_retention_days,
)


class _CountingResolver:
    def __init__(self) -> None:
        self.calls = 0

    def resolve(self, container: ContainerInfo) -> Resolution:
        self.calls += 1
        return Resolution(Destination("app", container.display_name), 7)


@pytest.mark.parametrize("value, expected", [("14", 14), (" 30 ", 30), (1, 1)])
def test_parse_retention_days_valid(value: object, expected: int) -> None:
    assert parse_retention_days(value) == expected


@pytest.mark.parametrize("value", ["0", "-3", "abc", "1.5", "", True, None])
def test_parse_retention_days_rejects(value: object) -> None:
    with pytest.raises(RetentionConfigError):
        parse_retention_days(value)


def test_static_resolver_defaults_stream_to_container_name() -> None:
    resolver = StaticDestinationResolver("app", retention_days="7")
    assert isinstance(resolver, DestinationResolver)
    res = resolver.resolve(ContainerInfo(id="abc", name="/web-1"))
    assert res == Resolution(Destination("app", "web-1"), 7)


def test_static_resolver_rejects_bad_retention_eagerly() -> None:
    with pytest.raises(RetentionConfigError):
        StaticDestinationResolver("app", retention_days="never")


def test_env_resolver_prefers_env_then_labels_then_defaults() -> None:
    resolver = EnvDestinationResolver(default_group="host-1")
    from_env = ContainerInfo(
        id="a",
        name="/web",
        env={GROUP_ENV: "prod", STREAM_ENV: "frontend"},
        labels={GROUP_ENV: "ignored"},
    )
    from_labels = ContainerInfo(id="b", name="/api", labels={GROUP_ENV: "staging"})
    bare = ContainerInfo(id="c", name="/worker")

    assert resolver.resolve(from_env).destination == Destination("prod", "frontend")
    assert resolver.resolve(from_labels).destination == Destination("staging", "api")
    assert resolver.resolve(bare).destination == Destination("host-1", "worker")


def test_env_resolver_reads_retention_and_ignores_invalid(
    caplog: pytest.LogCaptureFixture,
) -> None:
    resolver = EnvDestinationResolver(default_group="g")
    good = ContainerInfo(id="a", name="web", env={RETENTION_ENV: "90"})
    bad = ContainerInfo(id="b", name="api", env={RETENTION_ENV: "forever"})

    assert resolver.resolve(good).retention_days == 90
    with caplog.at_level(logging.WARNING, logger="cwlogship"):
        assert resolver.resolve(bad).retention_days is None
    assert "ignoring retention setting" in caplog.text


def test_caching_resolver_resolves_each_container_once() -> None:
    inner = _CountingResolver()
    context = DeliveryContext()
    resolver = CachingResolver(inner, context)
    container = ContainerInfo(id="abc", name="web")

    for _ in range(5):
        assert resolver.resolve(container).destination == Destination("app", "web")

    assert inner.calls == 1
    assert context.retention_for("app") == 7

    resolver.clear()
    resolver.resolve(container)
    assert inner.calls == 2


def test_tag_keeps_record_time_or_stamps_arrival() -> None:
    resolver = CachingResolver(_CountingResolver(), DeliveryContext())
    container = ContainerInfo(id="abc", name="web")
    when = datetime(2024, 5, 1, tzinfo=timezone.utc)

    stamped = resolver.tag(LogRecord(container, "hello", time=when))
    assert stamped.arrival_time == when
    assert stamped.container_id == "abc"
    assert stamped.destination == Destination("app", "web")

    fresh = resolver.tag(LogRecord(container, "later"))
    assert fresh.arrival_time.tzinfo is not None
