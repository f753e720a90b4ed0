from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cwlogship.core.models import (
    Batch,
    ContainerInfo,
    Destination,
    DestinationPhase,
    DestinationState,
    LogEvent,
    TaggedMessage,
    event_size,
)


def test_event_size_counts_utf8_bytes_plus_overhead() -> None:
    assert event_size("") == 26
    assert event_size("abc") == 29
    assert event_size("é") == 28


def test_destination_rejects_empty_parts() -> None:
    with pytest.raises(ValueError):
        Destination("", "web")
    with pytest.raises(ValueError):
        Destination("app", "")


def test_destination_is_hashable_value() -> None:
    assert Destination("app", "web") == Destination("app", "web")
    assert len({Destination("app", "web"), Destination("app", "web")}) == 1
    assert str(Destination("app", "web")) == "app/web"


def test_container_display_name_strips_leading_slash() -> None:
    assert ContainerInfo(id="abc", name="/web-1").display_name == "web-1"
    assert ContainerInfo(id="abc").display_name == "abc"


def test_timestamp_millis_handles_naive_and_aware() -> None:
    aware = datetime(2024, 1, 1, tzinfo=timezone.utc)
    naive = datetime(2024, 1, 1)
    dest = Destination("app", "web")
    a = TaggedMessage(text="x", container_id="c", destination=dest, arrival_time=aware)
    n = TaggedMessage(text="x", container_id="c", destination=dest, arrival_time=naive)
    assert a.timestamp_millis == n.timestamp_millis == 1_704_067_200_000


def test_batch_to_events_preserves_order_and_timestamps() -> None:
    dest = Destination("app", "web")
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    messages = tuple(
        TaggedMessage(
            text=f"m{i}",
            container_id="c",
            destination=dest,
            arrival_time=start + timedelta(milliseconds=i),
        )
        for i in range(3)
    )
    batch = Batch(dest, messages, sum(m.size for m in messages))
    assert len(batch) == batch.event_count == 3
    assert batch.to_events() == [
        LogEvent("m0", 1_704_067_200_000),
        LogEvent("m1", 1_704_067_200_001),
        LogEvent("m2", 1_704_067_200_002),
    ]
    assert batch.to_events()[0].to_dict() == {
        "timestamp": 1_704_067_200_000,
        "message": "m0",
    }


def test_destination_state_invalidate_keeps_resource_knowledge() -> None:
    state = DestinationState(phase=DestinationPhase.CURSOR_KNOWN, cursor="tok")
    assert state.cursor_known and state.group_known
    state.invalidate_cursor()
    assert state.phase is DestinationPhase.STREAM_RESOLVED
    assert state.cursor is None
    assert state.group_known and not state.cursor_known


def test_fresh_state_knows_nothing() -> None:
    state = DestinationState()
    assert not state.group_known
    assert not state.cursor_known
    state.invalidate_cursor()
    assert state.phase is DestinationPhase.UNKNOWN
