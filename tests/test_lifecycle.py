"""Tests for the event bus lifecycle — activity feed and conflict events."""

from __future__ import annotations

import logging

from app.domain.bus import EventBus
from app.domain.events import (
    MemberJoined,
    MemberLeft,
    SegmentConflictDetected,
    SegmentDeleted,
    SegmentSaved,
    TripCreated,
)
from app.domain.models import (
    ActivityType,
    MemberRole,
    MembershipStatus,
    Trip,
    TripMember,
    TripSegment,
)
from app.repos.memory import Repositories


def _trip(repos: Repositories, name: str) -> Trip:
    trip = Trip(name=name)
    repos.trips.add(trip)
    return trip


def _member(repos: Repositories, trip: Trip, sub: str | None, **overrides) -> TripMember:
    defaults = dict(
        trip_id=trip.id,
        google_sub=sub,
        role=MemberRole.MEMBER,
        status=MembershipStatus.ACCEPTED,
    )
    defaults.update(overrides)
    member = TripMember(**defaults)
    repos.members.add(member)
    return member


def _segment(repos: Repositories, trip: Trip, start, end, *assigned, name="Leg") -> TripSegment:
    segment = TripSegment(
        trip_id=trip.id,
        name=name,
        start_date=start,
        end_date=end,
        assigned_member_ids=[m.id for m in assigned],
    )
    repos.segments.add(segment)
    return segment


def _captured(bus: EventBus, event_type: type) -> list:
    seen: list = []
    bus.subscribe(event_type, seen.append)
    return seen


def _types(repos: Repositories, trip: Trip) -> list[ActivityType]:
    return [e.type for e in repos.activity.list_for_trip(trip.id)]


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------


def test_bus_calls_handlers_in_registration_order():
    bus = EventBus()
    calls: list[str] = []
    bus.subscribe(TripCreated, lambda e: calls.append("first"))
    bus.subscribe(TripCreated, lambda e: calls.append("second"))
    bus.subscribe(MemberLeft, lambda e: calls.append("other"))

    bus.publish(TripCreated(trip_id="t", creator_sub="alice"))

    assert calls == ["first", "second"]


def test_bus_ignores_events_without_subscribers():
    EventBus().publish(TripCreated(trip_id="t", creator_sub="alice"))


# ---------------------------------------------------------------------------
# Activity feed
# ---------------------------------------------------------------------------


def test_trip_created_records_activity(repos, bus):
    trip = _trip(repos, "Italy")

    bus.publish(TripCreated(trip_id=trip.id, creator_sub="alice"))

    [entry] = repos.activity.list_for_trip(trip.id)
    assert entry.type == ActivityType.TRIP_CREATED
    assert entry.actor_sub == "alice"
    assert entry.payload == {"name": "Italy"}


def test_segment_lifecycle_records_activity(repos, bus):
    trip = _trip(repos, "Italy")
    segment = _segment(repos, trip, "2024-03-01", "2024-03-05", name="Rome Leg")

    bus.publish(SegmentSaved(trip_id=trip.id, segment_id=segment.id, actor_sub="alice"))
    bus.publish(
        SegmentSaved(trip_id=trip.id, segment_id=segment.id, actor_sub="alice", created=False)
    )
    bus.publish(
        SegmentDeleted(
            trip_id=trip.id, segment_id=segment.id, actor_sub="alice", name=segment.name
        )
    )

    assert _types(repos, trip) == [
        ActivityType.SEGMENT_DELETED,
        ActivityType.SEGMENT_UPDATED,
        ActivityType.SEGMENT_CREATED,
    ]
    created = repos.activity.list_for_trip(trip.id)[-1]
    assert created.payload["start_date"] == "2024-03-01"
    assert created.payload["name"] == "Rome Leg"


def test_saved_event_for_missing_segment_is_ignored(repos, bus):
    trip = _trip(repos, "Italy")

    bus.publish(SegmentSaved(trip_id=trip.id, segment_id="gone", actor_sub="alice"))

    assert repos.activity.list_for_trip(trip.id) == []


# ---------------------------------------------------------------------------
# Conflict detection on change
# ---------------------------------------------------------------------------


def test_saving_overlapping_segment_publishes_conflict(repos, bus):
    italy = _trip(repos, "Italy")
    japan = _trip(repos, "Japan")
    alice_italy = _member(repos, italy, "alice")
    alice_japan = _member(repos, japan, "alice")
    rome = _segment(repos, italy, "2024-03-01", "2024-03-05", alice_italy, name="Rome")
    tokyo = _segment(repos, japan, "2024-03-05", "2024-03-09", alice_japan, name="Tokyo")
    conflicts = _captured(bus, SegmentConflictDetected)

    bus.publish(SegmentSaved(trip_id=japan.id, segment_id=tokyo.id, actor_sub="admin"))

    assert len(conflicts) == 1
    assert conflicts[0].user_sub == "alice"
    [pair] = conflicts[0].conflicts
    assert (pair.a.id, pair.b.id) == (rome.id, tokyo.id)

    for trip in (italy, japan):
        assert ActivityType.CONFLICT_DETECTED in _types(repos, trip)
    [entry] = [
        e
        for e in repos.activity.list_for_trip(italy.id)
        if e.type == ActivityType.CONFLICT_DETECTED
    ]
    assert entry.actor_sub == "alice"
    assert entry.payload["conflicts"][0]["b"]["trip_name"] == "Japan"


def test_same_trip_overlap_publishes_nothing(repos, bus):
    italy = _trip(repos, "Italy")
    alice = _member(repos, italy, "alice")
    _segment(repos, italy, "2024-03-01", "2024-03-10", alice, name="Hotel")
    rome = _segment(repos, italy, "2024-03-02", "2024-03-04", alice, name="Rome")
    conflicts = _captured(bus, SegmentConflictDetected)

    bus.publish(SegmentSaved(trip_id=italy.id, segment_id=rome.id, actor_sub="alice"))

    assert conflicts == []


def test_unrelated_conflicts_are_not_republished(repos, bus):
    """Only pairs involving the saved segment are reported."""
    italy = _trip(repos, "Italy")
    japan = _trip(repos, "Japan")
    alice_italy = _member(repos, italy, "alice")
    alice_japan = _member(repos, japan, "alice")
    _segment(repos, italy, "2024-03-01", "2024-03-05", alice_italy)
    _segment(repos, japan, "2024-03-02", "2024-03-03", alice_japan)
    later = _segment(repos, japan, "2024-04-01", "2024-04-03", alice_japan)
    conflicts = _captured(bus, SegmentConflictDetected)

    bus.publish(SegmentSaved(trip_id=japan.id, segment_id=later.id, actor_sub="admin"))

    assert conflicts == []


def test_pending_assignee_is_not_checked(repos, bus):
    italy = _trip(repos, "Italy")
    japan = _trip(repos, "Japan")
    alice_italy = _member(repos, italy, "alice")
    invite = _member(repos, japan, None, status=MembershipStatus.PENDING, email="a@x.io")
    _segment(repos, italy, "2024-03-01", "2024-03-05", alice_italy)
    tokyo = _segment(repos, japan, "2024-03-02", "2024-03-03", invite)
    conflicts = _captured(bus, SegmentConflictDetected)

    bus.publish(SegmentSaved(trip_id=japan.id, segment_id=tokyo.id, actor_sub="admin"))

    assert conflicts == []


def test_joining_a_trip_checks_existing_assignments(repos, bus):
    italy = _trip(repos, "Italy")
    japan = _trip(repos, "Japan")
    alice_italy = _member(repos, italy, "alice")
    _segment(repos, italy, "2024-03-01", "2024-03-05", alice_italy)
    joined = _member(repos, japan, "alice")
    _segment(repos, japan, "2024-03-04", "2024-03-06", joined)
    conflicts = _captured(bus, SegmentConflictDetected)

    bus.publish(MemberJoined(trip_id=japan.id, member_id=joined.id, google_sub="alice"))

    assert ActivityType.MEMBER_JOINED in _types(repos, japan)
    assert len(conflicts) == 1
    assert len(conflicts[0].conflicts) == 1


def test_member_left_records_promotion(repos, bus):
    italy = _trip(repos, "Italy")

    bus.publish(
        MemberLeft(
            trip_id=italy.id, member_id="m1", google_sub="alice", promoted_member_id="m2"
        )
    )

    [entry] = repos.activity.list_for_trip(italy.id)
    assert entry.type == ActivityType.MEMBER_LEFT
    assert entry.payload == {"member_id": "m1", "promoted_member_id": "m2"}


def test_conflict_is_logged(repos, bus, caplog):
    italy = _trip(repos, "Italy")
    japan = _trip(repos, "Japan")
    alice_italy = _member(repos, italy, "alice")
    alice_japan = _member(repos, japan, "alice")
    _segment(repos, italy, "2024-03-01", "2024-03-05", alice_italy)
    tokyo = _segment(repos, japan, "2024-03-04", "2024-03-06", alice_japan)

    with caplog.at_level(logging.DEBUG, logger="app"):
        bus.publish(SegmentSaved(trip_id=japan.id, segment_id=tokyo.id, actor_sub="admin"))

    assert "User alice double-booked: 1 conflicting segment pair(s)" in caplog.text
    assert "found 1 conflicts" in caplog.text
