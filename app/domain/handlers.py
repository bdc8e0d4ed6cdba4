"""Domain event handlers — wired up at application startup."""

from __future__ import annotations

import logging

from app.domain.bus import EventBus
from app.domain.events import (
    MemberInvited,
    MemberJoined,
    MemberLeft,
    SegmentConflictDetected,
    SegmentDeleted,
    SegmentSaved,
    TripCreated,
)
from app.domain.models import (
    ActivityEntry,
    ActivityType,
    ConflictPair,
    MembershipStatus,
)
from app.repos.memory import Repositories
from app.services.conflicts import collect_assigned_segments, detect_segment_conflicts

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Wires domain-event handlers to the bus with access to all repositories."""

    def __init__(self, bus: EventBus, repos: Repositories) -> None:
        self.bus = bus
        self.repos = repos
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(TripCreated, self.on_trip_created)
        self.bus.subscribe(MemberInvited, self.on_member_invited)
        self.bus.subscribe(MemberJoined, self.on_member_joined)
        self.bus.subscribe(MemberLeft, self.on_member_left)
        self.bus.subscribe(SegmentSaved, self.on_segment_saved)
        self.bus.subscribe(SegmentDeleted, self.on_segment_deleted)
        self.bus.subscribe(SegmentConflictDetected, self.on_conflict_detected)

    def _record(self, trip_id: str, type_: ActivityType, actor_sub: str | None, **payload) -> None:
        self.repos.activity.add(
            ActivityEntry(trip_id=trip_id, type=type_, actor_sub=actor_sub, payload=payload)
        )

    def _conflicts_for(self, user_sub: str) -> list[ConflictPair]:
        return detect_segment_conflicts(collect_assigned_segments(user_sub, self.repos))

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_trip_created(self, event: TripCreated) -> None:
        trip = self.repos.trips.get(event.trip_id)
        if trip is None:
            return
        self._record(event.trip_id, ActivityType.TRIP_CREATED, event.creator_sub, name=trip.name)

    def on_member_invited(self, event: MemberInvited) -> None:
        self._record(
            event.trip_id,
            ActivityType.MEMBER_INVITED,
            event.inviter_sub,
            member_id=event.member_id,
            email=event.email,
        )

    def on_member_joined(self, event: MemberJoined) -> None:
        self._record(
            event.trip_id, ActivityType.MEMBER_JOINED, event.google_sub, member_id=event.member_id
        )

        # Segments may have been assigned to the invite before it was accepted.
        relevant = [
            pair
            for pair in self._conflicts_for(event.google_sub)
            if event.trip_id in (pair.a.trip_id, pair.b.trip_id)
        ]
        if relevant:
            self.bus.publish(
                SegmentConflictDetected(user_sub=event.google_sub, conflicts=relevant)
            )

    def on_member_left(self, event: MemberLeft) -> None:
        self._record(
            event.trip_id,
            ActivityType.MEMBER_LEFT,
            event.google_sub,
            member_id=event.member_id,
            promoted_member_id=event.promoted_member_id,
        )

    def on_segment_saved(self, event: SegmentSaved) -> None:
        segment = self.repos.segments.get(event.segment_id)
        if segment is None:
            return

        self._record(
            event.trip_id,
            ActivityType.SEGMENT_CREATED if event.created else ActivityType.SEGMENT_UPDATED,
            event.actor_sub,
            segment_id=segment.id,
            name=segment.name,
            start_date=segment.start_date,
            end_date=segment.end_date,
        )

        if not segment.has_date_range():
            return

        key = (segment.trip_id, segment.id)
        for member_id in segment.assigned_member_ids:
            member = self.repos.members.get(member_id)
            if (
                member is None
                or member.google_sub is None
                or member.status != MembershipStatus.ACCEPTED
            ):
                continue
            relevant = [
                pair
                for pair in self._conflicts_for(member.google_sub)
                if key in ((pair.a.trip_id, pair.a.id), (pair.b.trip_id, pair.b.id))
            ]
            if relevant:
                self.bus.publish(
                    SegmentConflictDetected(user_sub=member.google_sub, conflicts=relevant)
                )

    def on_segment_deleted(self, event: SegmentDeleted) -> None:
        self._record(
            event.trip_id,
            ActivityType.SEGMENT_DELETED,
            event.actor_sub,
            segment_id=event.segment_id,
            name=event.name,
        )

    def on_conflict_detected(self, event: SegmentConflictDetected) -> None:
        logger.info(
            "User %s double-booked: %d conflicting segment pair(s)",
            event.user_sub,
            len(event.conflicts),
        )

        by_trip: dict[str, list[dict]] = {}
        for pair in event.conflicts:
            dumped = pair.model_dump()
            for trip_id in (pair.a.trip_id, pair.b.trip_id):
                by_trip.setdefault(trip_id, []).append(dumped)

        for trip_id, pairs in by_trip.items():
            self._record(
                trip_id,
                ActivityType.CONFLICT_DETECTED,
                event.user_sub,
                conflicts=pairs,
            )
