"""In-memory repositories for trips, members, segments and activity."""

from __future__ import annotations

from dataclasses import dataclass, field

from app.domain.models import (
    ActivityEntry,
    MemberRole,
    MembershipStatus,
    Trip,
    TripMember,
    TripSegment,
)


class TripRepository:
    """Dict-backed store for Trip instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Trip] = {}

    def add(self, trip: Trip) -> None:
        self._store[trip.id] = trip

    def get(self, trip_id: str) -> Trip | None:
        return self._store.get(trip_id)


class MemberRepository:
    """Dict-backed store for TripMember instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, TripMember] = {}

    def add(self, member: TripMember) -> None:
        self._store[member.id] = member

    def get(self, member_id: str) -> TripMember | None:
        return self._store.get(member_id)

    def delete(self, member_id: str) -> None:
        self._store.pop(member_id, None)

    def list_for_trip(
        self, trip_id: str, status: MembershipStatus | None = None
    ) -> list[TripMember]:
        return [
            m
            for m in self._store.values()
            if m.trip_id == trip_id and (status is None or m.status == status)
        ]

    def list_for_user(
        self, google_sub: str, status: MembershipStatus | None = None
    ) -> list[TripMember]:
        """Return one user's memberships across all trips."""
        return [
            m
            for m in self._store.values()
            if m.google_sub == google_sub and (status is None or m.status == status)
        ]

    def find_by_sub(self, trip_id: str, google_sub: str) -> TripMember | None:
        for m in self._store.values():
            if m.trip_id == trip_id and m.google_sub == google_sub:
                return m
        return None

    def find_by_email(self, trip_id: str, email: str) -> TripMember | None:
        for m in self._store.values():
            if m.trip_id == trip_id and m.email == email:
                return m
        return None

    def is_admin(self, trip_id: str, google_sub: str) -> bool:
        member = self.find_by_sub(trip_id, google_sub)
        return (
            member is not None
            and member.role == MemberRole.ADMIN
            and member.status == MembershipStatus.ACCEPTED
        )


class SegmentRepository:
    """Dict-backed store for TripSegment instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, TripSegment] = {}

    def add(self, segment: TripSegment) -> None:
        self._store[segment.id] = segment

    def get(self, segment_id: str) -> TripSegment | None:
        return self._store.get(segment_id)

    def delete(self, segment_id: str) -> None:
        self._store.pop(segment_id, None)

    def list_for_trip(self, trip_id: str) -> list[TripSegment]:
        """Segments of a trip, undated ones last, then by creation time."""
        return sorted(
            (s for s in self._store.values() if s.trip_id == trip_id),
            key=lambda s: (s.start_date is None, s.start_date or "", s.created_at),
        )

    def list_assigned(self, trip_id: str, member_id: str) -> list[TripSegment]:
        return [
            s
            for s in self.list_for_trip(trip_id)
            if member_id in s.assigned_member_ids
        ]

    def unassign_member(self, trip_id: str, member_id: str) -> None:
        for s in self._store.values():
            if s.trip_id == trip_id and member_id in s.assigned_member_ids:
                s.assigned_member_ids = [
                    mid for mid in s.assigned_member_ids if mid != member_id
                ]


class ActivityRepository:
    """List-backed store for ActivityEntry instances."""

    def __init__(self) -> None:
        self._entries: list[ActivityEntry] = []

    def add(self, entry: ActivityEntry) -> None:
        self._entries.append(entry)

    def list_for_trip(self, trip_id: str, limit: int | None = None) -> list[ActivityEntry]:
        """Newest first; insertion order breaks timestamp ties."""
        indexed = [(i, e) for i, e in enumerate(self._entries) if e.trip_id == trip_id]
        indexed.sort(key=lambda item: (item[1].created_at, item[0]), reverse=True)
        entries = [e for _, e in indexed]
        return entries if limit is None else entries[:limit]


@dataclass
class Repositories:
    """The set of stores a request handler works against."""

    trips: TripRepository = field(default_factory=TripRepository)
    members: MemberRepository = field(default_factory=MemberRepository)
    segments: SegmentRepository = field(default_factory=SegmentRepository)
    activity: ActivityRepository = field(default_factory=ActivityRepository)
