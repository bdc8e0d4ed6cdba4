"""Domain events emitted as trips, crews and segments change."""

from __future__ import annotations

from pydantic import BaseModel

from app.domain.models import ConflictPair


class TripCreated(BaseModel):
    """Fired when a trip and its founding admin are persisted."""

    trip_id: str
    creator_sub: str


class MemberInvited(BaseModel):
    trip_id: str
    member_id: str
    inviter_sub: str
    email: str


class MemberJoined(BaseModel):
    """Fired when an invited member accepts and becomes part of the crew."""

    trip_id: str
    member_id: str
    google_sub: str


class MemberLeft(BaseModel):
    trip_id: str
    member_id: str
    google_sub: str
    promoted_member_id: str | None = None


class SegmentSaved(BaseModel):
    """Fired after a segment is created or updated."""

    trip_id: str
    segment_id: str
    actor_sub: str
    created: bool = True


class SegmentDeleted(BaseModel):
    trip_id: str
    segment_id: str
    actor_sub: str
    name: str


class SegmentConflictDetected(BaseModel):
    """Fired when a change leaves a user double-booked across trips."""

    user_sub: str
    conflicts: list[ConflictPair]
