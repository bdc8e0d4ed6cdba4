"""Domain models for trips, crew membership and date-ranged segments."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated

from dateutil.parser import isoparse
from pydantic import AfterValidator, BaseModel, Field, StringConstraints, model_validator


class MemberRole(StrEnum):
    ADMIN = "admin"
    MEMBER = "member"


class MembershipStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class ActivityType(StrEnum):
    TRIP_CREATED = "trip_created"
    MEMBER_INVITED = "member_invited"
    MEMBER_JOINED = "member_joined"
    MEMBER_LEFT = "member_left"
    SEGMENT_CREATED = "segment_created"
    SEGMENT_UPDATED = "segment_updated"
    SEGMENT_DELETED = "segment_deleted"
    CONFLICT_DETECTED = "conflict_detected"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _check_calendar_date(value: str) -> str:
    # The pattern pins the fixed-width layout; isoparse rejects impossible days.
    isoparse(value)
    return value


IsoDate = Annotated[
    str,
    StringConstraints(pattern=r"^\d{4}-\d{2}-\d{2}$"),
    AfterValidator(_check_calendar_date),
]


def _check_range(start: str | None, end: str | None) -> None:
    if start is not None and end is not None and start > end:
        raise ValueError("start_date must not be after end_date")


# ---------------------------------------------------------------------------
# Conflict detection records
# ---------------------------------------------------------------------------


class Segment(BaseModel):
    """A segment assigned to one user, tagged with its owning trip.

    Dates are inclusive ``YYYY-MM-DD`` strings. They are optional here only so
    that incomplete records can be handed to the detector, which skips them.
    """

    id: str
    trip_id: str
    trip_name: str = ""
    name: str
    start_date: str | None = None
    end_date: str | None = None


class ConflictPair(BaseModel):
    a: Segment
    b: Segment


# ---------------------------------------------------------------------------
# Stored rows
# ---------------------------------------------------------------------------


class Trip(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    destination: str | None = None
    start_date: IsoDate | None = None
    end_date: IsoDate | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _start_not_after_end(self) -> Trip:
        _check_range(self.start_date, self.end_date)
        return self


class TripMember(BaseModel):
    id: str = Field(default_factory=_new_id)
    trip_id: str
    google_sub: str | None = None
    email: str | None = None
    name: str | None = None
    role: MemberRole = MemberRole.MEMBER
    status: MembershipStatus = MembershipStatus.PENDING
    joined_at: datetime | None = None


class TripSegment(BaseModel):
    id: str = Field(default_factory=_new_id)
    trip_id: str
    name: str
    start_date: IsoDate | None = None
    end_date: IsoDate | None = None
    origin: str | None = None
    destination: str | None = None
    color: str = "#00e5ff"
    assigned_member_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _start_not_after_end(self) -> TripSegment:
        _check_range(self.start_date, self.end_date)
        return self

    def has_date_range(self) -> bool:
        return bool(self.start_date) and bool(self.end_date)


class ActivityEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    trip_id: str
    type: ActivityType
    actor_sub: str | None = None
    payload: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class CallerRequest(BaseModel):
    caller_sub: str


class CreateTripRequest(BaseModel):
    caller_sub: str
    caller_name: str | None = None
    caller_email: str | None = None
    name: str = Field(min_length=1)
    destination: str | None = None
    start_date: IsoDate | None = None
    end_date: IsoDate | None = None

    @model_validator(mode="after")
    def _start_not_after_end(self) -> CreateTripRequest:
        _check_range(self.start_date, self.end_date)
        return self


class InviteMemberRequest(BaseModel):
    inviter_sub: str
    email: str = Field(min_length=3)
    name: str | None = None


class AcceptInviteRequest(BaseModel):
    google_sub: str
    name: str | None = None


class CreateSegmentRequest(BaseModel):
    caller_sub: str
    name: str = Field(min_length=1)
    start_date: IsoDate | None = None
    end_date: IsoDate | None = None
    origin: str | None = None
    destination: str | None = None
    color: str | None = None
    assigned_member_ids: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _start_not_after_end(self) -> CreateSegmentRequest:
        _check_range(self.start_date, self.end_date)
        return self


class UpdateSegmentRequest(BaseModel):
    """Partial update: only fields present in the request body are applied."""

    caller_sub: str
    name: str | None = Field(default=None, min_length=1)
    start_date: IsoDate | None = None
    end_date: IsoDate | None = None
    origin: str | None = None
    destination: str | None = None
    color: str | None = None
    assigned_member_ids: list[str] | None = None


class SegmentConflictsResponse(BaseModel):
    conflicts: list[ConflictPair] = Field(default_factory=list)
    segments: list[Segment] = Field(default_factory=list)
