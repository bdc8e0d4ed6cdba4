"""FastAPI application — entry point for the trip crew service."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.config import get_settings
from app.domain.bus import EventBus
from app.domain.errors import (
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    TripServiceError,
)
from app.domain.events import (
    MemberInvited,
    MemberJoined,
    MemberLeft,
    SegmentDeleted,
    SegmentSaved,
    TripCreated,
)
from app.domain.handlers import HandlerRegistry
from app.domain.models import (
    AcceptInviteRequest,
    ActivityEntry,
    CallerRequest,
    CreateSegmentRequest,
    CreateTripRequest,
    InviteMemberRequest,
    MemberRole,
    MembershipStatus,
    SegmentConflictsResponse,
    Trip,
    TripMember,
    TripSegment,
    UpdateSegmentRequest,
)
from app.logging_config import setup_logging
from app.repos.memory import Repositories
from app.services.conflicts import collect_assigned_segments, detect_segment_conflicts

setup_logging()
logger = logging.getLogger("app")

app = FastAPI(title=get_settings().app_title)

# ── Process-wide stores, handed to routes through dependencies ────────
_repos = Repositories()
_bus = EventBus()
HandlerRegistry(bus=_bus, repos=_repos)


def get_repositories() -> Repositories:
    return _repos


def get_bus() -> EventBus:
    return _bus


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        ms = int((time.perf_counter() - start) * 1000)
        logger.exception("Unhandled error %s %s (%dms)", request.method, request.url.path, ms)
        raise
    ms = int((time.perf_counter() - start) * 1000)
    logger.info("%s %s -> %s (%dms)", request.method, request.url.path, response.status_code, ms)
    return response


@app.exception_handler(TripServiceError)
async def trip_service_error_handler(request: Request, exc: TripServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# ── Helpers ───────────────────────────────────────────────────────────


def _require_trip(repos: Repositories, trip_id: str) -> Trip:
    trip = repos.trips.get(trip_id)
    if trip is None:
        raise NotFoundError("Trip not found")
    return trip


def _require_admin(repos: Repositories, trip_id: str, caller_sub: str) -> None:
    if not repos.members.is_admin(trip_id, caller_sub):
        raise PermissionDeniedError("Forbidden")


def _require_segment(repos: Repositories, trip_id: str, segment_id: str) -> TripSegment:
    segment = repos.segments.get(segment_id)
    if segment is None or segment.trip_id != trip_id:
        raise NotFoundError("Segment not found")
    return segment


def _check_assignees(repos: Repositories, trip_id: str, member_ids: list[str]) -> None:
    for member_id in member_ids:
        member = repos.members.get(member_id)
        if member is None or member.trip_id != trip_id:
            raise InvalidOperationError(f"Member {member_id} is not part of this trip")


# ── Trips ─────────────────────────────────────────────────────────────


@app.post("/trips", response_model=Trip, status_code=201)
def create_trip(
    body: CreateTripRequest,
    repos: Repositories = Depends(get_repositories),
    bus: EventBus = Depends(get_bus),
) -> Trip:
    """Create a trip; the caller becomes its first admin."""
    trip = Trip(
        name=body.name,
        destination=body.destination,
        start_date=body.start_date,
        end_date=body.end_date,
    )
    repos.trips.add(trip)
    repos.members.add(
        TripMember(
            trip_id=trip.id,
            google_sub=body.caller_sub,
            email=body.caller_email,
            name=body.caller_name,
            role=MemberRole.ADMIN,
            status=MembershipStatus.ACCEPTED,
            joined_at=datetime.now(timezone.utc),
        )
    )
    bus.publish(TripCreated(trip_id=trip.id, creator_sub=body.caller_sub))
    return trip


@app.get("/trips/{trip_id}", response_model=Trip)
def get_trip(trip_id: str, repos: Repositories = Depends(get_repositories)) -> Trip:
    return _require_trip(repos, trip_id)


@app.get("/trips/{trip_id}/activity", response_model=list[ActivityEntry])
def list_activity(
    trip_id: str,
    limit: int | None = Query(default=None, ge=1),
    repos: Repositories = Depends(get_repositories),
) -> list[ActivityEntry]:
    """Return the trip's activity feed, newest first."""
    _require_trip(repos, trip_id)
    settings = get_settings()
    effective = min(limit or settings.activity_default_limit, settings.activity_max_limit)
    return repos.activity.list_for_trip(trip_id, limit=effective)


# ── Members ───────────────────────────────────────────────────────────


@app.get("/trips/{trip_id}/members", response_model=list[TripMember])
def list_members(trip_id: str, repos: Repositories = Depends(get_repositories)) -> list[TripMember]:
    _require_trip(repos, trip_id)
    return repos.members.list_for_trip(trip_id)


@app.post("/trips/{trip_id}/invite", response_model=TripMember, status_code=201)
def invite_member(
    trip_id: str,
    body: InviteMemberRequest,
    repos: Repositories = Depends(get_repositories),
    bus: EventBus = Depends(get_bus),
) -> TripMember:
    """Add a pending member by e-mail. Re-inviting a pending address reuses its row."""
    _require_trip(repos, trip_id)
    _require_admin(repos, trip_id, body.inviter_sub)

    member = repos.members.find_by_email(trip_id, body.email)
    if member is not None and member.status == MembershipStatus.ACCEPTED:
        raise InvalidOperationError("Already a member of this trip")
    if member is None:
        member = TripMember(trip_id=trip_id, email=body.email, name=body.name)
        repos.members.add(member)

    bus.publish(
        MemberInvited(
            trip_id=trip_id,
            member_id=member.id,
            inviter_sub=body.inviter_sub,
            email=body.email,
        )
    )
    return member


@app.post("/trips/{trip_id}/members/{member_id}/accept", response_model=TripMember)
def accept_invite(
    trip_id: str,
    member_id: str,
    body: AcceptInviteRequest,
    repos: Repositories = Depends(get_repositories),
    bus: EventBus = Depends(get_bus),
) -> TripMember:
    member = repos.members.get(member_id)
    if member is None or member.trip_id != trip_id:
        raise NotFoundError("Member not found")
    if member.status == MembershipStatus.ACCEPTED:
        raise InvalidOperationError("Invite already accepted")
    if repos.members.find_by_sub(trip_id, body.google_sub) is not None:
        raise InvalidOperationError("Already a member of this trip")

    member.google_sub = body.google_sub
    if body.name:
        member.name = body.name
    member.status = MembershipStatus.ACCEPTED
    member.joined_at = datetime.now(timezone.utc)

    bus.publish(MemberJoined(trip_id=trip_id, member_id=member.id, google_sub=body.google_sub))
    return member


@app.post("/trips/{trip_id}/members/leave", status_code=204)
def leave_trip(
    trip_id: str,
    body: CallerRequest,
    repos: Repositories = Depends(get_repositories),
    bus: EventBus = Depends(get_bus),
) -> Response:
    """Remove the caller from the crew, handing admin over if they were the last one."""
    _require_trip(repos, trip_id)
    members = repos.members.list_for_trip(trip_id, status=MembershipStatus.ACCEPTED)

    caller = next((m for m in members if m.google_sub == body.caller_sub), None)
    if caller is None:
        raise PermissionDeniedError("You are not a member of this trip.")
    if len(members) == 1:
        raise InvalidOperationError(
            "You are the only member. Delete the trip instead of leaving."
        )

    promoted: TripMember | None = None
    admins = [m for m in members if m.role == MemberRole.ADMIN]
    if caller.role == MemberRole.ADMIN and len(admins) == 1:
        promoted = next(m for m in members if m.id != caller.id)
        promoted.role = MemberRole.ADMIN

    repos.members.delete(caller.id)
    repos.segments.unassign_member(trip_id, caller.id)

    bus.publish(
        MemberLeft(
            trip_id=trip_id,
            member_id=caller.id,
            google_sub=body.caller_sub,
            promoted_member_id=promoted.id if promoted else None,
        )
    )
    return Response(status_code=204)


# ── Segments ──────────────────────────────────────────────────────────


@app.get("/trips/{trip_id}/segments", response_model=list[TripSegment])
def list_segments(trip_id: str, repos: Repositories = Depends(get_repositories)) -> list[TripSegment]:
    _require_trip(repos, trip_id)
    return repos.segments.list_for_trip(trip_id)


@app.post("/trips/{trip_id}/segments", response_model=TripSegment, status_code=201)
def create_segment(
    trip_id: str,
    body: CreateSegmentRequest,
    repos: Repositories = Depends(get_repositories),
    bus: EventBus = Depends(get_bus),
) -> TripSegment:
    _require_trip(repos, trip_id)
    _require_admin(repos, trip_id, body.caller_sub)
    _check_assignees(repos, trip_id, body.assigned_member_ids)

    segment = TripSegment(
        trip_id=trip_id,
        name=body.name,
        start_date=body.start_date,
        end_date=body.end_date,
        origin=body.origin,
        destination=body.destination,
        color=body.color or get_settings().default_segment_color,
        assigned_member_ids=body.assigned_member_ids,
    )
    repos.segments.add(segment)
    bus.publish(SegmentSaved(trip_id=trip_id, segment_id=segment.id, actor_sub=body.caller_sub))
    return segment


@app.put("/trips/{trip_id}/segments/{segment_id}", response_model=TripSegment)
def update_segment(
    trip_id: str,
    segment_id: str,
    body: UpdateSegmentRequest,
    repos: Repositories = Depends(get_repositories),
    bus: EventBus = Depends(get_bus),
) -> TripSegment:
    """Apply the fields present in the body; an explicit null clears a field.

    A null ``color`` falls back to the configured default colour.
    """
    _require_trip(repos, trip_id)
    _require_admin(repos, trip_id, body.caller_sub)
    segment = _require_segment(repos, trip_id, segment_id)

    changes = {
        name: getattr(body, name) for name in body.model_fields_set if name != "caller_sub"
    }
    if changes.get("assigned_member_ids") is None:
        changes.pop("assigned_member_ids", None)
    else:
        _check_assignees(repos, trip_id, changes["assigned_member_ids"])
    if "color" in changes and changes["color"] is None:
        changes["color"] = get_settings().default_segment_color

    try:
        updated = TripSegment.model_validate({**segment.model_dump(), **changes})
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors()[0]["msg"]) from exc

    repos.segments.add(updated)
    bus.publish(
        SegmentSaved(
            trip_id=trip_id, segment_id=segment_id, actor_sub=body.caller_sub, created=False
        )
    )
    return updated


@app.delete("/trips/{trip_id}/segments/{segment_id}", status_code=204)
def delete_segment(
    trip_id: str,
    segment_id: str,
    caller_sub: str = Query(...),
    repos: Repositories = Depends(get_repositories),
    bus: EventBus = Depends(get_bus),
) -> Response:
    _require_trip(repos, trip_id)
    _require_admin(repos, trip_id, caller_sub)
    segment = _require_segment(repos, trip_id, segment_id)

    repos.segments.delete(segment_id)
    bus.publish(
        SegmentDeleted(
            trip_id=trip_id, segment_id=segment_id, actor_sub=caller_sub, name=segment.name
        )
    )
    return Response(status_code=204)


# ── Users ─────────────────────────────────────────────────────────────


@app.get("/users/{sub}/segment-conflicts", response_model=SegmentConflictsResponse)
def get_segment_conflicts(
    sub: str, repos: Repositories = Depends(get_repositories)
) -> SegmentConflictsResponse:
    """Return the user's dated segments across trips and the cross-trip overlaps."""
    segments = collect_assigned_segments(sub, repos)
    conflicts = detect_segment_conflicts(segments)
    return SegmentConflictsResponse(conflicts=conflicts, segments=segments)
