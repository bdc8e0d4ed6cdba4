"""Service for detecting cross-trip date conflicts between a user's segments."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from app.domain.models import ConflictPair, MembershipStatus, Segment

if TYPE_CHECKING:
    from app.repos.memory import Repositories

logger = logging.getLogger(__name__)


def detect_segment_conflicts(segments: Iterable[Segment]) -> list[ConflictPair]:
    """Return every pair of segments from different trips whose dates overlap.

    Dates are compared as strings, which is only correct for zero-padded
    ``YYYY-MM-DD`` values. Both ends are inclusive: a segment ending on the
    day another one starts is a conflict. Segments lacking either date are
    ignored. A segment whose start is after its end is not rejected; it takes
    part in the comparison with its raw values.

    After sorting by start date the segments overlapping ``sorted[i]`` form a
    contiguous run directly after it, so the inner scan stops at the first
    segment that starts after ``sorted[i]`` ends. Pairs come back in scan
    order, with ``a`` the earlier-starting segment.
    """
    ordered = sorted(
        (s for s in segments if s.start_date and s.end_date),
        key=lambda s: s.start_date,
    )

    conflicts: list[ConflictPair] = []
    for i, first in enumerate(ordered):
        for second in ordered[i + 1 :]:
            if second.start_date > first.end_date:
                break
            # Overlaps inside one trip are expected (hotel spanning a city visit).
            if first.trip_id != second.trip_id:
                conflicts.append(ConflictPair(a=first, b=second))

    logger.debug(
        "Checked %d dated segments, found %d conflicts", len(ordered), len(conflicts)
    )
    return conflicts


def collect_assigned_segments(user_sub: str, repos: Repositories) -> list[Segment]:
    """Gather the dated segments assigned to *user_sub* across accepted trips."""
    collected: list[Segment] = []
    for membership in repos.members.list_for_user(
        user_sub, status=MembershipStatus.ACCEPTED
    ):
        trip = repos.trips.get(membership.trip_id)
        trip_name = trip.name if trip is not None else ""
        for row in repos.segments.list_assigned(membership.trip_id, membership.id):
            if not row.has_date_range():
                continue
            collected.append(
                Segment(
                    id=row.id,
                    trip_id=row.trip_id,
                    trip_name=trip_name,
                    name=row.name,
                    start_date=row.start_date,
                    end_date=row.end_date,
                )
            )
    return collected
