"""Pure interval logic for detecting and classifying booking conflicts."""

from __future__ import annotations

from collections.abc import Iterable

from app.domain.models import (
    Booking,
    BookingConflict,
    ConflictAnalysis,
    ConflictType,
    DateRange,
    Severity,
)

_NO_CONFLICT = ConflictAnalysis(
    has_conflict=False, severity=Severity.INFO, conflict_type=ConflictType.ADJACENT
)


def overlaps(a: DateRange, b: DateRange) -> bool:
    """Return True when two half-open ranges share any instant.

    Exact boundary touches (a.end == b.start) are NOT overlaps.
    """
    return a.start < b.end and b.start < a.end


def find_conflicts(requested: DateRange, bookings: Iterable[Booking]) -> list[Booking]:
    """Return the bookings whose range overlaps ``requested``."""
    return [b for b in bookings if overlaps(requested, b.date_range)]


def analyze_conflict(requested: DateRange, existing: DateRange) -> ConflictAnalysis:
    """Classify how ``existing`` relates to ``requested``.

    ``adjacent`` covers every non-overlapping pair, touching or not, and is the
    only non-conflicting outcome. The three overlapping outcomes are blocking.
    """
    rs, re = requested.start, requested.end
    bs, be = existing.start, existing.end

    if re <= bs or rs >= be:
        return _NO_CONFLICT

    if rs <= bs and re >= be:
        conflict_type = ConflictType.ENCOMPASSING
    elif bs <= rs and be >= re:
        conflict_type = ConflictType.ENCOMPASSED
    else:
        conflict_type = ConflictType.OVERLAP

    return ConflictAnalysis(
        has_conflict=True, severity=Severity.BLOCKING, conflict_type=conflict_type
    )


def annotate_conflicts(
    requested: DateRange, bookings: Iterable[Booking]
) -> list[BookingConflict]:
    """Analyze every booking and keep the conflicting ones, annotated."""
    annotated: list[BookingConflict] = []
    for booking in bookings:
        analysis = analyze_conflict(requested, booking.date_range)
        if not analysis.has_conflict:
            continue
        annotated.append(
            BookingConflict(
                **booking.summary().model_dump(),
                severity=analysis.severity,
                conflict_type=analysis.conflict_type,
            )
        )
    return annotated
