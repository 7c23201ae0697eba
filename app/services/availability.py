"""Availability checks for a property's bookings.

The verdicts returned here are advisory: they are computed from a snapshot of
the store and nothing is locked between the check and a subsequent write. The
authoritative guard is the overlap check the repository runs at write time.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from app.domain.models import (
    AdvancedAvailabilityResult,
    BasicAvailabilityResult,
    Booking,
    BookingAlternative,
    Confidence,
    DateRange,
    GracePeriodDirection,
    GracePeriodViolation,
    Severity,
)
from app.repos.memory import BookingQuery, BookingRepository, WindowMode
from app.services.conflicts import annotate_conflicts
from app.utils.config import Settings, get_settings
from app.utils.logger import get_logger

logger = get_logger(__name__)

_ONE_HOUR = timedelta(hours=1)


def check_availability(
    repo: BookingRepository,
    property_id: str,
    requested: DateRange,
    exclude_booking_id: str | None = None,
) -> BasicAvailabilityResult:
    """Report whether ``requested`` is free of non-cancelled bookings.

    ``exclude_booking_id`` lets a booking being edited be re-validated without
    conflicting with itself.
    """
    conflicts = repo.find(
        BookingQuery.active(
            property_id, requested, exclude_booking_id=exclude_booking_id
        )
    )
    logger.debug(
        "Basic availability for property %s %s..%s: %d conflict(s)",
        property_id,
        requested.start.isoformat(),
        requested.end.isoformat(),
        len(conflicts),
    )
    return BasicAvailabilityResult(
        available=not conflicts,
        conflicts=[b.summary() for b in conflicts] or None,
    )


def check_advanced_availability(
    repo: BookingRepository,
    property_id: str,
    requested: DateRange,
    exclude_booking_id: str | None = None,
    grace_period_hours: float | None = None,
    suggest_alternatives: bool = True,
    settings: Settings | None = None,
) -> AdvancedAvailabilityResult:
    """Classify conflicts, flag grace-period violations and propose alternatives.

    Candidates are fetched from the requested range widened by the configured
    search window on both sides; suggestions never leave that window.
    """
    settings = settings or get_settings()
    if grace_period_hours is None:
        grace_period_hours = settings.default_grace_period_hours
    if not 0 <= grace_period_hours <= settings.max_grace_period_hours:
        raise ValueError(
            f"grace_period_hours must be between 0 and {settings.max_grace_period_hours}"
        )
    grace_period = timedelta(hours=grace_period_hours)

    window = requested.widen(timedelta(days=settings.search_window_days))
    candidates = repo.find(
        BookingQuery.active(
            property_id,
            window,
            window_mode=WindowMode.INCLUSIVE,
            exclude_booking_id=exclude_booking_id,
        )
    )

    conflicts = annotate_conflicts(requested, candidates)
    violations = find_grace_period_violations(requested, candidates, grace_period)

    suggestions: list[BookingAlternative] = []
    if suggest_alternatives and conflicts:
        suggestions = suggest_alternative_ranges(
            requested,
            candidates,
            window,
            grace_period,
            limit=settings.max_suggestions,
        )

    available = not any(c.severity == Severity.BLOCKING for c in conflicts)
    logger.debug(
        "Advanced availability for property %s: %d candidate(s), %d conflict(s), "
        "%d violation(s), %d suggestion(s), available=%s",
        property_id,
        len(candidates),
        len(conflicts),
        len(violations),
        len(suggestions),
        available,
    )
    return AdvancedAvailabilityResult(
        available=available,
        conflicts=conflicts or None,
        suggestions=suggestions or None,
        grace_period_violations=violations or None,
    )


def find_grace_period_violations(
    requested: DateRange,
    bookings: list[Booking],
    grace_period: timedelta,
) -> list[GracePeriodViolation]:
    """Flag bookings that sit closer than ``grace_period`` to ``requested``.

    A booking ending shortly before the request is tagged ``after``; one
    starting shortly after the request is tagged ``before``. Both bounds are
    strict, so back-to-back and overlapping bookings are never reported here.
    """
    violations: list[GracePeriodViolation] = []
    for booking in bookings:
        before_gap = requested.start - booking.end_date
        after_gap = booking.start_date - requested.end

        if timedelta(0) < before_gap < grace_period:
            violations.append(
                GracePeriodViolation(
                    booking_id=booking.id,
                    hours=_round_hours(before_gap),
                    type=GracePeriodDirection.AFTER,
                )
            )

        if timedelta(0) < after_gap < grace_period:
            violations.append(
                GracePeriodViolation(
                    booking_id=booking.id,
                    hours=_round_hours(after_gap),
                    type=GracePeriodDirection.BEFORE,
                )
            )
    return violations


def suggest_alternative_ranges(
    requested: DateRange,
    bookings: list[Booking],
    window: DateRange,
    grace_period: timedelta,
    limit: int = 5,
) -> list[BookingAlternative]:
    """Propose ranges of the requested length that keep the grace period.

    ``bookings`` must be sorted by start. Gaps between consecutive bookings come
    first (high confidence), then a slot before the first booking and one after
    the last (medium confidence), each only if it fits inside ``window``.
    """
    duration = requested.duration
    suggestions: list[BookingAlternative] = []

    for current, following in zip(bookings, bookings[1:]):
        gap_start = current.end_date + grace_period
        gap_end = following.start_date - grace_period
        if gap_end - gap_start >= duration:
            suggestions.append(
                BookingAlternative(
                    start_date=gap_start,
                    end_date=gap_start + duration,
                    reason=(
                        f"Available between {current.display_label} "
                        f"and {following.display_label}"
                    ),
                    confidence=Confidence.HIGH,
                )
            )

    if bookings:
        first = bookings[0]
        before_end = first.start_date - grace_period
        before_start = before_end - duration
        if before_start >= window.start:
            suggestions.append(
                BookingAlternative(
                    start_date=before_start,
                    end_date=before_end,
                    reason=f"Available before {first.display_label}",
                    confidence=Confidence.MEDIUM,
                )
            )

        last = bookings[-1]
        after_start = last.end_date + grace_period
        after_end = after_start + duration
        if after_end <= window.end:
            suggestions.append(
                BookingAlternative(
                    start_date=after_start,
                    end_date=after_end,
                    reason=f"Available after {last.display_label}",
                    confidence=Confidence.MEDIUM,
                )
            )

    return suggestions[:limit]


def _round_hours(gap: timedelta) -> float:
    hours = Decimal(str(gap / _ONE_HOUR))
    return float(hours.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
