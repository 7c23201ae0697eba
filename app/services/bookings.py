"""Booking write and reporting operations built on the availability checks."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from dateutil.rrule import DAILY, rrule

from app.domain.errors import (
    BookingConflictError,
    BookingNotFoundError,
    InvalidDateRangeError,
    PropertyNotFoundError,
)
from app.domain.models import (
    Booking,
    BookingImportResult,
    BookingPage,
    BookingSource,
    BookingStatistics,
    BookingStatus,
    BookingSummary,
    BookingType,
    CreateBookingRequest,
    DateRange,
    ImportBookingsRequest,
    Property,
    UpdateBookingRequest,
    format_booking_display,
)
from app.repos.memory import (
    BookingQuery,
    BookingRepository,
    PropertyRepository,
    WindowMode,
)
from app.services.availability import check_availability
from app.services.conflicts import find_conflicts
from app.utils.logger import get_logger

logger = get_logger(__name__)


def _require_property(property_repo: PropertyRepository, property_id: str) -> Property:
    prop = property_repo.get(property_id)
    if prop is None:
        raise PropertyNotFoundError(f"Property {property_id} not found")
    return prop


def _conflict_message(conflicts: list[BookingSummary]) -> str:
    return "Booking conflicts with existing bookings: " + ", ".join(
        format_booking_display(c.type, c.guest_name) for c in conflicts
    )


def create_booking(
    property_repo: PropertyRepository,
    booking_repo: BookingRepository,
    property_id: str,
    request: CreateBookingRequest,
) -> Booking:
    """Create a booking after checking the property is free for its dates."""
    prop = _require_property(property_repo, property_id)
    booking = Booking(property_id=prop.id, **request.model_dump())

    with booking_repo.transaction(prop.id):
        if booking.status != BookingStatus.CANCELLED:
            check = check_availability(booking_repo, prop.id, booking.date_range)
            if not check.available:
                logger.warning(
                    "Rejected %s booking for property %s: %d conflict(s)",
                    booking.type,
                    prop.id,
                    len(check.conflicts),
                )
                raise BookingConflictError(
                    _conflict_message(check.conflicts), conflicts=check.conflicts
                )
        booking_repo.add(booking)

    logger.info("Created %s booking %s for property %s", booking.type, booking.id, prop.id)
    return booking


def update_booking(
    booking_repo: BookingRepository,
    booking_id: str,
    request: UpdateBookingRequest,
) -> Booking:
    """Apply a partial update, re-checking availability when dates change.

    The booking being edited is excluded from its own availability check.
    """
    existing = booking_repo.get(booking_id)
    if existing is None:
        raise BookingNotFoundError(f"Booking {booking_id} not found")

    changes = request.model_dump(exclude_unset=True)
    start = changes.get("start_date", existing.start_date)
    end = changes.get("end_date", existing.end_date)
    if end <= start:
        raise InvalidDateRangeError("end date must be after start date")

    updated = Booking.model_validate(
        {
            **existing.model_dump(),
            **changes,
            "updated_at": datetime.now(timezone.utc),
        }
    )

    with booking_repo.transaction(existing.property_id):
        dates_changed = "start_date" in changes or "end_date" in changes
        reactivated = (
            existing.status == BookingStatus.CANCELLED
            and updated.status != BookingStatus.CANCELLED
        )
        if (dates_changed or reactivated) and updated.status != BookingStatus.CANCELLED:
            check = check_availability(
                booking_repo,
                existing.property_id,
                updated.date_range,
                exclude_booking_id=booking_id,
            )
            if not check.available:
                logger.warning(
                    "Rejected update of booking %s: %d conflict(s)",
                    booking_id,
                    len(check.conflicts),
                )
                raise BookingConflictError(
                    _conflict_message(check.conflicts), conflicts=check.conflicts
                )
        booking_repo.update(updated)

    logger.info("Updated booking %s", booking_id)
    return updated


def delete_booking(booking_repo: BookingRepository, booking_id: str) -> Booking:
    removed = booking_repo.delete(booking_id)
    if removed is None:
        raise BookingNotFoundError(f"Booking {booking_id} not found")
    logger.info("Deleted %s booking %s", removed.type, booking_id)
    return removed


def import_bookings(
    property_repo: PropertyRepository,
    booking_repo: BookingRepository,
    property_id: str,
    request: ImportBookingsRequest,
) -> BookingImportResult:
    """Import a batch of bookings for one property.

    Each row is checked against the stored bookings and against every row
    accepted earlier in the same batch. Rejected rows are reported by position;
    accepted rows are written under a single property transaction, so either
    all of them land or none do.
    """
    prop = _require_property(property_repo, property_id)
    errors: list[str] = []
    accepted: list[Booking] = []

    with booking_repo.transaction(prop.id):
        for index, row in enumerate(request.bookings, start=1):
            candidate = Booking(
                property_id=prop.id,
                status=BookingStatus.CONFIRMED,
                source=BookingSource.IMPORT,
                **row.model_dump(),
            )
            check = check_availability(booking_repo, prop.id, candidate.date_range)
            if not check.available or find_conflicts(candidate.date_range, accepted):
                errors.append(
                    f"Booking {index}: Conflicts with existing bookings "
                    f"({candidate.start_date.date().isoformat()} to "
                    f"{candidate.end_date.date().isoformat()})"
                )
                continue
            accepted.append(candidate)

        for booking in accepted:
            booking_repo.add(booking)

    logger.info(
        "Imported %d booking(s) for property %s (%s), %d failed",
        len(accepted),
        prop.id,
        prop.name,
        len(errors),
    )
    return BookingImportResult(
        imported=len(accepted),
        failed=len(errors),
        errors=errors or None,
    )


def list_bookings(
    booking_repo: BookingRepository,
    property_id: str,
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    types: list[BookingType] | None = None,
    statuses: list[BookingStatus] | None = None,
    search: str | None = None,
    sort_by: str = "start_date",
    descending: bool = True,
    page: int = 1,
    limit: int = 50,
) -> BookingPage:
    """Filter, sort and paginate a property's bookings."""
    window = None
    if start_date is not None or end_date is not None:
        window = DateRange(
            start=start_date or datetime.min.replace(tzinfo=(end_date or start_date).tzinfo),
            end=end_date or datetime.max.replace(tzinfo=(start_date or end_date).tzinfo),
        )
    query = BookingQuery(
        property_id=property_id,
        window=window,
        window_mode=WindowMode.INCLUSIVE,
        statuses=frozenset(statuses) if statuses else None,
        types=frozenset(types) if types else None,
        search=search or None,
        sort_by=sort_by,
        descending=descending,
    )
    found = booking_repo.find(query)
    total = len(found)
    offset = (page - 1) * limit
    return BookingPage(
        bookings=found[offset : offset + limit],
        total=total,
        pages=math.ceil(total / limit),
    )


def _nights(start: datetime, end: datetime) -> int:
    """Nights touched by ``[start, end)``, counting a partial day as a night.

    rrule works at second resolution, so both ends are truncated first.
    """
    start, end = start.replace(microsecond=0), end.replace(microsecond=0)
    if end <= start:
        return 0
    return rrule(DAILY, dtstart=start, until=end - timedelta(seconds=1)).count()


def get_booking_stats(
    booking_repo: BookingRepository,
    property_id: str,
    period: DateRange,
) -> BookingStatistics:
    """Occupancy and revenue figures for confirmed bookings within ``period``."""
    bookings = booking_repo.find(
        BookingQuery(
            property_id=property_id,
            window=period,
            window_mode=WindowMode.INCLUSIVE,
            statuses=frozenset({BookingStatus.CONFIRMED}),
        )
    )

    total_nights = 0
    total_revenue = 0.0
    by_type: dict[str, int] = {}
    stay_lengths: list[int] = []
    for booking in bookings:
        clipped_start = max(booking.start_date, period.start)
        clipped_end = min(booking.end_date, period.end)
        total_nights += _nights(clipped_start, clipped_end)
        total_revenue += booking.total_amount or 0
        by_type[booking.type.value] = by_type.get(booking.type.value, 0) + 1
        stay_lengths.append(_nights(booking.start_date, booking.end_date))

    possible_nights = _nights(period.start, period.end)
    occupancy = (total_nights / possible_nights) * 100 if possible_nights else 0.0
    average_stay = sum(stay_lengths) / len(stay_lengths) if stay_lengths else 0.0

    return BookingStatistics(
        total_bookings=len(bookings),
        total_nights=total_nights,
        occupancy_rate=round(occupancy, 2),
        bookings_by_type=by_type,
        total_revenue=total_revenue,
        average_stay_length=round(average_stay, 2),
    )
