"""Tests for booking writes, bulk import, listing, statistics and the store guard."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from app.domain.errors import (
    BookingConflictError,
    BookingNotFoundError,
    BookingOverlapError,
    InvalidDateRangeError,
    PropertyNotFoundError,
)
from app.domain.models import (
    Booking,
    BookingSource,
    BookingStatus,
    BookingType,
    CreateBookingRequest,
    DateRange,
    ImportBookingRow,
    ImportBookingsRequest,
    Property,
    UpdateBookingRequest,
    format_booking_display,
)
from app.repos.memory import BookingRepository, PropertyRepository
from app.services.bookings import (
    create_booking,
    delete_booking,
    get_booking_stats,
    import_bookings,
    list_bookings,
    update_booking,
)


def _dt(month: int, day: int, hour: int = 0) -> datetime:
    return datetime(2026, month, day, hour, tzinfo=timezone.utc)


@pytest.fixture()
def env():
    """Fresh repositories with one property."""
    property_repo = PropertyRepository()
    booking_repo = BookingRepository()
    prop = Property(name="Villa Azul", address="Ibiza")
    property_repo.add(prop)

    class Env:
        pass

    e = Env()
    e.property_repo = property_repo
    e.booking_repo = booking_repo
    e.prop = prop
    return e


def _blocked(start: datetime, end: datetime, **extra) -> CreateBookingRequest:
    return CreateBookingRequest(
        type=BookingType.BLOCKED, start_date=start, end_date=end, **extra
    )


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------


def test_guest_booking_requires_name_and_email():
    with pytest.raises(ValueError):
        CreateBookingRequest(
            type=BookingType.CONFIRMED, start_date=_dt(7, 1), end_date=_dt(7, 5)
        )
    with pytest.raises(ValueError):
        CreateBookingRequest(
            type=BookingType.CONTRACT,
            start_date=_dt(7, 1),
            end_date=_dt(7, 5),
            guest_name="Jane",
            guest_email="not-an-email",
        )


def test_owner_booking_needs_no_guest():
    request = CreateBookingRequest(
        type=BookingType.OWNER_STAY, start_date=_dt(7, 1), end_date=_dt(7, 5)
    )
    assert request.guest_name is None


def test_naive_datetimes_become_utc():
    naive = datetime(2026, 7, 1)
    request = _blocked(naive, _dt(7, 5))
    update = UpdateBookingRequest(end_date=datetime(2026, 7, 6))

    assert request.start_date == _dt(7, 1)
    assert request.start_date.tzinfo is timezone.utc
    assert update.end_date.tzinfo is timezone.utc
    assert DateRange(start=naive, end=_dt(7, 2)).duration.days == 1


def test_format_booking_display():
    assert format_booking_display(BookingType.OWNER_STAY, "Ignored") == "Owner Stay"
    assert format_booking_display(BookingType.MAINTENANCE) == "Property Maintenance"
    assert format_booking_display(BookingType.CONFIRMED, "Jane") == "Jane"
    assert format_booking_display(BookingType.TENTATIVE) == "Tentative Booking"


# ---------------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------------


def test_create_booking_stores_it(env):
    booking = create_booking(
        env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(7, 1), _dt(7, 5))
    )
    assert env.booking_repo.get(booking.id) == booking
    assert booking.source == BookingSource.MANUAL


def test_create_booking_unknown_property(env):
    with pytest.raises(PropertyNotFoundError):
        create_booking(
            env.property_repo, env.booking_repo, "missing", _blocked(_dt(7, 1), _dt(7, 5))
        )


def test_create_booking_conflict_carries_conflicts(env):
    first = create_booking(
        env.property_repo,
        env.booking_repo,
        env.prop.id,
        CreateBookingRequest(
            type=BookingType.CONFIRMED,
            start_date=_dt(7, 1),
            end_date=_dt(7, 5),
            guest_name="Jane",
            guest_email="jane@example.com",
        ),
    )

    with pytest.raises(BookingConflictError) as excinfo:
        create_booking(
            env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(7, 3), _dt(7, 8))
        )

    assert [c.id for c in excinfo.value.conflicts] == [first.id]
    assert "Jane" in str(excinfo.value)
    assert len(env.booking_repo.list_all()) == 1


def test_cancelled_booking_can_be_created_over_others(env):
    create_booking(
        env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(7, 1), _dt(7, 5))
    )
    cancelled = create_booking(
        env.property_repo,
        env.booking_repo,
        env.prop.id,
        _blocked(_dt(7, 2), _dt(7, 4), status=BookingStatus.CANCELLED),
    )
    assert cancelled.status == BookingStatus.CANCELLED


def test_update_booking_can_move_over_its_own_range(env):
    booking = create_booking(
        env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(7, 1), _dt(7, 5))
    )

    updated = update_booking(
        env.booking_repo,
        booking.id,
        UpdateBookingRequest(start_date=_dt(7, 3), end_date=_dt(7, 8)),
    )

    assert updated.start_date == _dt(7, 3)
    assert updated.updated_at is not None
    assert env.booking_repo.get(booking.id).end_date == _dt(7, 8)


def test_update_booking_into_conflict_rejected(env):
    create_booking(
        env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(7, 10), _dt(7, 12))
    )
    booking = create_booking(
        env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(7, 1), _dt(7, 5))
    )

    with pytest.raises(BookingConflictError):
        update_booking(
            env.booking_repo, booking.id, UpdateBookingRequest(end_date=_dt(7, 11))
        )

    assert env.booking_repo.get(booking.id).end_date == _dt(7, 5)


def test_update_booking_inverted_range_rejected(env):
    booking = create_booking(
        env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(7, 5), _dt(7, 9))
    )
    with pytest.raises(InvalidDateRangeError):
        update_booking(
            env.booking_repo, booking.id, UpdateBookingRequest(end_date=_dt(7, 2))
        )


def test_reactivating_cancelled_booking_checks_availability(env):
    cancelled = create_booking(
        env.property_repo,
        env.booking_repo,
        env.prop.id,
        _blocked(_dt(7, 1), _dt(7, 5), status=BookingStatus.CANCELLED),
    )
    create_booking(
        env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(7, 2), _dt(7, 3))
    )

    with pytest.raises(BookingConflictError):
        update_booking(
            env.booking_repo,
            cancelled.id,
            UpdateBookingRequest(status=BookingStatus.CONFIRMED),
        )


def test_update_and_delete_unknown_booking(env):
    with pytest.raises(BookingNotFoundError):
        update_booking(env.booking_repo, "missing", UpdateBookingRequest(notes="x"))
    with pytest.raises(BookingNotFoundError):
        delete_booking(env.booking_repo, "missing")


def test_delete_booking_frees_range(env):
    booking = create_booking(
        env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(7, 1), _dt(7, 5))
    )
    delete_booking(env.booking_repo, booking.id)
    again = create_booking(
        env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(7, 1), _dt(7, 5))
    )
    assert env.booking_repo.list_all() == [again]


# ---------------------------------------------------------------------------
# Store guard
# ---------------------------------------------------------------------------


def test_repository_rejects_overlapping_write():
    repo = BookingRepository()
    repo.add(
        Booking(
            property_id="p", type=BookingType.BLOCKED, start_date=_dt(7, 1), end_date=_dt(7, 5)
        )
    )
    with pytest.raises(BookingOverlapError):
        repo.add(
            Booking(
                property_id="p",
                type=BookingType.OWNER,
                start_date=_dt(7, 4),
                end_date=_dt(7, 6),
            )
        )


def test_transaction_rolls_back_on_error():
    repo = BookingRepository()
    kept = Booking(
        property_id="p", type=BookingType.BLOCKED, start_date=_dt(7, 1), end_date=_dt(7, 2)
    )
    repo.add(kept)

    with pytest.raises(RuntimeError):
        with repo.transaction("p"):
            repo.add(
                Booking(
                    property_id="p",
                    type=BookingType.BLOCKED,
                    start_date=_dt(7, 3),
                    end_date=_dt(7, 4),
                )
            )
            raise RuntimeError("boom")

    assert repo.list_all() == [kept]


def test_concurrent_creates_cannot_double_book(env):
    def attempt(_):
        try:
            create_booking(
                env.property_repo,
                env.booking_repo,
                env.prop.id,
                _blocked(_dt(8, 1), _dt(8, 8)),
            )
            return True
        except BookingConflictError:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(16)))

    assert outcomes.count(True) == 1
    assert len(env.booking_repo.list_all()) == 1


def test_concurrent_writes_to_two_properties(env):
    other = Property(name="Casa Verde", address="Lisbon")
    env.property_repo.add(other)
    properties = [env.prop.id, other.id]

    def attempt(n: int) -> None:
        start = _dt(9, 1) + timedelta(hours=2 * (n // 2))
        create_booking(
            env.property_repo,
            env.booking_repo,
            properties[n % 2],
            _blocked(start, start + timedelta(hours=1)),
        )
        if n % 10 == 0:
            with pytest.raises(RuntimeError):
                with env.booking_repo.transaction(properties[n % 2]):
                    raise RuntimeError("abort")

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(attempt, range(400)))

    for property_id in properties:
        page = list_bookings(env.booking_repo, property_id, limit=1000)
        assert page.total == 200


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def test_import_checks_rows_against_store_and_batch(env):
    create_booking(
        env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(7, 20), _dt(7, 25))
    )
    request = ImportBookingsRequest(
        bookings=[
            ImportBookingRow(type=BookingType.BLOCKED, start_date=_dt(7, 1), end_date=_dt(7, 3)),
            ImportBookingRow(type=BookingType.BLOCKED, start_date=_dt(7, 2), end_date=_dt(7, 4)),
            ImportBookingRow(type=BookingType.OWNER, start_date=_dt(7, 22), end_date=_dt(7, 23)),
            ImportBookingRow(
                type=BookingType.CONFIRMED,
                start_date=_dt(7, 10),
                end_date=_dt(7, 14),
                guest_name="Omar",
            ),
        ]
    )

    result = import_bookings(env.property_repo, env.booking_repo, env.prop.id, request)

    assert result.imported == 2
    assert result.failed == 2
    assert result.errors == [
        "Booking 2: Conflicts with existing bookings (2026-07-02 to 2026-07-04)",
        "Booking 3: Conflicts with existing bookings (2026-07-22 to 2026-07-23)",
    ]
    imported = [b for b in env.booking_repo.list_all() if b.source == BookingSource.IMPORT]
    assert len(imported) == 2
    assert all(b.status == BookingStatus.CONFIRMED for b in imported)


def test_import_unknown_property(env):
    request = ImportBookingsRequest(
        bookings=[
            ImportBookingRow(type=BookingType.BLOCKED, start_date=_dt(7, 1), end_date=_dt(7, 3))
        ]
    )
    with pytest.raises(PropertyNotFoundError):
        import_bookings(env.property_repo, env.booking_repo, "missing", request)


def test_import_request_size_limits():
    with pytest.raises(ValueError):
        ImportBookingsRequest(bookings=[])


# ---------------------------------------------------------------------------
# Listing and statistics
# ---------------------------------------------------------------------------


def test_list_bookings_filters_and_paginates(env):
    for day in (1, 5, 9, 13):
        create_booking(
            env.property_repo,
            env.booking_repo,
            env.prop.id,
            _blocked(_dt(7, day), _dt(7, day + 2), notes=f"note {day}"),
        )
    create_booking(
        env.property_repo,
        env.booking_repo,
        env.prop.id,
        CreateBookingRequest(
            type=BookingType.TENTATIVE,
            status=BookingStatus.PENDING,
            start_date=_dt(7, 20),
            end_date=_dt(7, 22),
            guest_name="Kai Tanaka",
            guest_email="kai@example.com",
        ),
    )

    page = list_bookings(env.booking_repo, env.prop.id, page=1, limit=2)
    assert page.total == 5
    assert page.pages == 3
    assert [b.start_date for b in page.bookings] == [_dt(7, 20), _dt(7, 13)]

    ascending = list_bookings(env.booking_repo, env.prop.id, descending=False, limit=1)
    assert ascending.bookings[0].start_date == _dt(7, 1)

    pending = list_bookings(env.booking_repo, env.prop.id, statuses=[BookingStatus.PENDING])
    assert [b.guest_name for b in pending.bookings] == ["Kai Tanaka"]

    searched = list_bookings(env.booking_repo, env.prop.id, search="TANAKA")
    assert searched.total == 1

    windowed = list_bookings(
        env.booking_repo, env.prop.id, start_date=_dt(7, 6), end_date=_dt(7, 10)
    )
    assert sorted(b.start_date for b in windowed.bookings) == [_dt(7, 5), _dt(7, 9)]


def test_booking_stats(env):
    create_booking(
        env.property_repo, env.booking_repo, env.prop.id, _blocked(_dt(6, 28), _dt(7, 3))
    )
    create_booking(
        env.property_repo,
        env.booking_repo,
        env.prop.id,
        CreateBookingRequest(
            type=BookingType.CONFIRMED,
            start_date=_dt(7, 10),
            end_date=_dt(7, 15),
            guest_name="Jane",
            guest_email="jane@example.com",
            total_amount=500,
        ),
    )
    create_booking(
        env.property_repo,
        env.booking_repo,
        env.prop.id,
        _blocked(_dt(7, 20), _dt(7, 22), status=BookingStatus.PENDING),
    )

    stats = get_booking_stats(
        env.booking_repo, env.prop.id, DateRange(start=_dt(7, 1), end=_dt(7, 31))
    )

    assert stats.total_bookings == 2
    assert stats.total_nights == 7
    assert stats.occupancy_rate == 23.33
    assert stats.bookings_by_type == {"blocked": 1, "confirmed": 1}
    assert stats.total_revenue == 500
    assert stats.average_stay_length == 5.0


def test_booking_stats_empty_period(env):
    stats = get_booking_stats(
        env.booking_repo, env.prop.id, DateRange(start=_dt(7, 1), end=_dt(7, 31))
    )
    assert stats.total_bookings == 0
    assert stats.occupancy_rate == 0
    assert stats.average_stay_length == 0
