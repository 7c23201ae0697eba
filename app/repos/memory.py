"""In-memory repositories for properties and bookings."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from threading import Lock, RLock

from app.domain.errors import BookingOverlapError
from app.domain.models import Booking, BookingStatus, BookingType, DateRange, Property
from app.utils.logger import get_logger

logger = get_logger(__name__)


class WindowMode(StrEnum):
    # Half-open [start, end): touching bookings are excluded.
    OVERLAP = "overlap"
    # Closed [start, end]: bookings touching either edge are included.
    INCLUSIVE = "inclusive"


@dataclass(frozen=True)
class BookingQuery:
    """Typed filter for booking lookups."""

    property_id: str
    window: DateRange | None = None
    window_mode: WindowMode = WindowMode.OVERLAP
    exclude_booking_id: str | None = None
    statuses: frozenset[BookingStatus] | None = None
    exclude_statuses: frozenset[BookingStatus] = field(default_factory=frozenset)
    types: frozenset[BookingType] | None = None
    search: str | None = None
    sort_by: str = "start_date"
    descending: bool = False

    @classmethod
    def active(
        cls,
        property_id: str,
        window: DateRange,
        *,
        window_mode: WindowMode = WindowMode.OVERLAP,
        exclude_booking_id: str | None = None,
    ) -> BookingQuery:
        """Non-cancelled bookings of a property intersecting ``window``."""
        return cls(
            property_id=property_id,
            window=window,
            window_mode=window_mode,
            exclude_booking_id=exclude_booking_id,
            exclude_statuses=frozenset({BookingStatus.CANCELLED}),
        )

    def matches(self, booking: Booking) -> bool:
        if booking.property_id != self.property_id:
            return False
        if self.exclude_booking_id is not None and booking.id == self.exclude_booking_id:
            return False
        if booking.status in self.exclude_statuses:
            return False
        if self.statuses is not None and booking.status not in self.statuses:
            return False
        if self.types is not None and booking.type not in self.types:
            return False
        if self.window is not None and not self._in_window(booking):
            return False
        if self.search and not self._matches_search(booking):
            return False
        return True

    def _in_window(self, booking: Booking) -> bool:
        ws, we = self.window.start, self.window.end
        bs, be = booking.start_date, booking.end_date
        if self.window_mode is WindowMode.INCLUSIVE:
            return (
                ws <= bs <= we
                or ws <= be <= we
                or (bs <= ws and be >= we)
            )
        # starts inside, ends inside, or encompasses the window
        return (
            ws <= bs < we
            or ws < be <= we
            or (bs <= ws and be >= we)
        )

    def _matches_search(self, booking: Booking) -> bool:
        needle = self.search.lower()
        haystack = (
            booking.guest_name,
            booking.guest_email,
            booking.guest_phone,
            booking.notes,
            booking.external_id,
        )
        return any(value and needle in value.lower() for value in haystack)


class PropertyRepository:
    """Dict-backed store for Property instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Property] = {}

    def add(self, prop: Property) -> None:
        self._store[prop.id] = prop

    def get(self, property_id: str) -> Property | None:
        return self._store.get(property_id)

    def list_all(self) -> list[Property]:
        return list(self._store.values())


class BookingRepository:
    """Dict-backed store for Booking instances with a per-property write guard.

    Writes of non-cancelled bookings are re-checked for overlap while the
    property's lock is held, so two writers can never both land overlapping
    ranges on the same property. The dict itself is shared by every property
    and is only touched under ``_store_lock``.
    """

    def __init__(self) -> None:
        self._store: dict[str, Booking] = {}
        self._locks: dict[str, RLock] = {}
        self._locks_guard = Lock()
        self._store_lock = Lock()

    def _lock_for(self, property_id: str) -> RLock:
        with self._locks_guard:
            lock = self._locks.get(property_id)
            if lock is None:
                lock = RLock()
                self._locks[property_id] = lock
            return lock

    @contextmanager
    def transaction(self, property_id: str) -> Iterator[BookingRepository]:
        """Serialize writers for one property; roll back its bookings on error."""
        with self._lock_for(property_id):
            snapshot = {b.id: b for b in self._bookings_of(property_id)}
            try:
                yield self
            except Exception:
                with self._store_lock:
                    for bid in [
                        bid
                        for bid, b in self._store.items()
                        if b.property_id == property_id
                    ]:
                        del self._store[bid]
                    self._store.update(snapshot)
                logger.warning("Rolled back booking writes for property %s", property_id)
                raise

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, booking_id: str) -> Booking | None:
        return self._store.get(booking_id)

    def list_all(self) -> list[Booking]:
        with self._store_lock:
            return list(self._store.values())

    def _bookings_of(self, property_id: str) -> list[Booking]:
        return [b for b in self.list_all() if b.property_id == property_id]

    def find(self, query: BookingQuery) -> list[Booking]:
        found = [b for b in self.list_all() if query.matches(b)]
        found.sort(
            key=lambda b: (getattr(b, query.sort_by) is None, getattr(b, query.sort_by) or ""),
            reverse=query.descending,
        )
        return found

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, booking: Booking) -> None:
        with self._lock_for(booking.property_id):
            self._guard_overlap(booking)
            with self._store_lock:
                self._store[booking.id] = booking

    def update(self, booking: Booking) -> None:
        with self._lock_for(booking.property_id):
            if self.get(booking.id) is None:
                raise KeyError(booking.id)
            self._guard_overlap(booking)
            with self._store_lock:
                self._store[booking.id] = booking

    def delete(self, booking_id: str) -> Booking | None:
        booking = self.get(booking_id)
        if booking is None:
            return None
        with self._lock_for(booking.property_id), self._store_lock:
            return self._store.pop(booking_id, None)

    def _guard_overlap(self, booking: Booking) -> None:
        if booking.status == BookingStatus.CANCELLED:
            return
        clashes = self.find(
            BookingQuery.active(
                booking.property_id,
                booking.date_range,
                exclude_booking_id=booking.id,
            )
        )
        if clashes:
            raise BookingOverlapError(
                f"Booking {booking.id} overlaps {len(clashes)} existing booking(s)",
                conflicts=[c.summary() for c in clashes],
            )
