"""Domain models for the property booking service."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum

from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field, model_validator

from app.domain.errors import InvalidDateRangeError

try:
    from enum import StrEnum
except ImportError:  # pragma: no cover - fallback for older Python runtimes

    class StrEnum(str, Enum):
        pass


class BookingType(StrEnum):
    CONFIRMED = "confirmed"
    TENTATIVE = "tentative"
    CONTRACT = "contract"
    OWNER = "owner"
    OWNER_STAY = "owner_stay"
    MAINTENANCE = "maintenance"
    BLOCKED = "blocked"


class BookingStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class BookingSource(StrEnum):
    MANUAL = "manual"
    IMPORT = "import"
    EXTERNAL = "external"


class ConflictType(StrEnum):
    OVERLAP = "overlap"
    ADJACENT = "adjacent"
    ENCOMPASSING = "encompassing"
    ENCOMPASSED = "encompassed"


class Severity(StrEnum):
    BLOCKING = "blocking"
    WARNING = "warning"
    INFO = "info"


class Confidence(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"


class GracePeriodDirection(StrEnum):
    BEFORE = "before"
    AFTER = "after"


_EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

GUEST_BOOKING_TYPES = frozenset(
    {BookingType.CONFIRMED, BookingType.TENTATIVE, BookingType.CONTRACT}
)

_TYPE_LABELS = {
    BookingType.CONTRACT: "Contract Booking",
    BookingType.OWNER: "Owner",
    BookingType.OWNER_STAY: "Owner Stay",
    BookingType.MAINTENANCE: "Property Maintenance",
    BookingType.BLOCKED: "Blocked",
    BookingType.CONFIRMED: "Confirmed Booking",
    BookingType.TENTATIVE: "Tentative Booking",
}


def requires_guest_fields(booking_type: BookingType) -> bool:
    return booking_type in GUEST_BOOKING_TYPES


def format_booking_display(booking_type: BookingType, guest_name: str | None = None) -> str:
    """Human-readable label for a booking, as shown on the calendar.

    Owner, maintenance and blocked periods always use their fixed label; guest
    bookings prefer the guest's name.
    """
    if booking_type in (
        BookingType.OWNER,
        BookingType.OWNER_STAY,
        BookingType.MAINTENANCE,
        BookingType.BLOCKED,
    ):
        return _TYPE_LABELS[booking_type]
    return guest_name or _TYPE_LABELS.get(booking_type, "Booking")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so they compare with stored ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


def _new_id() -> str:
    return str(uuid.uuid4())


def _check_range(start: datetime | None, end: datetime | None) -> None:
    if start is not None and end is not None and end <= start:
        raise InvalidDateRangeError("end date must be after start date")


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class DateRange(BaseModel):
    """Half-open interval ``[start, end)``."""

    start: UtcDatetime
    end: UtcDatetime

    @model_validator(mode="after")
    def _end_after_start(self) -> DateRange:
        _check_range(self.start, self.end)
        return self

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def widen(self, delta: timedelta) -> DateRange:
        return DateRange(start=self.start - delta, end=self.end + delta)


class Property(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str = Field(min_length=1, max_length=255)
    address: str | None = None


class Booking(BaseModel):
    id: str = Field(default_factory=_new_id)
    property_id: str
    type: BookingType
    status: BookingStatus = BookingStatus.CONFIRMED
    source: BookingSource = BookingSource.MANUAL
    start_date: UtcDatetime
    end_date: UtcDatetime
    guest_name: str | None = None
    guest_email: str | None = None
    guest_phone: str | None = None
    number_of_guests: int | None = None
    total_amount: float | None = None
    notes: str | None = None
    external_id: str | None = None
    created_at: UtcDatetime = Field(default_factory=_utcnow)
    updated_at: UtcDatetime | None = None

    @model_validator(mode="after")
    def _end_after_start(self) -> Booking:
        _check_range(self.start_date, self.end_date)
        return self

    @property
    def date_range(self) -> DateRange:
        return DateRange(start=self.start_date, end=self.end_date)

    @property
    def display_label(self) -> str:
        """Guest name when present, otherwise the booking type."""
        return self.guest_name or self.type.value

    def summary(self) -> BookingSummary:
        return BookingSummary(
            id=self.id,
            type=self.type,
            start_date=self.start_date,
            end_date=self.end_date,
            guest_name=self.guest_name,
        )


class BookingSummary(BaseModel):
    """Minimal projection of a booking returned by availability checks."""

    id: str
    type: BookingType
    start_date: UtcDatetime
    end_date: UtcDatetime
    guest_name: str | None = None


# ---------------------------------------------------------------------------
# Availability analysis
# ---------------------------------------------------------------------------


class ConflictAnalysis(BaseModel):
    has_conflict: bool
    severity: Severity
    conflict_type: ConflictType


class BookingConflict(BookingSummary):
    severity: Severity
    conflict_type: ConflictType


class GracePeriodViolation(BaseModel):
    booking_id: str
    hours: float
    type: GracePeriodDirection


class BookingAlternative(BaseModel):
    start_date: UtcDatetime
    end_date: UtcDatetime
    reason: str
    confidence: Confidence


class BasicAvailabilityResult(BaseModel):
    available: bool
    conflicts: list[BookingSummary] | None = None


class AdvancedAvailabilityResult(BaseModel):
    available: bool
    conflicts: list[BookingConflict] | None = None
    suggestions: list[BookingAlternative] | None = None
    grace_period_violations: list[GracePeriodViolation] | None = None


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class CreatePropertyRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    address: str | None = None


class CheckAvailabilityRequest(BaseModel):
    start_date: UtcDatetime
    end_date: UtcDatetime
    exclude_booking_id: str | None = None

    @model_validator(mode="after")
    def _end_after_start(self) -> CheckAvailabilityRequest:
        _check_range(self.start_date, self.end_date)
        return self

    @property
    def date_range(self) -> DateRange:
        return DateRange(start=self.start_date, end=self.end_date)


class AdvancedAvailabilityRequest(CheckAvailabilityRequest):
    grace_period_hours: float | None = Field(default=None, ge=0, le=48)
    suggest_alternatives: bool = True


class CreateBookingRequest(BaseModel):
    type: BookingType
    status: BookingStatus = BookingStatus.CONFIRMED
    source: BookingSource = BookingSource.MANUAL
    start_date: UtcDatetime
    end_date: UtcDatetime
    guest_name: str | None = Field(default=None, max_length=255)
    guest_email: str | None = Field(default=None, pattern=_EMAIL_PATTERN)
    guest_phone: str | None = Field(default=None, max_length=50)
    number_of_guests: int | None = Field(default=None, ge=1)
    total_amount: float | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)
    external_id: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _validate(self) -> CreateBookingRequest:
        _check_range(self.start_date, self.end_date)
        if requires_guest_fields(self.type):
            if not (self.guest_name and self.guest_name.strip()):
                raise ValueError("guest_name is required for this booking type")
            if not (self.guest_email and self.guest_email.strip()):
                raise ValueError("guest_email is required for this booking type")
        return self


class UpdateBookingRequest(BaseModel):
    type: BookingType | None = None
    status: BookingStatus | None = None
    start_date: UtcDatetime | None = None
    end_date: UtcDatetime | None = None
    guest_name: str | None = Field(default=None, max_length=255)
    guest_email: str | None = Field(default=None, pattern=_EMAIL_PATTERN)
    guest_phone: str | None = Field(default=None, max_length=50)
    number_of_guests: int | None = Field(default=None, ge=1)
    total_amount: float | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)
    external_id: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _end_after_start(self) -> UpdateBookingRequest:
        _check_range(self.start_date, self.end_date)
        return self


class ImportBookingRow(BaseModel):
    type: BookingType
    start_date: UtcDatetime
    end_date: UtcDatetime
    guest_name: str | None = None
    guest_email: str | None = Field(default=None, pattern=_EMAIL_PATTERN)
    guest_phone: str | None = None
    number_of_guests: int | None = Field(default=None, ge=1)
    notes: str | None = None
    external_id: str | None = None

    @model_validator(mode="after")
    def _end_after_start(self) -> ImportBookingRow:
        _check_range(self.start_date, self.end_date)
        return self


class ImportBookingsRequest(BaseModel):
    bookings: list[ImportBookingRow] = Field(min_length=1, max_length=100)


class BookingImportResult(BaseModel):
    imported: int
    failed: int
    errors: list[str] | None = None


class BookingStatistics(BaseModel):
    total_bookings: int
    total_nights: int
    occupancy_rate: float
    bookings_by_type: dict[str, int] = Field(default_factory=dict)
    total_revenue: float
    average_stay_length: float


class BookingPage(BaseModel):
    bookings: list[Booking]
    total: int
    pages: int
