"""Exceptions raised by the booking services and repositories."""

from __future__ import annotations

from typing import Any


class BookingError(Exception):
    """Base booking failure."""


class InvalidDateRangeError(BookingError, ValueError):
    """Raised when a range does not end strictly after it starts."""


class PropertyNotFoundError(BookingError):
    """Raised when the referenced property does not exist."""


class BookingNotFoundError(BookingError):
    """Raised when the referenced booking does not exist."""


class BookingConflictError(BookingError):
    """Raised when a booking would overlap an existing, non-cancelled booking."""

    def __init__(self, message: str, conflicts: list[Any] | None = None) -> None:
        super().__init__(message)
        self.conflicts = conflicts or []


class BookingOverlapError(BookingConflictError):
    """Raised by the store when a write violates the per-property exclusion rule."""
