"""FastAPI application: entry point for the property booking service."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder

from app.domain.errors import (
    BookingConflictError,
    BookingNotFoundError,
    PropertyNotFoundError,
)
from app.domain.models import (
    AdvancedAvailabilityRequest,
    AdvancedAvailabilityResult,
    BasicAvailabilityResult,
    Booking,
    BookingImportResult,
    BookingPage,
    BookingStatistics,
    BookingStatus,
    BookingType,
    CheckAvailabilityRequest,
    CreateBookingRequest,
    CreatePropertyRequest,
    DateRange,
    ImportBookingsRequest,
    Property,
    UpdateBookingRequest,
    as_utc,
)
from app.repos.memory import BookingRepository, PropertyRepository
from app.services import bookings as booking_service
from app.services.availability import check_advanced_availability, check_availability
from app.utils.config import get_settings
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version)

# ── Singletons (created at import time for simplicity) ────────────────
property_repo = PropertyRepository()
booking_repo = BookingRepository()


def _conflict(exc: BookingConflictError) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"message": str(exc), "conflicts": jsonable_encoder(exc.conflicts)},
    )


def _require_property(property_id: str) -> Property:
    prop = property_repo.get(property_id)
    if prop is None:
        raise HTTPException(status_code=404, detail="Property not found")
    return prop


# ── Properties ────────────────────────────────────────────────────────


@app.post("/properties", response_model=Property, status_code=201)
def create_property(payload: CreatePropertyRequest) -> Property:
    prop = Property(name=payload.name, address=payload.address)
    property_repo.add(prop)
    logger.info("Created property %s (%s)", prop.id, prop.name)
    return prop


@app.get("/properties", response_model=list[Property])
def list_properties() -> list[Property]:
    return property_repo.list_all()


@app.get("/properties/{property_id}", response_model=Property)
def get_property(property_id: str) -> Property:
    return _require_property(property_id)


# ── Availability ──────────────────────────────────────────────────────


@app.post(
    "/properties/{property_id}/availability",
    response_model=BasicAvailabilityResult,
)
def post_availability(
    property_id: str, payload: CheckAvailabilityRequest
) -> BasicAvailabilityResult:
    """Check whether a date range is free of non-cancelled bookings."""
    return check_availability(
        booking_repo,
        property_id,
        payload.date_range,
        exclude_booking_id=payload.exclude_booking_id,
    )


@app.post(
    "/properties/{property_id}/availability/advanced",
    response_model=AdvancedAvailabilityResult,
)
def post_advanced_availability(
    property_id: str, payload: AdvancedAvailabilityRequest
) -> AdvancedAvailabilityResult:
    """Classify conflicts, report grace-period violations and suggest alternatives."""
    try:
        return check_advanced_availability(
            booking_repo,
            property_id,
            payload.date_range,
            exclude_booking_id=payload.exclude_booking_id,
            grace_period_hours=payload.grace_period_hours,
            suggest_alternatives=payload.suggest_alternatives,
            settings=settings,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


# ── Bookings ──────────────────────────────────────────────────────────


@app.get("/properties/{property_id}/bookings", response_model=BookingPage)
def list_property_bookings(
    property_id: str,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    types: list[BookingType] | None = Query(default=None, alias="type"),
    statuses: list[BookingStatus] | None = Query(default=None, alias="status"),
    search: str | None = None,
    sort_by: Literal["start_date", "end_date", "created_at", "guest_name"] = "start_date",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.default_page_size, ge=1, le=1000),
) -> BookingPage:
    _require_property(property_id)
    start_date = as_utc(start_date) if start_date is not None else None
    end_date = as_utc(end_date) if end_date is not None else None
    if start_date is not None and end_date is not None and end_date <= start_date:
        raise HTTPException(status_code=422, detail="end_date must be after start_date")
    return booking_service.list_bookings(
        booking_repo,
        property_id,
        start_date=start_date,
        end_date=end_date,
        types=types,
        statuses=statuses,
        search=search,
        sort_by=sort_by,
        descending=sort_order == "desc",
        page=page,
        limit=limit,
    )


@app.post(
    "/properties/{property_id}/bookings", response_model=Booking, status_code=201
)
def create_booking(property_id: str, payload: CreateBookingRequest) -> Booking:
    try:
        return booking_service.create_booking(
            property_repo, booking_repo, property_id, payload
        )
    except PropertyNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except BookingConflictError as exc:
        raise _conflict(exc) from exc


@app.post(
    "/properties/{property_id}/bookings/import",
    response_model=BookingImportResult,
)
def import_property_bookings(
    property_id: str, payload: ImportBookingsRequest
) -> BookingImportResult:
    if len(payload.bookings) > settings.max_import_rows:
        raise HTTPException(
            status_code=422,
            detail=f"Maximum {settings.max_import_rows} bookings per import",
        )
    try:
        return booking_service.import_bookings(
            property_repo, booking_repo, property_id, payload
        )
    except PropertyNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except BookingConflictError as exc:
        raise _conflict(exc) from exc


@app.get("/properties/{property_id}/stats", response_model=BookingStatistics)
def property_stats(
    property_id: str, start_date: datetime, end_date: datetime
) -> BookingStatistics:
    _require_property(property_id)
    start_date, end_date = as_utc(start_date), as_utc(end_date)
    if end_date <= start_date:
        raise HTTPException(status_code=422, detail="end_date must be after start_date")
    return booking_service.get_booking_stats(
        booking_repo, property_id, DateRange(start=start_date, end=end_date)
    )


@app.get("/bookings/{booking_id}", response_model=Booking)
def get_booking(booking_id: str) -> Booking:
    booking = booking_repo.get(booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


@app.patch("/bookings/{booking_id}", response_model=Booking)
def update_booking(booking_id: str, payload: UpdateBookingRequest) -> Booking:
    try:
        return booking_service.update_booking(booking_repo, booking_id, payload)
    except BookingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except BookingConflictError as exc:
        raise _conflict(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.delete("/bookings/{booking_id}", status_code=200)
def delete_booking(booking_id: str) -> dict:
    try:
        booking_service.delete_booking(booking_repo, booking_id)
    except BookingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"deleted": True}
