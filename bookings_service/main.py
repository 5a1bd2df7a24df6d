import logging
from datetime import date
from typing import List, Literal

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from common.auth import get_current_caller, require_capability
from common.cache import get_cached_json, set_cached_json
from common.capabilities import Caller, Capability, PermissionDenied
from common.log_config import configure_logging

from . import schemas
from .clock import Clock, get_clock
from .database import Base, engine, get_db
from .errors import BookingError
from .notifications import NotificationDispatcher, get_notifier
from .rate_limiter import booking_rate_limiter
from .rooms import RoomCatalog, get_room_catalog
from .service import BookingService, slots_cache_key, split_upcoming_past

configure_logging("bookings")
logger = logging.getLogger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Bookings Service", version="1.0.0")
router_v1 = APIRouter(prefix="/api/v1")

SERVICE_NAME = "bookings"


def error_response(request: Request, status_code: int, detail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "service": SERVICE_NAME,
            "path": request.url.path,
            "method": request.method,
            "status_code": status_code,
            "detail": detail,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(request, exc.status_code, exc.detail)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return error_response(request, exc.status_code, exc.detail)


@app.exception_handler(PermissionDenied)
async def permission_denied_handler(request: Request, exc: PermissionDenied):
    return error_response(request, status.HTTP_403_FORBIDDEN, exc.detail)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(request, 500, "Internal server error")


@app.get("/")
def root():
    """
    Health-check endpoint for the Bookings service.

    Returns
    -------
    dict
        A small JSON payload indicating that the service is running.
    """
    return {"service": SERVICE_NAME, "status": "running"}


availability_viewers = require_capability(Capability.VIEW_AVAILABILITY)


def get_booking_service(
    db: Session = Depends(get_db),
    rooms: RoomCatalog = Depends(get_room_catalog),
    clock: Clock = Depends(get_clock),
    notify: NotificationDispatcher = Depends(get_notifier),
) -> BookingService:
    return BookingService(db, rooms, clock, notify)


# ---------- Create booking ----------


@router_v1.post(
    "/bookings",
    response_model=schemas.BookingRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(booking_rate_limiter)],
)
def create_booking(
    booking_in: schemas.BookingCreate,
    service: BookingService = Depends(get_booking_service),
    caller: Caller = Depends(get_current_caller),
):
    """
    Book a room for the authenticated user.

    Behavior
    --------
    - Rejects past dates, inverted intervals and times outside office hours.
    - Rejects rooms that are unknown (404) or under maintenance (400).
    - Rejects overlaps with bookings of equal or higher priority (409).
    - Accepts overlaps with strictly lower-priority bookings; those stay
      scheduled and are listed in the audit entry.

    Returns
    -------
    BookingRead
        The newly created booking.
    """
    return service.create_booking(booking_in, caller)


# ---------- Occupancy ----------


@router_v1.get("/bookings/occupied", response_model=List[schemas.BookingRead])
def get_occupied_slots(
    room_id: int = Query(..., ge=1),
    booking_date: date = Query(..., alias="date"),
    service: BookingService = Depends(get_booking_service),
    caller: Caller = Depends(availability_viewers),
):
    """
    Non-cancelled bookings of a room on a day, ascending by start time.

    Results are cached per room/day and invalidated on every create or
    cancel affecting that room/day.
    """
    # taken before the query so a write landing meanwhile retires this key
    cache_key = slots_cache_key(room_id, booking_date)
    cached = get_cached_json(cache_key)
    if cached is not None:
        return cached

    slots = service.get_occupied_slots(room_id, booking_date, caller)
    data = [schemas.BookingRead.model_validate(b).model_dump(mode="json") for b in slots]
    set_cached_json(cache_key, data, ttl_seconds=60)
    return data


@router_v1.get("/bookings/availability", response_model=schemas.RoomDayAvailability)
def get_room_day_availability(
    room_id: int = Query(..., ge=1),
    booking_date: date = Query(..., alias="date"),
    service: BookingService = Depends(get_booking_service),
    caller: Caller = Depends(availability_viewers),
):
    """
    Occupied bookings plus the free gaps within office hours for a room/day.
    """
    occupied = service.get_occupied_slots(room_id, booking_date, caller)
    free = service.get_free_slots(room_id, booking_date, caller)
    return schemas.RoomDayAvailability(
        room_id=room_id,
        booking_date=booking_date,
        occupied=[schemas.BookingRead.model_validate(b) for b in occupied],
        free=[schemas.TimeRange(start_time=s, end_time=e) for s, e in free],
    )


# ---------- My bookings ----------


@router_v1.get("/bookings/me", response_model=List[schemas.BookingRead])
def list_my_bookings(
    when: Literal["all", "upcoming", "past"] = "all",
    service: BookingService = Depends(get_booking_service),
    clock: Clock = Depends(get_clock),
    caller: Caller = Depends(get_current_caller),
):
    """
    Bookings made by the authenticated user.

    Parameters
    ----------
    when : {"all", "upcoming", "past"}
        ``upcoming`` keeps scheduled bookings that have not ended yet,
        ``past`` keeps everything else.

    Returns
    -------
    List[BookingRead]
        Most recent day first, then by start time.
    """
    bookings = service.list_my_bookings(caller)
    if when == "all":
        return bookings
    upcoming, past = split_upcoming_past(bookings, clock.local_now())
    return upcoming if when == "upcoming" else past


# ---------- Single booking ----------


@router_v1.get("/bookings/{booking_id}", response_model=schemas.BookingRead)
def get_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    caller: Caller = Depends(get_current_caller),
):
    return service.get_booking(booking_id, caller)


@router_v1.get("/bookings/{booking_id}/audit", response_model=List[schemas.AuditEntryRead])
def list_audit_trail(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    caller: Caller = Depends(get_current_caller),
):
    """
    Audit trail of a booking, oldest entry first.

    Access
    ------
    - The booking owner.
    - Callers holding view_audit_trail (admin, facility_manager, auditor).
    """
    return service.list_audit_trail(booking_id, caller)


# ---------- Cancel booking (soft) ----------


@router_v1.post(
    "/bookings/{booking_id}/cancel",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(booking_rate_limiter)],
)
def cancel_booking(
    booking_id: int,
    cancel_in: schemas.BookingCancel,
    service: BookingService = Depends(get_booking_service),
    caller: Caller = Depends(get_current_caller),
):
    """
    Cancel a scheduled booking. The record is kept, never deleted.

    Access
    ------
    - The booking owner.
    - Callers holding cancel_any_booking (admin, facility_manager).

    Raises
    ------
    HTTPException
        404 unknown booking, 403 not allowed, 409 already cancelled or
        completed.
    """
    service.cancel_booking(booking_id, cancel_in.reason, caller)


app.include_router(router_v1)
