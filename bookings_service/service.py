import logging
import os
from datetime import date, datetime, time, timedelta
from typing import List, Sequence, Tuple

from sqlalchemy.orm import Session

from common.cache import bump_version, delete_prefix, get_version
from common.capabilities import Caller, Capability, PermissionDenied, ensure_capability

from .audit import AuditLog
from .availability import AvailabilityIndex
from .clock import Clock
from .conflicts import ConflictResolver, Decision
from .errors import AuditWriteFailure, NotFound, SlotUnavailable, ValidationError
from .models import AuditAction, Booking, BookingAuditEntry, BookingStatus
from .notifications import NotificationDispatcher
from .rooms import RoomCatalog
from .schemas import BookingCreate
from .store import BookingStore

logger = logging.getLogger(__name__)

OFFICE_HOURS_START = time.fromisoformat(os.getenv("OFFICE_HOURS_START", "08:00"))
OFFICE_HOURS_END = time.fromisoformat(os.getenv("OFFICE_HOURS_END", "20:00"))
LONG_BOOKING = timedelta(hours=4)

SLOTS_CACHE_PREFIX = "bookings:slots:"
SLOTS_VERSION_PREFIX = "bookings:slots-version:"


def _room_day(room_id: int, booking_date: date) -> str:
    return f"{room_id}:{booking_date.isoformat()}"


def slots_cache_key(room_id: int, booking_date: date) -> str:
    """
    Cache key for the occupied slots of a room/day.

    The key carries the room/day generation, bumped by every create or
    cancel. A read that started before a write can therefore only refill a
    key of the old generation, which nobody reads any more.
    """
    day = _room_day(room_id, booking_date)
    return f"{SLOTS_CACHE_PREFIX}{day}:v{get_version(SLOTS_VERSION_PREFIX + day)}"


def duration(start_time: time, end_time: time) -> timedelta:
    return datetime.combine(date.min, end_time) - datetime.combine(date.min, start_time)


def split_upcoming_past(
    bookings: Sequence[Booking], now: datetime
) -> Tuple[List[Booking], List[Booking]]:
    """
    Partition bookings for display.

    A booking is upcoming while it is scheduled and has not ended yet at
    ``now`` (local office time). Everything else (cancelled, completed, or
    already over) is past. Input order is preserved in both lists.
    """
    today, clock_time = now.date(), now.time()
    upcoming, past = [], []
    for b in bookings:
        not_over = b.booking_date > today or (b.booking_date == today and b.end_time > clock_time)
        if b.status == BookingStatus.SCHEDULED and not_over:
            upcoming.append(b)
        else:
            past.append(b)
    return upcoming, past


class BookingService:
    """
    Entry point for every booking operation.

    create_booking runs validation, conflict resolution and insert, then
    writes the audit entry and fires a notification. The conflict check and
    the insert happen under the room/date reservation held by the store, so
    two overlapping requests can never both see a free slot.

    Audit and notification are best-effort: once a booking is saved or
    cancelled, failures in either are logged and the operation still
    succeeds.
    """

    def __init__(
        self,
        db: Session,
        rooms: RoomCatalog,
        clock: Clock,
        notify: NotificationDispatcher,
    ):
        self.rooms = rooms
        self.clock = clock
        self.notify = notify
        self.store = BookingStore(db)
        self.audit = AuditLog(db, clock)
        self.availability = AvailabilityIndex(self.store)
        self.resolver = ConflictResolver(self.store)

    # ---------- Commands ----------

    def create_booking(self, request: BookingCreate, caller: Caller) -> Booking:
        """
        Book a room for the caller.

        Raises
        ------
        PermissionDenied
            If the caller may not book rooms.
        ValidationError
            Bad interval, past date, outside office hours, or room under
            maintenance.
        NotFound
            If the room does not exist.
        SlotUnavailable
            If the interval overlaps a booking of equal or higher priority.
        StorageError
            If the booking cannot be saved.
        """
        ensure_capability(caller, Capability.BOOK_ROOM)
        self._validate(request)

        with self.store.reserve(request.room_id, request.booking_date):
            decision, conflicts = self.resolver.check(
                request.room_id,
                request.booking_date,
                request.start_time,
                request.end_time,
                request.priority,
            )
            conflicting_ids = [b.id for b in conflicts]
            if decision == Decision.REJECT:
                logger.info(
                    "Rejected %s booking of room %s on %s %s-%s, conflicts with %s",
                    request.priority.value,
                    request.room_id,
                    request.booking_date,
                    request.start_time,
                    request.end_time,
                    conflicting_ids,
                )
                raise SlotUnavailable(conflicting_ids)

            booking = self.store.insert(
                Booking(
                    room_id=request.room_id,
                    booked_by=caller.user_id,
                    title=request.title,
                    purpose=request.purpose,
                    meeting_type=request.meeting_type,
                    participants=[str(p) for p in request.participants] if request.participants else None,
                    booking_date=request.booking_date,
                    start_time=request.start_time,
                    end_time=request.end_time,
                    priority=request.priority,
                    status=BookingStatus.SCHEDULED,
                    created_at=self.clock.now(),
                )
            )

        details = {"title": booking.title, "priority": request.priority.value}
        if conflicting_ids:
            # Overridden bookings stay scheduled; participants have to sort it out.
            details["overridden_booking_ids"] = conflicting_ids
            logger.warning(
                "Booking %s (%s) overrides lower-priority bookings %s in room %s on %s",
                booking.id,
                request.priority.value,
                conflicting_ids,
                booking.room_id,
                booking.booking_date,
            )
        logger.info(
            "Booking %s created by user %s for room %s on %s %s-%s",
            booking.id,
            caller.user_id,
            booking.room_id,
            booking.booking_date,
            booking.start_time,
            booking.end_time,
        )

        self._record(booking.id, AuditAction.CREATED, caller.user_id, details)
        self._invalidate(booking.room_id, booking.booking_date)
        self._dispatch(booking.id, "created")
        return booking

    def cancel_booking(self, booking_id: int, reason: str, caller: Caller) -> None:
        """
        Cancel a scheduled booking.

        Raises
        ------
        ValidationError
            If no reason is given.
        NotFound
            If the booking does not exist.
        PermissionDenied
            If the caller neither owns the booking nor may cancel any booking.
        InvalidTransition
            If the booking is already cancelled or completed.
        StorageError
            If the change cannot be saved.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A cancellation reason is required")

        booking = self.store.get(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        if booking.booked_by != caller.user_id and not caller.can(Capability.CANCEL_ANY_BOOKING):
            raise PermissionDenied("Not allowed to cancel this booking")

        booking = self.store.update_status(booking_id, BookingStatus.CANCELLED, reason)
        logger.info("Booking %s cancelled by user %s", booking_id, caller.user_id)

        self._record(booking_id, AuditAction.CANCELLED, caller.user_id, {"reason": reason})
        self._invalidate(booking.room_id, booking.booking_date)
        self._dispatch(booking_id, "cancelled")

    # ---------- Queries ----------

    def get_occupied_slots(self, room_id: int, booking_date: date, caller: Caller) -> List[Booking]:
        ensure_capability(caller, Capability.VIEW_AVAILABILITY)
        return self.availability.get_occupied_slots(room_id, booking_date)

    def get_free_slots(self, room_id: int, booking_date: date, caller: Caller) -> List[Tuple[time, time]]:
        ensure_capability(caller, Capability.VIEW_AVAILABILITY)
        return self.availability.get_free_slots(
            room_id, booking_date, OFFICE_HOURS_START, OFFICE_HOURS_END
        )

    def get_booking(self, booking_id: int, caller: Caller) -> Booking:
        booking = self.store.get(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        if booking.booked_by != caller.user_id and not caller.can(Capability.VIEW_ANY_BOOKING):
            raise PermissionDenied("Not allowed to view this booking")
        return booking

    def list_audit_trail(self, booking_id: int, caller: Caller) -> List[BookingAuditEntry]:
        """
        Audit entries of a booking, oldest first.

        Visible to the booking owner and to callers holding view_audit_trail.
        """
        booking = self.store.get(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        if booking.booked_by != caller.user_id and not caller.can(Capability.VIEW_AUDIT_TRAIL):
            raise PermissionDenied("Not allowed to view this audit trail")
        return self.audit.list_for_booking(booking_id)

    def list_my_bookings(self, caller: Caller) -> List[Booking]:
        return self.store.list_by_user(caller.user_id)

    # ---------- Helpers ----------

    def _validate(self, request: BookingCreate) -> None:
        if request.end_time <= request.start_time:
            raise ValidationError("end_time must be after start_time")
        if request.booking_date < self.clock.today():
            raise ValidationError("Cannot book past dates")
        if request.start_time < OFFICE_HOURS_START or request.end_time > OFFICE_HOURS_END:
            raise ValidationError(
                f"Bookings outside office hours "
                f"({OFFICE_HOURS_START:%H:%M}-{OFFICE_HOURS_END:%H:%M}) are not permitted"
            )

        room = self.rooms.get_room(request.room_id)
        if room is None:
            raise NotFound("Room not found")
        if not room.is_active:
            raise ValidationError(f"Room {room.name} is not available for booking ({room.status.value})")

        if duration(request.start_time, request.end_time) > LONG_BOOKING:
            logger.warning(
                "Booking request for room %s on %s exceeds %s (%s-%s)",
                request.room_id,
                request.booking_date,
                LONG_BOOKING,
                request.start_time,
                request.end_time,
            )

    def _record(self, booking_id: int, action: AuditAction, performed_by: int, details: dict) -> None:
        try:
            self.audit.append(booking_id, action, performed_by, details)
        except AuditWriteFailure as exc:
            logger.error(
                "Audit entry missing, needs reconciliation: booking=%s action=%s by=%s details=%s (%s)",
                booking_id,
                action.value,
                performed_by,
                details,
                exc.detail,
            )

    def _invalidate(self, room_id: int, booking_date: date) -> None:
        day = _room_day(room_id, booking_date)
        bump_version(SLOTS_VERSION_PREFIX + day)
        delete_prefix(f"{SLOTS_CACHE_PREFIX}{day}:")

    def _dispatch(self, booking_id: int, event: str) -> None:
        try:
            self.notify(booking_id, event)
        except Exception:
            logger.warning("Notification dispatcher failed for %s on booking %s", event, booking_id, exc_info=True)
