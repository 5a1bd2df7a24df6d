import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import InvalidTransition, NotFound, StorageError
from .models import Booking, BookingStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    BookingStatus.SCHEDULED: {BookingStatus.CANCELLED, BookingStatus.COMPLETED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}

# One lock per (room_id, booking_date), shared by every session in the process.
# Entries are dropped once no request holds or waits for them.
_registry_lock = threading.Lock()
_slot_locks: Dict[Tuple[int, date], List] = {}


@contextmanager
def _hold_slot(room_id: int, booking_date: date) -> Iterator[None]:
    key = (room_id, booking_date)
    with _registry_lock:
        entry = _slot_locks.get(key)
        if entry is None:
            entry = _slot_locks[key] = [threading.Lock(), 0]
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _registry_lock:
            entry[1] -= 1
            if entry[1] == 0:
                del _slot_locks[key]


class BookingStore:
    """
    Persistence for bookings on top of a SQLAlchemy session.

    Writes commit immediately; any SQLAlchemy failure rolls the session back
    and surfaces as StorageError.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def reserve(self, room_id: int, booking_date: date) -> Iterator[None]:
        """
        Serialize work on one room/date.

        Everything done inside the block (typically conflict check followed
        by insert) runs while no other request holds the same room/date.
        Different rooms or dates do not wait on each other.
        """
        with _hold_slot(room_id, booking_date):
            yield

    def insert(self, booking: Booking) -> Booking:
        try:
            self.db.add(booking)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "Failed to insert booking for room %s on %s", booking.room_id, booking.booking_date
            )
            raise StorageError()
        self.db.refresh(booking)
        return booking

    def get(self, booking_id: int) -> Optional[Booking]:
        return self.db.query(Booking).filter(Booking.id == booking_id).first()

    def update_status(
        self,
        booking_id: int,
        new_status: BookingStatus,
        reason: Optional[str] = None,
    ) -> Booking:
        """
        Move a booking to ``new_status``.

        Parameters
        ----------
        booking_id : int
            Booking to update.
        new_status : BookingStatus
            Target status; only scheduled bookings may change.
        reason : Optional[str]
            Stored as cancellation_reason when cancelling.

        Returns
        -------
        Booking
            The updated booking.

        Raises
        ------
        NotFound
            If the booking does not exist.
        InvalidTransition
            If the booking is not scheduled any more.
        StorageError
            If the update cannot be committed.
        """
        booking = self.get(booking_id)
        if booking is None:
            raise NotFound("Booking not found")

        with self.reserve(booking.room_id, booking.booking_date):
            # re-read under the lock, another request may have changed it
            self.db.refresh(booking)
            current = BookingStatus(booking.status)
            if new_status not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransition(
                    f"Booking is already {current.value} and cannot become {new_status.value}"
                )

            booking.status = new_status
            if new_status == BookingStatus.CANCELLED:
                booking.cancellation_reason = reason
            try:
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception("Failed to update booking %s to %s", booking_id, new_status.value)
                raise StorageError()

        self.db.refresh(booking)
        return booking

    def list_by_room_date(
        self, room_id: int, booking_date: date, active_only: bool = False
    ) -> List[Booking]:
        """
        Bookings for one room and day, ascending by start time.

        ``active_only`` drops cancelled bookings.
        """
        q = (
            self.db.query(Booking)
            .filter(Booking.room_id == room_id)
            .filter(Booking.booking_date == booking_date)
        )
        if active_only:
            q = q.filter(Booking.status != BookingStatus.CANCELLED)
        return q.order_by(Booking.start_time.asc(), Booking.id.asc()).all()

    def list_by_user(self, user_id: int) -> List[Booking]:
        """Bookings made by a user, most recent day first, then by start time."""
        return (
            self.db.query(Booking)
            .filter(Booking.booked_by == user_id)
            .order_by(Booking.booking_date.desc(), Booking.start_time.asc(), Booking.id.asc())
            .all()
        )
