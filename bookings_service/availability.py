from datetime import date, time
from typing import List, Tuple

from .models import Booking
from .store import BookingStore


class AvailabilityIndex:
    """Read-only view of how a room's day is occupied."""

    def __init__(self, store: BookingStore):
        self.store = store

    def get_occupied_slots(self, room_id: int, booking_date: date) -> List[Booking]:
        """
        Non-cancelled bookings of a room on a day, ascending by start time.

        Parameters
        ----------
        room_id : int
            Room identifier.
        booking_date : date
            Day to inspect.

        Returns
        -------
        List[Booking]
            Scheduled and completed bookings. Bookings accepted as priority
            overrides may overlap each other.
        """
        return self.store.list_by_room_date(room_id, booking_date, active_only=True)

    def get_free_slots(
        self, room_id: int, booking_date: date, day_start: time, day_end: time
    ) -> List[Tuple[time, time]]:
        """
        Half-open gaps between occupied slots within [day_start, day_end).
        """
        free = []
        cursor = day_start
        for booking in self.get_occupied_slots(room_id, booking_date):
            if booking.start_time > cursor:
                free.append((cursor, min(booking.start_time, day_end)))
            if booking.end_time > cursor:
                cursor = booking.end_time
            if cursor >= day_end:
                break
        if cursor < day_end:
            free.append((cursor, day_end))
        return [(start, end) for start, end in free if start < end]
