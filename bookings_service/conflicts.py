"""
Conflict detection and priority-based override resolution.

Two bookings on the same room and date conflict when their half-open
intervals ``[start, end)`` overlap, i.e. ``a.start < b.end and a.end > b.start``.
Touching intervals (one ends exactly when the other starts) do not conflict.

A conflicting request is accepted only when its priority strictly exceeds
the priority of every booking it overlaps. Equal priority never overrides.
Overridden bookings are left scheduled; see ``overridden_booking_ids`` in
the ``created`` audit entry.
"""
from datetime import date, time
from enum import Enum as PyEnum
from typing import Iterable, List, Optional

from .models import Booking, BookingPriority
from .store import BookingStore


class Decision(str, PyEnum):
    ACCEPT = "accept"
    REJECT = "reject"


def overlaps(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """
    Return True if the half-open intervals [start_a, end_a) and
    [start_b, end_b) share at least one instant.
    """
    return start_a < end_b and end_a > start_b


def resolve(new_priority: BookingPriority, conflicts: Iterable[Booking]) -> Decision:
    """
    Decide whether a booking at ``new_priority`` may take a slot.

    Parameters
    ----------
    new_priority : BookingPriority
        Priority of the requested booking.
    conflicts : Iterable[Booking]
        Active bookings overlapping the requested interval.

    Returns
    -------
    Decision
        ACCEPT if there are no conflicts or ``new_priority`` is strictly
        higher than all of them, otherwise REJECT.
    """
    ranks = [BookingPriority(b.priority).rank for b in conflicts]
    if ranks and max(ranks) >= new_priority.rank:
        return Decision.REJECT
    return Decision.ACCEPT


class ConflictResolver:
    """Finds bookings that collide with a candidate interval."""

    def __init__(self, store: BookingStore):
        self.store = store

    def find_conflicts(
        self,
        room_id: int,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[int] = None,
    ) -> List[Booking]:
        """
        List active bookings on the room/date overlapping [start_time, end_time).

        Parameters
        ----------
        room_id : int
            Room identifier.
        booking_date : date
            Day to check.
        start_time, end_time : time
            Candidate interval.
        exclude_booking_id : Optional[int]
            Booking to ignore (the booking being changed, if any).

        Returns
        -------
        List[Booking]
            Conflicting bookings ordered by start time.
        """
        return [
            b
            for b in self.store.list_by_room_date(room_id, booking_date, active_only=True)
            if b.id != exclude_booking_id
            and overlaps(b.start_time, b.end_time, start_time, end_time)
        ]

    def check(
        self,
        room_id: int,
        booking_date: date,
        start_time: time,
        end_time: time,
        priority: BookingPriority,
    ):
        """
        Run find_conflicts and resolve together.

        Returns
        -------
        tuple of (Decision, List[Booking])
            The decision and the conflicts it was based on.
        """
        conflicts = self.find_conflicts(room_id, booking_date, start_time, end_time)
        return resolve(priority, conflicts), conflicts
