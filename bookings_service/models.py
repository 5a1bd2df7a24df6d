from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus(str, PyEnum):
    """
    Enumeration of possible booking statuses.

    Values
    ------
    scheduled
        Booking holds the room for the given date and time range.
    cancelled
        Booking was cancelled and no longer blocks the room (terminal).
    completed
        The booked time has passed (terminal, set by the completion sweep).
    """
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingPriority(str, PyEnum):
    """
    Booking priority, used to decide overrides on conflicting requests.

    A new booking may overlap existing ones only if its priority is
    strictly higher than every one of them.
    """
    NORMAL = "normal"
    HIGH = "high"
    LEADERSHIP = "leadership"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    BookingPriority.NORMAL: 0,
    BookingPriority.HIGH: 1,
    BookingPriority.LEADERSHIP: 2,
}


class MeetingType(str, PyEnum):
    INTERNAL = "internal"
    CLIENT = "client"
    LEADERSHIP = "leadership"


class AuditAction(str, PyEnum):
    CREATED = "created"
    CANCELLED = "cancelled"
    UPDATED = "updated"
    PRIORITY_CHANGED = "priority_changed"


class Booking(Base):
    """
    SQLAlchemy model representing a room booking.

    Bookings are never deleted; cancelled and completed rows are kept for
    history and audit.

    Attributes
    ----------
    id : int
        Primary key.
    room_id : int
        Identifier of the booked room (owned by the Rooms service).
    booked_by : int
        Identifier of the user who made the booking.
    title : str
        Meeting title.
    purpose : str
        Optional free-text description.
    meeting_type : MeetingType
        Internal, client or leadership meeting.
    participants : list of str
        Optional participant e-mail addresses.
    booking_date : date
        Day of the meeting.
    start_time, end_time : time
        Half-open interval [start_time, end_time) on booking_date.
    priority : BookingPriority
        Priority used for conflict resolution.
    status : BookingStatus
        scheduled, cancelled or completed.
    cancellation_reason : str
        Reason given when the booking was cancelled.
    created_at, updated_at : datetime
        Bookkeeping timestamps.
    """
    __tablename__ = "room_bookings"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, nullable=False)
    booked_by = Column(Integer, nullable=False, index=True)
    title = Column(String(100), nullable=False)
    purpose = Column(Text, nullable=True)
    meeting_type = Column(Enum(MeetingType), nullable=False, default=MeetingType.INTERNAL)
    participants = Column(JSON, nullable=True)
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    priority = Column(Enum(BookingPriority), nullable=False, default=BookingPriority.NORMAL)
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.SCHEDULED)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_room_bookings_interval"),
        Index("ix_room_bookings_slot", "room_id", "booking_date", "start_time", "end_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, room={self.room_id}, date={self.booking_date}, "
            f"{self.start_time}-{self.end_time}, {self.priority}, {self.status})>"
        )


class BookingAuditEntry(Base):
    """
    Append-only record of an action performed on a booking.

    Attributes
    ----------
    id : int
        Primary key.
    booking_id : int
        Booking the action applies to.
    action : AuditAction
        What happened.
    performed_by : int
        Identifier of the user who performed the action.
    details : dict
        Structured, action-specific payload (e.g. cancellation reason).
    created_at : datetime
        When the action was recorded.
    """
    __tablename__ = "booking_audit_log"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("room_bookings.id"), nullable=False)
    action = Column(Enum(AuditAction), nullable=False)
    performed_by = Column(Integer, nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_booking_audit_log_booking_created", "booking_id", "created_at"),
    )
