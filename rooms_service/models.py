from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Enum, Integer, String

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoomStatus(str, PyEnum):
    """
    Operational status of a meeting room.

    Values
    ------
    active
        The room can be booked.
    maintenance
        The room is temporarily unavailable; new bookings are refused.
    """
    ACTIVE = "active"
    MAINTENANCE = "maintenance"


class Room(Base):
    """
    SQLAlchemy model representing a bookable meeting room.

    Attributes
    ----------
    id : int
        Primary key.
    name : str
        Human-readable, unique room name (e.g. 'Board Room A').
    location : str
        Building or site description.
    floor : str
        Optional floor label (e.g. '3rd Floor').
    capacity : int
        Maximum number of people the room can hold.
    has_projector, has_video_conferencing, has_whiteboard : bool
        Equipment flags.
    status : RoomStatus
        Whether the room is active or under maintenance.
    created_by : int
        Identifier of the staff member who registered the room.
    created_at, updated_at : datetime
        Bookkeeping timestamps.
    """
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    location = Column(String(255), nullable=False)
    floor = Column(String(50), nullable=True)
    capacity = Column(Integer, nullable=False, default=10)
    has_projector = Column(Boolean, nullable=False, default=False)
    has_video_conferencing = Column(Boolean, nullable=False, default=False)
    has_whiteboard = Column(Boolean, nullable=False, default=False)
    status = Column(Enum(RoomStatus), nullable=False, default=RoomStatus.ACTIVE, index=True)
    created_by = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (CheckConstraint("capacity >= 1", name="ck_rooms_capacity_positive"),)
