from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .models import AuditAction, BookingPriority, BookingStatus, MeetingType


class BookingBase(BaseModel):
    """
    Base schema for booking room, date and time information.

    Shared fields used across booking create and read operations.
    """
    room_id: int = Field(..., ge=1)
    title: str = Field(..., min_length=1, max_length=100)
    purpose: Optional[str] = Field(default=None, max_length=500)
    meeting_type: MeetingType = MeetingType.INTERNAL
    priority: BookingPriority = BookingPriority.NORMAL
    booking_date: date
    start_time: time
    end_time: time
    participants: Optional[List[EmailStr]] = None


class BookingCreate(BookingBase):
    """
    Schema for requesting a new booking.

    Unknown priority or meeting type values are rejected here, before they
    reach the scheduler.
    """

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be empty")
        return v

    @field_validator("purpose")
    @classmethod
    def blank_purpose_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class BookingCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class BookingRead(BookingBase):
    """
    Schema returned when reading booking information.

    Extends BookingBase with identifiers, status and timestamps.
    """
    id: int
    booked_by: int
    status: BookingStatus
    cancellation_reason: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditEntryRead(BaseModel):
    id: int
    booking_id: int
    action: AuditAction
    performed_by: int
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TimeRange(BaseModel):
    start_time: time
    end_time: time


class RoomDayAvailability(BaseModel):
    """
    Occupancy of one room on one day.

    ``occupied`` lists non-cancelled bookings by start time; ``free`` lists
    the gaps between them inside office hours.
    """
    room_id: int
    booking_date: date
    occupied: List[BookingRead]
    free: List[TimeRange]
