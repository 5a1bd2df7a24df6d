from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import RoomStatus


class RoomBase(BaseModel):
    """
    Base schema for room information.

    Shared fields used when creating and reading rooms.
    """
    name: str = Field(..., min_length=1, max_length=100)
    location: str = Field(..., min_length=1, max_length=255)
    floor: Optional[str] = Field(default=None, max_length=50)
    capacity: int = Field(default=10, ge=1)
    has_projector: bool = False
    has_video_conferencing: bool = False
    has_whiteboard: bool = False

    @field_validator("name", "location")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class RoomCreate(RoomBase):
    status: RoomStatus = RoomStatus.ACTIVE


class RoomUpdate(BaseModel):
    """
    Schema for partial updates to a room.

    All fields are optional and only provided values will be updated.
    """
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)
    floor: Optional[str] = Field(default=None, max_length=50)
    capacity: Optional[int] = Field(default=None, ge=1)
    has_projector: Optional[bool] = None
    has_video_conferencing: Optional[bool] = None
    has_whiteboard: Optional[bool] = None
    status: Optional[RoomStatus] = None


class RoomRead(RoomBase):
    id: int
    status: RoomStatus
    created_by: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
