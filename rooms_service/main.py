import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from common.auth import require_capability
from common.cache import delete_prefix, get_cached_json, set_cached_json
from common.capabilities import Caller, Capability
from common.log_config import configure_logging

from . import models, schemas
from .database import Base, engine, get_db

configure_logging("rooms")
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Rooms Service", version="1.0.0")
router_v1 = APIRouter(prefix="/api/v1")

SERVICE_NAME = "rooms"
ROOMS_CACHE_PREFIX = "rooms:"


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "service": SERVICE_NAME,
            "path": request.url.path,
            "method": request.method,
            "status_code": exc.status_code,
            "detail": exc.detail,
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "service": SERVICE_NAME,
            "path": request.url.path,
            "method": request.method,
            "status_code": 500,
            "detail": "Internal server error",
        },
    )


@app.get("/")
def root():
    return {"service": SERVICE_NAME, "status": "running"}


room_managers = require_capability(Capability.MANAGE_ROOMS)
room_viewers = require_capability(Capability.VIEW_ROOMS)


def ensure_unique_name(db: Session, name: str, ignore_room_id: Optional[int] = None) -> None:
    q = db.query(models.Room).filter(models.Room.name == name)
    if ignore_room_id is not None:
        q = q.filter(models.Room.id != ignore_room_id)
    if db.query(q.exists()).scalar():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Room with this name already exists",
        )


# ---------- Create room ----------


@router_v1.post("/rooms", response_model=schemas.RoomRead, status_code=status.HTTP_201_CREATED)
def create_room(
    room_in: schemas.RoomCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(room_managers),
):
    """
    Register a new meeting room.

    Access
    ------
    - Callers holding the manage_rooms capability (admin, facility_manager).

    Raises
    ------
    HTTPException
        400 if a room with the same name already exists.
    """
    ensure_unique_name(db, room_in.name)

    room = models.Room(**room_in.model_dump(), created_by=caller.user_id)
    db.add(room)
    db.commit()
    db.refresh(room)
    delete_prefix(ROOMS_CACHE_PREFIX)
    logger.info("Room %s (%s) created by user %s", room.id, room.name, caller.user_id)
    return room


# ---------- List / search rooms ----------


@router_v1.get("/rooms", response_model=List[schemas.RoomRead])
def list_rooms(
    room_status: Optional[models.RoomStatus] = Query(default=None, alias="status"),
    min_capacity: Optional[int] = Query(default=None, ge=1),
    location: Optional[str] = None,
    has_projector: Optional[bool] = None,
    has_video_conferencing: Optional[bool] = None,
    has_whiteboard: Optional[bool] = None,
    db: Session = Depends(get_db),
    _: Caller = Depends(room_viewers),
):
    """
    List rooms ordered by name, with optional filters.

    Parameters
    ----------
    room_status : Optional[RoomStatus]
        Only rooms in this status (``?status=active`` lists bookable rooms).
    min_capacity : Optional[int]
        Minimum room capacity.
    location : Optional[str]
        Substring to match in the location field.
    has_projector, has_video_conferencing, has_whiteboard : Optional[bool]
        Equipment requirements.

    Returns
    -------
    List[RoomRead]
        Matching rooms.
    """
    filters = {
        "min_capacity": min_capacity,
        "location": location,
        "has_projector": has_projector,
        "has_video_conferencing": has_video_conferencing,
        "has_whiteboard": has_whiteboard,
    }
    cacheable = all(value is None for value in filters.values())
    cache_key = f"{ROOMS_CACHE_PREFIX}list:{room_status.value if room_status else 'all'}"

    if cacheable:
        cached = get_cached_json(cache_key)
        if cached is not None:
            return cached

    query = db.query(models.Room)
    if room_status is not None:
        query = query.filter(models.Room.status == room_status)
    if min_capacity is not None:
        query = query.filter(models.Room.capacity >= min_capacity)
    if location:
        query = query.filter(models.Room.location.ilike(f"%{location}%"))
    if has_projector is not None:
        query = query.filter(models.Room.has_projector.is_(has_projector))
    if has_video_conferencing is not None:
        query = query.filter(models.Room.has_video_conferencing.is_(has_video_conferencing))
    if has_whiteboard is not None:
        query = query.filter(models.Room.has_whiteboard.is_(has_whiteboard))

    rooms = query.order_by(models.Room.name).all()

    if cacheable:
        data = [schemas.RoomRead.model_validate(r).model_dump(mode="json") for r in rooms]
        set_cached_json(cache_key, data, ttl_seconds=60)
        return data

    return rooms


@router_v1.get("/rooms/{room_id}", response_model=schemas.RoomRead)
def get_room(
    room_id: int,
    db: Session = Depends(get_db),
    _: Caller = Depends(room_viewers),
):
    """
    Retrieve a single room by its ID, whatever its status.

    Raises
    ------
    HTTPException
        404 if the room does not exist.
    """
    room = db.query(models.Room).filter(models.Room.id == room_id).first()
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


# ---------- Update room ----------


@router_v1.put("/rooms/{room_id}", response_model=schemas.RoomRead)
def update_room(
    room_id: int,
    update_data: schemas.RoomUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(room_managers),
):
    """
    Update an existing room, including putting it into or out of maintenance.

    Only provided fields are changed. Existing bookings are left untouched
    when a room goes into maintenance; only new bookings are refused.

    Raises
    ------
    HTTPException
        404 if the room is not found, 400 if the new name is taken.
    """
    room = db.query(models.Room).filter(models.Room.id == room_id).first()
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")

    changes = update_data.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in changes and changes["name"] != room.name:
        ensure_unique_name(db, changes["name"], ignore_room_id=room.id)

    for field, value in changes.items():
        setattr(room, field, value)

    db.add(room)
    db.commit()
    db.refresh(room)
    delete_prefix(ROOMS_CACHE_PREFIX)
    logger.info("Room %s updated by user %s: %s", room.id, caller.user_id, sorted(changes))
    return room


app.include_router(router_v1)
