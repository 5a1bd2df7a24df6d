import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

import httpx
from jose import jwt
from pydantic import BaseModel, ConfigDict

from common.auth import ALGORITHM, SECRET_KEY
from common.capabilities import Role
from common.circuit_breaker import CircuitBreaker

from .errors import StorageError

logger = logging.getLogger(__name__)

ROOMS_SERVICE_URL = os.getenv(
    "ROOMS_SERVICE_URL",
    "http://rooms_service:8001",  # Docker internal URL
)

SERVICE_ACCOUNT_USERNAME = "bookings_service"
SERVICE_ACCOUNT_USER_ID = 0


class RoomStatus(str, Enum):
    """Room status as published by the Rooms service."""
    ACTIVE = "active"
    MAINTENANCE = "maintenance"


class CatalogRoom(BaseModel):
    """
    The parts of a room the scheduler cares about.
    """
    id: int
    name: str
    location: str
    capacity: int
    has_projector: bool = False
    has_video_conferencing: bool = False
    has_whiteboard: bool = False
    status: RoomStatus

    model_config = ConfigDict(extra="ignore")

    @property
    def is_active(self) -> bool:
        return self.status == RoomStatus.ACTIVE


class RoomCatalog(ABC):
    """Read-only access to rooms owned by the Rooms service."""

    @abstractmethod
    def get_room(self, room_id: int) -> Optional[CatalogRoom]:
        """Room by id in any status, or None if it does not exist."""

    @abstractmethod
    def list_active_rooms(self) -> List[CatalogRoom]:
        """Rooms that can be booked, by name."""


class InMemoryRoomCatalog(RoomCatalog):
    """Catalog backed by a fixed set of rooms (tests, scripts, embedding)."""

    def __init__(self, rooms: Iterable[CatalogRoom] = ()):
        self._rooms: Dict[int, CatalogRoom] = {r.id: r for r in rooms}

    def add(self, room: CatalogRoom) -> None:
        self._rooms[room.id] = room

    def get_room(self, room_id: int) -> Optional[CatalogRoom]:
        return self._rooms.get(room_id)

    def list_active_rooms(self) -> List[CatalogRoom]:
        return sorted((r for r in self._rooms.values() if r.is_active), key=lambda r: r.name)


def make_service_account_token() -> str:
    payload = {
        "sub": SERVICE_ACCOUNT_USERNAME,
        "role": Role.SERVICE_ACCOUNT.value,
        "user_id": SERVICE_ACCOUNT_USER_ID,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


class HttpRoomCatalog(RoomCatalog):
    """
    Catalog that asks the Rooms service over HTTP.

    Calls go through a circuit breaker; when the Rooms service is down or
    the circuit is open, StorageError is raised so the caller gets a
    generic "try again" answer instead of a wrong decision.
    """

    def __init__(self, base_url: str = ROOMS_SERVICE_URL, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.breaker = rooms_circuit_breaker

    def _get(self, path: str, params: Optional[dict] = None) -> httpx.Response:
        if not self.breaker.allow_request():
            logger.warning("Rooms service circuit open, refusing call to %s", path)
            raise StorageError("Room information is temporarily unavailable, please try again")

        headers = {"Authorization": f"Bearer {make_service_account_token()}"}
        try:
            resp = httpx.get(
                f"{self.base_url}/api/v1{path}",
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.RequestError as exc:
            self.breaker.record_failure()
            logger.warning("Rooms service unreachable for %s: %s", path, exc)
            raise StorageError("Room information is temporarily unavailable, please try again")

        if resp.status_code >= 500:
            self.breaker.record_failure()
            logger.warning("Rooms service returned %s for %s", resp.status_code, path)
            raise StorageError("Room information is temporarily unavailable, please try again")

        self.breaker.record_success()
        return resp

    def get_room(self, room_id: int) -> Optional[CatalogRoom]:
        resp = self._get(f"/rooms/{room_id}")
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            logger.warning("Unexpected %s from Rooms service for room %s", resp.status_code, room_id)
            raise StorageError("Room information is temporarily unavailable, please try again")
        return CatalogRoom.model_validate(resp.json())

    def list_active_rooms(self) -> List[CatalogRoom]:
        resp = self._get("/rooms", params={"status": "active"})
        if resp.status_code != 200:
            raise StorageError("Room information is temporarily unavailable, please try again")
        return [CatalogRoom.model_validate(r) for r in resp.json()]


rooms_circuit_breaker = CircuitBreaker(
    name="rooms_service",
    max_failures=3,
    reset_timeout_seconds=30,
)

_default_catalog = HttpRoomCatalog()


def get_room_catalog() -> RoomCatalog:
    return _default_catalog
