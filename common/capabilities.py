# common/capabilities.py
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import Dict, FrozenSet


class Role(str, PyEnum):
    """
    Roles carried in the ``role`` claim of access tokens.

    Values
    ------
    admin
        Full access to rooms and bookings.
    facility_manager
        Manages rooms and may cancel any booking.
    regular
        Books rooms and manages their own bookings.
    auditor
        Read-only access, including audit trails.
    service_account
        Internal service-to-service calls (read-only).
    """
    ADMIN = "admin"
    FACILITY_MANAGER = "facility_manager"
    REGULAR = "regular"
    AUDITOR = "auditor"
    SERVICE_ACCOUNT = "service_account"


class Capability(str, PyEnum):
    VIEW_ROOMS = "view_rooms"
    MANAGE_ROOMS = "manage_rooms"
    BOOK_ROOM = "book_room"
    VIEW_AVAILABILITY = "view_availability"
    CANCEL_ANY_BOOKING = "cancel_any_booking"
    VIEW_ANY_BOOKING = "view_any_booking"
    VIEW_AUDIT_TRAIL = "view_audit_trail"


ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.FACILITY_MANAGER: frozenset(Capability),
    Role.REGULAR: frozenset(
        {Capability.VIEW_ROOMS, Capability.BOOK_ROOM, Capability.VIEW_AVAILABILITY}
    ),
    Role.AUDITOR: frozenset(
        {
            Capability.VIEW_ROOMS,
            Capability.VIEW_AVAILABILITY,
            Capability.VIEW_ANY_BOOKING,
            Capability.VIEW_AUDIT_TRAIL,
        }
    ),
    Role.SERVICE_ACCOUNT: frozenset(
        {Capability.VIEW_ROOMS, Capability.VIEW_AVAILABILITY}
    ),
}


class PermissionDenied(Exception):
    """Raised when a caller lacks the capability required for an operation."""

    def __init__(self, detail: str = "Operation not permitted for this role"):
        super().__init__(detail)
        self.detail = detail


@dataclass(frozen=True)
class Caller:
    """
    Identity of whoever is invoking an operation.

    Built from decoded token claims at the HTTP boundary and passed
    explicitly into every service call.
    """
    user_id: int
    username: str
    role: Role

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES.get(self.role, frozenset())


def ensure_capability(caller: Caller, capability: Capability) -> None:
    """
    Raise PermissionDenied unless ``caller`` holds ``capability``.
    """
    if not caller.can(capability):
        raise PermissionDenied()
