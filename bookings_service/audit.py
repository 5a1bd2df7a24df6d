import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .clock import Clock
from .errors import AuditWriteFailure
from .models import AuditAction, BookingAuditEntry

logger = logging.getLogger(__name__)


class AuditLog:
    """
    Append-only trail of booking actions.

    Entries are written in their own commit and never updated or deleted;
    there is deliberately no API for either.
    """

    def __init__(self, db: Session, clock: Clock):
        self.db = db
        self.clock = clock

    def append(
        self,
        booking_id: int,
        action: AuditAction,
        performed_by: int,
        details: Optional[Dict[str, Any]] = None,
    ) -> BookingAuditEntry:
        """
        Record one action.

        Raises
        ------
        AuditWriteFailure
            If the entry cannot be persisted.
        """
        entry = BookingAuditEntry(
            booking_id=booking_id,
            action=action,
            performed_by=performed_by,
            details=details or {},
            created_at=self.clock.now(),
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise AuditWriteFailure(
                f"Could not record {action.value} for booking {booking_id}: {exc}"
            ) from exc
        self.db.refresh(entry)
        return entry

    def list_for_booking(self, booking_id: int) -> List[BookingAuditEntry]:
        """Entries for a booking, oldest first."""
        return (
            self.db.query(BookingAuditEntry)
            .filter(BookingAuditEntry.booking_id == booking_id)
            .order_by(BookingAuditEntry.created_at.asc(), BookingAuditEntry.id.asc())
            .all()
        )
