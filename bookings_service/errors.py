class BookingError(Exception):
    """
    Base class for errors raised by the booking scheduler.

    Attributes
    ----------
    detail : str
        Message safe to show to the caller.
    status_code : int
        HTTP status used when the error reaches the API layer.
    """
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(BookingError):
    """Malformed or out-of-range booking input."""
    status_code = 400


class SlotUnavailable(BookingError):
    """The requested interval overlaps a booking of equal or higher priority."""
    status_code = 409

    def __init__(self, conflicting_ids=()):
        super().__init__(
            "This slot is already reserved. A booking can only override "
            "existing bookings with a strictly higher priority."
        )
        self.conflicting_ids = list(conflicting_ids)


class NotFound(BookingError):
    """Unknown room or booking."""
    status_code = 404


class InvalidTransition(BookingError):
    """The booking is already in a terminal status."""
    status_code = 409


class StorageError(BookingError):
    """Persistence failed; the operation may be retried."""
    status_code = 503

    def __init__(self, detail: str = "Could not save your changes, please try again"):
        super().__init__(detail)


class AuditWriteFailure(BookingError):
    """
    An audit entry could not be written.

    Never surfaced to callers; the primary mutation stands and the failure
    is logged for reconciliation.
    """
    status_code = 500
