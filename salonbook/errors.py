# salonbook/errors.py


class BookingError(Exception):
    """Base class for errors raised by the scheduling core."""


class ValidationError(BookingError):
    """Client-supplied data is malformed. Reported per field."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class SlotTakenError(BookingError):
    """Another booking won the race for the requested slot."""

    def __init__(self, message: str = "This time was just taken by another client. Please choose another time."):
        super().__init__(message)
        self.message = message


class IllegalTransitionError(BookingError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change appointment status from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class ReconciliationError(BookingError):
    """The ledger side effect of a completion failed. The status change stands."""

    def __init__(self, appointment_id: int, reason: str):
        super().__init__(f"Financial processing failed for appointment {appointment_id}: {reason}")
        self.appointment_id = appointment_id
        self.reason = reason


class TransportError(BookingError):
    """The data store could not be reached. The caller may retry."""
