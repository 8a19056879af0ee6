"""Domain error taxonomy for booking lifecycle and dispatch."""

from typing import Optional
from uuid import UUID

from .entities.booking import BookingStatus


class DispatchError(Exception):
    """Base class for all booking dispatch errors."""


class BookingRuleViolation(DispatchError, ValueError):
    """A requested action breaks a booking lifecycle rule."""

    code = "BOOKING_RULE_VIOLATION"


class InvalidTransition(BookingRuleViolation):
    """Requested status change is not in the transition table."""

    code = "INVALID_TRANSITION"

    def __init__(self, current: BookingStatus, requested: BookingStatus, detail: Optional[str] = None):
        self.current = current
        self.requested = requested
        message = f"Cannot transition booking from '{current.value}' to '{requested.value}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CannotReschedule(BookingRuleViolation):
    """Reschedule attempted outside the pending state."""

    code = "CANNOT_RESCHEDULE"

    def __init__(self, status: BookingStatus):
        self.status = status
        super().__init__(f"Booking in status '{status.value}' cannot be rescheduled")


class NoAgentAvailable(DispatchError):
    """No eligible agent was found for a booking."""

    def __init__(self, booking_id: UUID):
        self.booking_id = booking_id
        super().__init__(f"No agent available for booking {booking_id}")


class SequenceUnavailable(DispatchError):
    """The persisted booking number sequence could not be reached."""


class ConcurrentModification(DispatchError):
    """A record changed between read and write."""

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} was modified concurrently")


class TransientDispatchError(DispatchError):
    """An operation kept failing on transient conflicts after bounded retries."""


class BookingNotFound(DispatchError, LookupError):
    """Booking id or number does not resolve."""

    def __init__(self, booking_ref: object):
        self.booking_ref = booking_ref
        super().__init__(f"Booking not found: {booking_ref}")


class DuplicateBookingNumber(DispatchError, ValueError):
    """Booking number is already taken by another booking."""

    def __init__(self, number: str):
        self.number = number
        super().__init__(f"Booking number {number} already exists")
