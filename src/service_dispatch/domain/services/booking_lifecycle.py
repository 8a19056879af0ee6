"""Booking lifecycle state machine."""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Optional
from uuid import UUID

from ..entities.booking import Booking, BookingStatus
from ..errors import CannotReschedule, InvalidTransition
from ..value_objects.status_history_entry import StatusHistoryEntry


TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED}),
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class TransitionResult:
    """Updated booking paired with the history entry that must be stored with it."""

    booking: Booking
    entry: StatusHistoryEntry


class BookingLifecycle:
    """Enforces legal booking status transitions.

    Every successful operation returns the booking together with its
    StatusHistoryEntry; persisting the two separately is never correct.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or datetime.utcnow

    @staticmethod
    def allowed_transitions(status: BookingStatus) -> FrozenSet[BookingStatus]:
        """Get statuses reachable from the given status."""
        return TRANSITIONS[status]

    @staticmethod
    def is_terminal(status: BookingStatus) -> bool:
        """Check if no transition leaves the given status."""
        return not TRANSITIONS[status]

    def can_transition(self, booking: Booking, new_status: BookingStatus) -> bool:
        return new_status in TRANSITIONS[booking.status]

    def initial_entry(
        self,
        booking: Booking,
        note: Optional[str] = "Booking created successfully",
        changed_by: Optional[str] = None
    ) -> StatusHistoryEntry:
        """Create the history entry recording booking creation."""
        return StatusHistoryEntry(
            booking_id=booking.id,
            status=booking.status,
            previous_status=None,
            note=note,
            timestamp=booking.created_at,
            changed_by=changed_by,
            metadata={"number": booking.number, "number_fallback": booking.used_fallback_number}
        )

    def transition(
        self,
        booking: Booking,
        new_status: BookingStatus,
        note: Optional[str] = None,
        *,
        assigned_agent_id: Optional[UUID] = None,
        changed_by: Optional[str] = None
    ) -> TransitionResult:
        """Move a booking to a new status.

        Raises:
            InvalidTransition: the move is not in the transition table, or an
                agent was supplied for a status other than confirmed. The
                booking is left untouched.
        """
        current = booking.status

        if new_status not in TRANSITIONS[current]:
            raise InvalidTransition(current, new_status)
        if assigned_agent_id is not None and new_status != BookingStatus.CONFIRMED:
            raise InvalidTransition(current, new_status, "agents are only assigned on confirmation")

        now = self._clock()
        released_agent_id = booking.assigned_agent_id

        booking.apply_status(
            new_status,
            at=now,
            assigned_agent_id=assigned_agent_id,
            reason=note if new_status == BookingStatus.CANCELLED else None
        )

        metadata = {}
        if assigned_agent_id is not None:
            metadata["assigned_agent_id"] = str(assigned_agent_id)
        if released_agent_id is not None and booking.assigned_agent_id is None:
            metadata["released_agent_id"] = str(released_agent_id)

        entry = StatusHistoryEntry(
            booking_id=booking.id,
            status=new_status,
            previous_status=current,
            note=note,
            timestamp=now,
            changed_by=changed_by,
            metadata=metadata
        )
        return TransitionResult(booking=booking, entry=entry)

    def reschedule(
        self,
        booking: Booking,
        new_time: datetime,
        reason: str,
        changed_by: Optional[str] = None
    ) -> TransitionResult:
        """Move a pending booking to a new scheduled time.

        Raises:
            CannotReschedule: the booking is no longer pending.
        """
        if not booking.can_reschedule:
            raise CannotReschedule(booking.status)

        now = self._clock()
        previous_time = booking.scheduled_time
        booking.set_scheduled_time(new_time, at=now)

        entry = StatusHistoryEntry(
            booking_id=booking.id,
            status=booking.status,
            previous_status=booking.status,
            note=f"Rescheduled: {reason}. New time: {new_time.isoformat()}",
            timestamp=now,
            changed_by=changed_by,
            metadata={
                "previous_scheduled_time": previous_time.isoformat(),
                "scheduled_time": new_time.isoformat(),
            }
        )
        return TransitionResult(booking=booking, entry=entry)
