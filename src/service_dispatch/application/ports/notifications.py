"""Port interface for customer and operations notifications."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from ...domain.entities.booking import Booking


class NotificationEvent(Enum):
    """Booking events published to the notification collaborator."""
    BOOKING_CREATED = "booking_created"
    AGENT_ASSIGNED = "agent_assigned"
    STATUS_CHANGED = "status_changed"
    BOOKING_RESCHEDULED = "booking_rescheduled"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_COMPLETED = "booking_completed"
    UNASSIGNED_ESCALATION = "unassigned_escalation"


class NotificationDispatcher(ABC):
    """Fire-and-forget delivery of booking events.

    Implementations may raise; callers log delivery failures and never undo
    committed booking state because of them.
    """

    @abstractmethod
    async def notify(self, booking: "Booking", event: NotificationEvent, **context: Any) -> None:
        """Deliver a booking event."""
        raise NotImplementedError
