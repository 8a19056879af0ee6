"""Booking entity for home-service requests."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4
from typing import Any, Dict, Optional

from ..value_objects.coordinates import Coordinates


class BookingStatus(Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingPriority(Enum):
    """Booking priority enumeration."""
    NORMAL = "normal"
    URGENT = "urgent"
    EMERGENCY = "emergency"


class SkillType(Enum):
    """Service category an agent can fulfil."""
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    EMERGENCY = "emergency"


CANCELLABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})
ASSIGNABLE_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS})


class Booking:
    """Booking entity representing a service request and its dispatch state.

    Status and agent assignment are changed only through BookingLifecycle;
    ``can_cancel`` and ``can_reschedule`` are always derived from ``status``.
    """

    def __init__(
        self,
        number: str,
        required_skill: SkillType,
        scheduled_time: datetime,
        priority: BookingPriority = BookingPriority.NORMAL,
        location: Optional[Coordinates] = None,
        description: str = "",
        customer_id: Optional[UUID] = None,
        booking_id: Optional[UUID] = None,
        status: BookingStatus = BookingStatus.PENDING,
        assigned_agent_id: Optional[UUID] = None,
        estimated_arrival: Optional[datetime] = None,
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
        cancelled_at: Optional[datetime] = None,
        cancel_reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        version: int = 0,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None
    ):
        self._id = booking_id or uuid4()
        self._number = number
        self._required_skill = required_skill
        self._scheduled_time = scheduled_time
        self._priority = priority
        self._location = location
        self._description = description
        self._customer_id = customer_id
        self._status = status
        self._assigned_agent_id = assigned_agent_id
        self._estimated_arrival = estimated_arrival
        self._started_at = started_at
        self._completed_at = completed_at
        self._cancelled_at = cancelled_at
        self._cancel_reason = cancel_reason
        self._metadata = dict(metadata or {})
        self._version = version
        self._created_at = created_at or datetime.utcnow()
        self._updated_at = updated_at or self._created_at

    @property
    def id(self) -> UUID:
        """Get booking ID."""
        return self._id

    @property
    def number(self) -> str:
        """Get human-readable booking number."""
        return self._number

    @property
    def required_skill(self) -> SkillType:
        return self._required_skill

    @property
    def scheduled_time(self) -> datetime:
        return self._scheduled_time

    @property
    def priority(self) -> BookingPriority:
        return self._priority

    @property
    def location(self) -> Optional[Coordinates]:
        return self._location

    @property
    def description(self) -> str:
        return self._description

    @property
    def customer_id(self) -> Optional[UUID]:
        return self._customer_id

    @property
    def status(self) -> BookingStatus:
        """Get booking status."""
        return self._status

    @property
    def assigned_agent_id(self) -> Optional[UUID]:
        """Get the agent currently assigned, if any."""
        return self._assigned_agent_id

    @property
    def estimated_arrival(self) -> Optional[datetime]:
        return self._estimated_arrival

    @property
    def started_at(self) -> Optional[datetime]:
        return self._started_at

    @property
    def completed_at(self) -> Optional[datetime]:
        return self._completed_at

    @property
    def cancelled_at(self) -> Optional[datetime]:
        return self._cancelled_at

    @property
    def cancel_reason(self) -> Optional[str]:
        return self._cancel_reason

    @property
    def metadata(self) -> Dict[str, Any]:
        """Get a copy of the booking metadata."""
        return dict(self._metadata)

    @property
    def version(self) -> int:
        """Get the optimistic concurrency version."""
        return self._version

    @property
    def created_at(self) -> datetime:
        """Get creation timestamp."""
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        """Get last update timestamp."""
        return self._updated_at

    @property
    def can_cancel(self) -> bool:
        """Whether the booking may still be cancelled."""
        return self._status in CANCELLABLE_STATUSES

    @property
    def can_reschedule(self) -> bool:
        """Whether the booking may still be rescheduled."""
        return self._status == BookingStatus.PENDING

    @property
    def used_fallback_number(self) -> bool:
        """Whether the number came from the degraded timestamp path."""
        return bool(self._metadata.get("number_fallback"))

    @property
    def is_terminal(self) -> bool:
        return self._status in (BookingStatus.COMPLETED, BookingStatus.CANCELLED)

    def apply_status(
        self,
        new_status: BookingStatus,
        at: datetime,
        assigned_agent_id: Optional[UUID] = None,
        reason: Optional[str] = None
    ) -> None:
        """Apply an already validated status change."""
        self._status = new_status

        if new_status == BookingStatus.CONFIRMED:
            self._assigned_agent_id = assigned_agent_id
        elif new_status == BookingStatus.IN_PROGRESS:
            self._started_at = at
        elif new_status == BookingStatus.COMPLETED:
            self._completed_at = at
            self._assigned_agent_id = None
        elif new_status == BookingStatus.CANCELLED:
            self._cancelled_at = at
            self._cancel_reason = reason
            self._assigned_agent_id = None
            self._estimated_arrival = None

        self._updated_at = at

    def set_scheduled_time(self, new_time: datetime, at: datetime) -> None:
        self._scheduled_time = new_time
        self._updated_at = at

    def set_estimated_arrival(self, estimated_arrival: Optional[datetime]) -> None:
        self._estimated_arrival = estimated_arrival

    def mark_version(self, version: int) -> None:
        """Record the version persisted by a repository."""
        self._version = version

    def __eq__(self, other: object) -> bool:
        """Check equality based on booking ID."""
        if not isinstance(other, Booking):
            return False
        return self._id == other._id

    def __hash__(self) -> int:
        """Hash based on booking ID."""
        return hash(self._id)

    def __str__(self) -> str:
        """String representation."""
        return f"Booking({self._number}, {self._required_skill.value}, {self._status.value})"
