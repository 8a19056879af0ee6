"""Status history entry value object for booking audit trails."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from ..entities.booking import BookingStatus


@dataclass(frozen=True)
class StatusHistoryEntry:
    """Immutable record of one booking status change.

    Entries are append-only and written in the same unit of work as the
    booking state they describe.
    """

    booking_id: UUID
    status: BookingStatus
    previous_status: Optional[BookingStatus] = None
    note: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)
    changed_by: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)

    @property
    def is_initial(self) -> bool:
        """Check if this entry records booking creation."""
        return self.previous_status is None

    @property
    def is_status_change(self) -> bool:
        """Check if the status actually changed (reschedules keep it)."""
        return self.previous_status is not None and self.previous_status != self.status
