"""Port interfaces for persistence and the fleet directory (Dependency Inversion Principle)."""

from abc import ABC, abstractmethod
from typing import List, Optional, TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from ...domain.entities.agent import Agent
    from ...domain.entities.booking import Booking, BookingStatus, SkillType
    from ...domain.value_objects.status_history_entry import StatusHistoryEntry


class BookingRepository(ABC):
    """Port interface for booking repository."""

    @abstractmethod
    async def add(self, booking: "Booking") -> "Booking":
        """Insert a new booking."""
        raise NotImplementedError

    @abstractmethod
    async def save(self, booking: "Booking") -> "Booking":
        """Update a booking.

        Raises ConcurrentModification when the stored version no longer
        matches ``booking.version``. On success the booking carries the new
        version.
        """
        raise NotImplementedError

    @abstractmethod
    async def find_by_id(self, booking_id: UUID) -> Optional["Booking"]:
        """Find booking by ID."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_number(self, number: str) -> Optional["Booking"]:
        """Find booking by its human-readable number."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_status(self, status: "BookingStatus", limit: Optional[int] = None) -> List["Booking"]:
        """Find bookings in a status, oldest first."""
        raise NotImplementedError


class StatusHistoryRepository(ABC):
    """Port interface for the append-only status history."""

    @abstractmethod
    async def append(self, entry: "StatusHistoryEntry") -> "StatusHistoryEntry":
        """Append a history entry."""
        raise NotImplementedError

    @abstractmethod
    async def list_for_booking(self, booking_id: UUID) -> List["StatusHistoryEntry"]:
        """Get all entries for a booking in the order they were written."""
        raise NotImplementedError

    @abstractmethod
    async def last_for_booking(self, booking_id: UUID) -> Optional["StatusHistoryEntry"]:
        """Get the most recent entry for a booking."""
        raise NotImplementedError


class AgentDirectory(ABC):
    """Port interface for the fleet directory, the source of truth for agent state."""

    @abstractmethod
    async def list_available_agents(self, skill: "SkillType") -> List["Agent"]:
        """Get available agents that have the given skill."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_id(self, agent_id: UUID) -> Optional["Agent"]:
        """Find agent by ID."""
        raise NotImplementedError

    @abstractmethod
    async def mark_busy(self, agent_id: UUID, booking_id: UUID) -> None:
        """Mark an agent busy with a booking.

        Raises ConcurrentModification when the agent is no longer available.
        """
        raise NotImplementedError

    @abstractmethod
    async def mark_available(self, agent_id: UUID, job_completed: bool = False) -> None:
        """Return an agent to the available pool."""
        raise NotImplementedError

    @abstractmethod
    async def save(self, agent: "Agent") -> "Agent":
        """Create or replace an agent record."""
        raise NotImplementedError


class BookingSequenceRepository(ABC):
    """Port interface for the persisted booking number counter."""

    @abstractmethod
    async def increment(self, name: str) -> int:
        """Atomically increment and return the counter.

        Raises SequenceUnavailable when storage cannot be reached.
        """
        raise NotImplementedError


class UnitOfWork(ABC):
    """Atomic scope over bookings, history and agents.

    Used as ``async with uow:``; changes are committed when the block exits
    cleanly and discarded when it raises.
    """

    bookings: BookingRepository
    history: StatusHistoryRepository
    agents: AgentDirectory

    async def __aenter__(self) -> "UnitOfWork":
        await self.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()

    @abstractmethod
    async def begin(self) -> None:
        """Start the unit of work."""
        raise NotImplementedError

    @abstractmethod
    async def commit(self) -> None:
        """Persist all changes."""
        raise NotImplementedError

    @abstractmethod
    async def rollback(self) -> None:
        """Discard all changes."""
        raise NotImplementedError
