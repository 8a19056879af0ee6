"""In-memory repository implementations for testing and development."""

import asyncio
import copy
from typing import Dict, List, Optional
from uuid import UUID

from ...application.ports.repositories import (
    AgentDirectory,
    BookingRepository,
    BookingSequenceRepository,
    StatusHistoryRepository,
    UnitOfWork,
)
from ...domain.entities.agent import Agent
from ...domain.entities.booking import Booking, BookingStatus, SkillType
from ...domain.errors import ConcurrentModification, DuplicateBookingNumber, SequenceUnavailable
from ...domain.value_objects.status_history_entry import StatusHistoryEntry


class InMemoryStore:
    """Shared state behind the in-memory repositories.

    Stored entities are private copies; callers always receive their own
    copy, so mutating a loaded booking never touches the store until it is
    saved.
    """

    def __init__(self):
        self.bookings: Dict[UUID, Booking] = {}
        self.history: List[StatusHistoryEntry] = []
        self.agents: Dict[UUID, Agent] = {}
        self.lock = asyncio.Lock()

    def snapshot(self) -> tuple:
        return dict(self.bookings), list(self.history), dict(self.agents)

    def restore(self, snapshot: tuple) -> None:
        bookings, history, agents = snapshot
        self.bookings = bookings
        self.history = history
        self.agents = agents


class InMemoryBookingRepository(BookingRepository):
    """In-memory implementation of booking repository."""

    def __init__(self, store: InMemoryStore):
        self._store = store

    async def add(self, booking: Booking) -> Booking:
        """Insert a new booking."""
        if booking.id in self._store.bookings:
            raise ValueError(f"Booking {booking.id} already exists")
        if any(stored.number == booking.number for stored in self._store.bookings.values()):
            raise DuplicateBookingNumber(booking.number)
        self._store.bookings[booking.id] = copy.deepcopy(booking)
        return booking

    async def save(self, booking: Booking) -> Booking:
        """Update a booking if nobody else changed it since it was loaded."""
        stored = self._store.bookings.get(booking.id)
        if stored is None or stored.version != booking.version:
            raise ConcurrentModification("Booking", booking.id)

        booking.mark_version(booking.version + 1)
        self._store.bookings[booking.id] = copy.deepcopy(booking)
        return booking

    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID."""
        stored = self._store.bookings.get(booking_id)
        return copy.deepcopy(stored) if stored else None

    async def find_by_number(self, number: str) -> Optional[Booking]:
        """Find booking by its number."""
        for stored in self._store.bookings.values():
            if stored.number == number:
                return copy.deepcopy(stored)
        return None

    async def find_by_status(self, status: BookingStatus, limit: Optional[int] = None) -> List[Booking]:
        """Find bookings in a status, oldest first."""
        matches = sorted(
            (booking for booking in self._store.bookings.values() if booking.status == status),
            key=lambda booking: booking.created_at
        )
        if limit is not None:
            matches = matches[:limit]
        return [copy.deepcopy(booking) for booking in matches]


class InMemoryStatusHistoryRepository(StatusHistoryRepository):
    """In-memory implementation of the status history log."""

    def __init__(self, store: InMemoryStore):
        self._store = store

    async def append(self, entry: StatusHistoryEntry) -> StatusHistoryEntry:
        self._store.history.append(entry)
        return entry

    async def list_for_booking(self, booking_id: UUID) -> List[StatusHistoryEntry]:
        return [entry for entry in self._store.history if entry.booking_id == booking_id]

    async def last_for_booking(self, booking_id: UUID) -> Optional[StatusHistoryEntry]:
        for entry in reversed(self._store.history):
            if entry.booking_id == booking_id:
                return entry
        return None


class InMemoryAgentDirectory(AgentDirectory):
    """In-memory implementation of the fleet directory."""

    def __init__(self, store: InMemoryStore):
        self._store = store

    async def list_available_agents(self, skill: SkillType) -> List[Agent]:
        """Get available agents with a skill, ordered by name."""
        agents = [
            agent for agent in self._store.agents.values()
            if agent.is_available() and agent.has_skill(skill)
        ]
        return [copy.deepcopy(agent) for agent in sorted(agents, key=lambda agent: agent.name)]

    async def find_by_id(self, agent_id: UUID) -> Optional[Agent]:
        stored = self._store.agents.get(agent_id)
        return copy.deepcopy(stored) if stored else None

    async def mark_busy(self, agent_id: UUID, booking_id: UUID) -> None:
        """Mark an agent busy, failing if it was taken in the meantime."""
        agent = self._require(agent_id)
        if not agent.is_available():
            raise ConcurrentModification("Agent", agent_id)
        agent.assign(booking_id)
        self._store.agents[agent_id] = agent

    async def mark_available(self, agent_id: UUID, job_completed: bool = False) -> None:
        agent = self._require(agent_id)
        agent.release(job_completed=job_completed)
        self._store.agents[agent_id] = agent

    async def save(self, agent: Agent) -> Agent:
        self._store.agents[agent.id] = copy.deepcopy(agent)
        return agent

    def _require(self, agent_id: UUID) -> Agent:
        stored = self._store.agents.get(agent_id)
        if stored is None:
            raise LookupError(f"Agent not found: {agent_id}")
        return copy.deepcopy(stored)


class InMemoryBookingSequenceRepository(BookingSequenceRepository):
    """In-memory booking number counter.

    ``available`` can be switched off to simulate an unreachable store.
    """

    def __init__(self, start: int = 0):
        self._counters: Dict[str, int] = {}
        self._start = start
        self._lock = asyncio.Lock()
        self.available = True

    async def increment(self, name: str) -> int:
        if not self.available:
            raise SequenceUnavailable(f"Sequence '{name}' is unavailable")

        async with self._lock:
            value = self._counters.get(name, self._start) + 1
            self._counters[name] = value
            return value

    def current(self, name: str) -> int:
        return self._counters.get(name, self._start)


class InMemoryUnitOfWork(UnitOfWork):
    """Unit of work over an InMemoryStore.

    Units of work on the same store run one at a time; a rollback restores
    the store to the state it had when the unit began.
    """

    def __init__(self, store: InMemoryStore):
        self._store = store
        self._snapshot: Optional[tuple] = None
        self.bookings = InMemoryBookingRepository(store)
        self.history = InMemoryStatusHistoryRepository(store)
        self.agents = InMemoryAgentDirectory(store)

    async def begin(self) -> None:
        await self._store.lock.acquire()
        self._snapshot = self._store.snapshot()

    async def commit(self) -> None:
        self._snapshot = None
        self._store.lock.release()

    async def rollback(self) -> None:
        if self._snapshot is not None:
            self._store.restore(self._snapshot)
            self._snapshot = None
        self._store.lock.release()
