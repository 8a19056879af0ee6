"""Agent entity for service technicians."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4
from typing import Iterable, Optional

from .booking import SkillType
from ..value_objects.coordinates import Coordinates


class AgentAvailability(Enum):
    """Agent availability enumeration."""
    AVAILABLE = "available"
    BUSY = "busy"
    OFF_DUTY = "off-duty"


class Agent:
    """Agent entity representing a technician or team that fulfils bookings.

    Dispatch only reads agents. Availability changes go through the fleet
    directory, which is the single source of truth for agent state.
    """

    def __init__(
        self,
        name: str,
        skills: Iterable[SkillType],
        agent_id: Optional[UUID] = None,
        availability: AgentAvailability = AgentAvailability.AVAILABLE,
        current_location: Optional[Coordinates] = None,
        rating: float = 0.0,
        active_booking_id: Optional[UUID] = None,
        completed_jobs: int = 0,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None
    ):
        if not 0.0 <= rating <= 5.0:
            raise ValueError("Rating must be between 0 and 5")

        self._id = agent_id or uuid4()
        self._name = name.strip()
        self._skills = frozenset(skills)
        self._availability = availability
        self._current_location = current_location
        self._rating = float(rating)
        self._active_booking_id = active_booking_id
        self._completed_jobs = completed_jobs
        self._created_at = created_at or datetime.utcnow()
        self._updated_at = updated_at or self._created_at

    @property
    def id(self) -> UUID:
        """Get agent ID."""
        return self._id

    @property
    def name(self) -> str:
        """Get agent display name."""
        return self._name

    @property
    def skills(self) -> frozenset:
        """Get agent skills."""
        return self._skills

    @property
    def availability(self) -> AgentAvailability:
        """Get agent availability."""
        return self._availability

    @property
    def current_location(self) -> Optional[Coordinates]:
        """Get last known agent location."""
        return self._current_location

    @property
    def rating(self) -> float:
        """Get average customer rating."""
        return self._rating

    @property
    def active_booking_id(self) -> Optional[UUID]:
        """Get the booking the agent is working on."""
        return self._active_booking_id

    @property
    def completed_jobs(self) -> int:
        return self._completed_jobs

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        return self._updated_at

    def is_available(self) -> bool:
        """Check if agent can take a new booking."""
        return self._availability == AgentAvailability.AVAILABLE

    def has_skill(self, skill: SkillType) -> bool:
        return skill in self._skills

    def assign(self, booking_id: UUID) -> None:
        """Mark agent busy with a booking."""
        if not self.is_available():
            raise ValueError(f"Agent {self._id} is not available")
        self._availability = AgentAvailability.BUSY
        self._active_booking_id = booking_id
        self._updated_at = datetime.utcnow()

    def release(self, job_completed: bool = False) -> None:
        """Return agent to the available pool."""
        self._availability = AgentAvailability.AVAILABLE
        self._active_booking_id = None
        if job_completed:
            self._completed_jobs += 1
        self._updated_at = datetime.utcnow()

    def go_off_duty(self) -> None:
        """Take agent out of the dispatch pool."""
        self._availability = AgentAvailability.OFF_DUTY
        self._updated_at = datetime.utcnow()

    def move_to(self, location: Coordinates) -> None:
        self._current_location = location
        self._updated_at = datetime.utcnow()

    def __eq__(self, other) -> bool:
        """Check equality based on ID."""
        if not isinstance(other, Agent):
            return False
        return self._id == other._id

    def __hash__(self) -> int:
        """Hash based on ID."""
        return hash(self._id)

    def __str__(self) -> str:
        """String representation."""
        return f"Agent({self._name}, {self._availability.value}, {self._rating:.1f})"

    def __repr__(self) -> str:
        """Detailed string representation."""
        skills = ",".join(sorted(skill.value for skill in self._skills))
        return (f"Agent(id={self._id}, name='{self._name}', skills='{skills}', "
                f"availability='{self._availability.value}', rating={self._rating})")
