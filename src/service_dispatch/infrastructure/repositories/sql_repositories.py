"""SQLAlchemy repository implementations."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..database.connection import DatabaseManager
from ..database.models import AgentModel, BookingModel, BookingSequenceModel, StatusHistoryModel
from ..logging import get_logger, log_database_operation
from ...application.ports.repositories import (
    AgentDirectory,
    BookingRepository,
    BookingSequenceRepository,
    StatusHistoryRepository,
    UnitOfWork,
)
from ...domain.entities.agent import Agent, AgentAvailability
from ...domain.entities.booking import Booking, BookingStatus, SkillType
from ...domain.errors import ConcurrentModification, DuplicateBookingNumber, SequenceUnavailable
from ...domain.value_objects.coordinates import Coordinates
from ...domain.value_objects.status_history_entry import StatusHistoryEntry


def _coordinates(latitude: Optional[float], longitude: Optional[float]) -> Optional[Coordinates]:
    if latitude is None or longitude is None:
        return None
    return Coordinates(lat=latitude, lng=longitude)


class SQLAlchemyBookingRepository(BookingRepository):
    """SQLAlchemy implementation of booking repository."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._logger = get_logger(__name__)

    async def add(self, booking: Booking) -> Booking:
        """Insert a new booking."""
        log_database_operation(self._logger, "INSERT", "bookings", booking_id=str(booking.id))

        self._session.add(BookingModel(id=booking.id, **self._entity_to_values(booking)))
        try:
            await self._session.flush()
        except IntegrityError as e:
            if "booking_number" in str(e.orig):
                raise DuplicateBookingNumber(booking.number) from e
            raise
        return booking

    async def save(self, booking: Booking) -> Booking:
        """Update a booking guarded by its version column."""
        log_database_operation(
            self._logger,
            "UPDATE",
            "bookings",
            booking_id=str(booking.id),
            expected_version=booking.version
        )

        new_version = booking.version + 1
        stmt = (
            update(BookingModel)
            .where(BookingModel.id == booking.id, BookingModel.version == booking.version)
            .values(version=new_version, **self._entity_to_values(booking))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        if result.rowcount == 0:
            self._logger.warning(
                "Booking version mismatch",
                extra={"booking_id": str(booking.id), "expected_version": booking.version}
            )
            raise ConcurrentModification("Booking", booking.id)

        booking.mark_version(new_version)
        return booking

    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID."""
        stmt = select(BookingModel).where(BookingModel.id == booking_id)
        result = await self._session.execute(stmt)
        booking_model = result.scalar_one_or_none()

        if not booking_model:
            return None

        return self._model_to_entity(booking_model)

    async def find_by_number(self, number: str) -> Optional[Booking]:
        """Find booking by its number."""
        stmt = select(BookingModel).where(BookingModel.booking_number == number)
        result = await self._session.execute(stmt)
        booking_model = result.scalar_one_or_none()

        if not booking_model:
            return None

        return self._model_to_entity(booking_model)

    async def find_by_status(self, status: BookingStatus, limit: Optional[int] = None) -> List[Booking]:
        """Find bookings in a status, oldest first."""
        log_database_operation(self._logger, "SELECT", "bookings", status=status.value, limit=limit)

        stmt = select(BookingModel).where(BookingModel.status == status).order_by(BookingModel.created_at)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self._session.execute(stmt)
        return [self._model_to_entity(model) for model in result.scalars().all()]

    def _entity_to_values(self, booking: Booking) -> dict:
        metadata = booking.metadata
        return {
            "booking_number": booking.number,
            "required_skill": booking.required_skill,
            "priority": booking.priority,
            "description": booking.description,
            "scheduled_time": booking.scheduled_time,
            "customer_id": booking.customer_id,
            "latitude": booking.location.lat if booking.location else None,
            "longitude": booking.location.lng if booking.location else None,
            "status": booking.status,
            "assigned_agent_id": booking.assigned_agent_id,
            "estimated_arrival": booking.estimated_arrival,
            "started_at": booking.started_at,
            "completed_at": booking.completed_at,
            "cancelled_at": booking.cancelled_at,
            "cancel_reason": booking.cancel_reason,
            "can_cancel": booking.can_cancel,
            "can_reschedule": booking.can_reschedule,
            "number_fallback": booking.used_fallback_number,
            "booking_metadata": metadata,
            "created_at": booking.created_at,
            "updated_at": booking.updated_at,
        }

    def _model_to_entity(self, model: BookingModel) -> Booking:
        """Convert database model to domain entity."""
        return Booking(
            booking_id=model.id,
            number=model.booking_number,
            required_skill=model.required_skill,
            scheduled_time=model.scheduled_time,
            priority=model.priority,
            location=_coordinates(model.latitude, model.longitude),
            description=model.description,
            customer_id=model.customer_id,
            status=model.status,
            assigned_agent_id=model.assigned_agent_id,
            estimated_arrival=model.estimated_arrival,
            started_at=model.started_at,
            completed_at=model.completed_at,
            cancelled_at=model.cancelled_at,
            cancel_reason=model.cancel_reason,
            metadata=model.booking_metadata,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at
        )


class SQLAlchemyStatusHistoryRepository(StatusHistoryRepository):
    """SQLAlchemy implementation of the append-only status history."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._logger = get_logger(__name__)

    async def append(self, entry: StatusHistoryEntry) -> StatusHistoryEntry:
        """Append a history entry."""
        log_database_operation(
            self._logger,
            "INSERT",
            "booking_status_history",
            booking_id=str(entry.booking_id),
            status=entry.status.value
        )

        self._session.add(StatusHistoryModel(
            id=entry.id,
            booking_id=entry.booking_id,
            status=entry.status,
            previous_status=entry.previous_status,
            note=entry.note,
            changed_by=entry.changed_by,
            entry_metadata=dict(entry.metadata),
            timestamp=entry.timestamp
        ))
        await self._session.flush()
        return entry

    async def list_for_booking(self, booking_id: UUID) -> List[StatusHistoryEntry]:
        """Get all entries for a booking in insertion order."""
        stmt = (
            select(StatusHistoryModel)
            .where(StatusHistoryModel.booking_id == booking_id)
            .order_by(StatusHistoryModel.sequence)
        )
        result = await self._session.execute(stmt)
        return [self._model_to_value_object(model) for model in result.scalars().all()]

    async def last_for_booking(self, booking_id: UUID) -> Optional[StatusHistoryEntry]:
        """Get the most recent entry for a booking."""
        stmt = (
            select(StatusHistoryModel)
            .where(StatusHistoryModel.booking_id == booking_id)
            .order_by(StatusHistoryModel.sequence.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_value_object(model) if model else None

    def _model_to_value_object(self, model: StatusHistoryModel) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            id=model.id,
            booking_id=model.booking_id,
            status=model.status,
            previous_status=model.previous_status,
            note=model.note,
            changed_by=model.changed_by,
            metadata=dict(model.entry_metadata or {}),
            timestamp=model.timestamp
        )


class SQLAlchemyAgentDirectory(AgentDirectory):
    """SQLAlchemy implementation of the fleet directory."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._logger = get_logger(__name__)

    async def list_available_agents(self, skill: SkillType) -> List[Agent]:
        """Get available agents with a skill, ordered by name."""
        log_database_operation(self._logger, "SELECT", "agents", skill=skill.value)

        stmt = (
            select(AgentModel)
            .where(AgentModel.availability == AgentAvailability.AVAILABLE)
            .order_by(AgentModel.name)
        )
        result = await self._session.execute(stmt)
        agents = [self._model_to_entity(model) for model in result.scalars().all()]
        return [agent for agent in agents if agent.has_skill(skill)]

    async def find_by_id(self, agent_id: UUID) -> Optional[Agent]:
        """Find agent by ID."""
        model = await self._session.get(AgentModel, agent_id)
        return self._model_to_entity(model) if model else None

    async def mark_busy(self, agent_id: UUID, booking_id: UUID) -> None:
        """Claim an agent only if it is still available."""
        log_database_operation(
            self._logger,
            "UPDATE",
            "agents",
            agent_id=str(agent_id),
            booking_id=str(booking_id),
            availability=AgentAvailability.BUSY.value
        )

        stmt = (
            update(AgentModel)
            .where(AgentModel.id == agent_id, AgentModel.availability == AgentAvailability.AVAILABLE)
            .values(
                availability=AgentAvailability.BUSY,
                active_booking_id=booking_id,
                updated_at=datetime.utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        if result.rowcount == 0:
            if await self._session.get(AgentModel, agent_id) is None:
                raise LookupError(f"Agent not found: {agent_id}")
            raise ConcurrentModification("Agent", agent_id)

    async def mark_available(self, agent_id: UUID, job_completed: bool = False) -> None:
        """Return an agent to the available pool."""
        log_database_operation(
            self._logger,
            "UPDATE",
            "agents",
            agent_id=str(agent_id),
            availability=AgentAvailability.AVAILABLE.value,
            job_completed=job_completed
        )

        stmt = (
            update(AgentModel)
            .where(AgentModel.id == agent_id)
            .values(
                availability=AgentAvailability.AVAILABLE,
                active_booking_id=None,
                completed_jobs=AgentModel.completed_jobs + (1 if job_completed else 0),
                updated_at=datetime.utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        if result.rowcount == 0:
            raise LookupError(f"Agent not found: {agent_id}")

    async def save(self, agent: Agent) -> Agent:
        """Create or replace an agent record."""
        existing = await self._session.get(AgentModel, agent.id)
        location = agent.current_location

        if existing:
            existing.name = agent.name
            existing.skills = sorted(skill.value for skill in agent.skills)
            existing.availability = agent.availability
            existing.latitude = location.lat if location else None
            existing.longitude = location.lng if location else None
            existing.rating = agent.rating
            existing.active_booking_id = agent.active_booking_id
            existing.completed_jobs = agent.completed_jobs
            existing.updated_at = datetime.utcnow()
        else:
            self._session.add(AgentModel(
                id=agent.id,
                name=agent.name,
                skills=sorted(skill.value for skill in agent.skills),
                availability=agent.availability,
                latitude=location.lat if location else None,
                longitude=location.lng if location else None,
                rating=agent.rating,
                active_booking_id=agent.active_booking_id,
                completed_jobs=agent.completed_jobs,
                created_at=agent.created_at,
                updated_at=agent.updated_at
            ))

        await self._session.flush()
        return agent

    def _model_to_entity(self, model: AgentModel) -> Agent:
        """Convert database model to domain entity."""
        return Agent(
            agent_id=model.id,
            name=model.name,
            skills=[SkillType(value) for value in model.skills or []],
            availability=model.availability,
            current_location=_coordinates(model.latitude, model.longitude),
            rating=float(model.rating),
            active_booking_id=model.active_booking_id,
            completed_jobs=model.completed_jobs,
            created_at=model.created_at,
            updated_at=model.updated_at
        )


class SQLAlchemyBookingSequenceRepository(BookingSequenceRepository):
    """Booking number counter stored in the booking_sequences table.

    Each increment runs in its own short transaction so that a failure here
    never affects the booking transaction that asked for the number.
    """

    def __init__(self, database_manager: DatabaseManager):
        self._database_manager = database_manager
        self._logger = get_logger(__name__)

    async def increment(self, name: str) -> int:
        try:
            try:
                return await self._increment(name)
            except IntegrityError:
                # Another worker created the counter row first
                return await self._increment(name)
        except (SQLAlchemyError, OSError) as e:
            raise SequenceUnavailable(f"Sequence '{name}' is unavailable: {e}") from e

    async def _increment(self, name: str) -> int:
        log_database_operation(self._logger, "UPDATE", "booking_sequences", sequence_name=name)

        async with self._database_manager.get_session() as session:
            stmt = (
                update(BookingSequenceModel)
                .where(BookingSequenceModel.name == name)
                .values(last_number=BookingSequenceModel.last_number + 1, updated_at=datetime.utcnow())
                .returning(BookingSequenceModel.last_number)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            value = result.scalar_one_or_none()

            if value is None:
                self._logger.info("Creating booking sequence", extra={"sequence_name": name})
                session.add(BookingSequenceModel(name=name, last_number=1))
                await session.flush()
                value = 1

            return value


class SQLAlchemyUnitOfWork(UnitOfWork):
    """Unit of work backed by one AsyncSession."""

    def __init__(self, database_manager: DatabaseManager):
        self._database_manager = database_manager
        self._session: Optional[AsyncSession] = None

    async def begin(self) -> None:
        self._session = self._database_manager.session_factory()
        self.bookings = SQLAlchemyBookingRepository(self._session)
        self.history = SQLAlchemyStatusHistoryRepository(self._session)
        self.agents = SQLAlchemyAgentDirectory(self._session)

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise
        finally:
            await self._session.close()

    async def rollback(self) -> None:
        try:
            await self._session.rollback()
        finally:
            await self._session.close()
