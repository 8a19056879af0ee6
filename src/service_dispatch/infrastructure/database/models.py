"""SQLAlchemy database models."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, String, DateTime, Boolean, Integer, BigInteger, Text, Enum as SQLEnum, ForeignKey, Identity, JSON, Numeric, Float
from sqlalchemy.dialects.postgresql import UUID as PostgresUUID
from sqlalchemy.orm import declarative_base

from ...domain.entities.agent import AgentAvailability
from ...domain.entities.booking import BookingPriority, BookingStatus, SkillType

Base = declarative_base()


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


booking_status_enum = SQLEnum(BookingStatus, name="booking_status", values_callable=_enum_values)


class AgentModel(Base):
    """SQLAlchemy model for service agents (teams)."""

    __tablename__ = "agents"

    # Primary key
    id = Column(PostgresUUID(as_uuid=True), primary_key=True, default=uuid4)

    # Agent details
    name = Column(String(255), nullable=False)
    skills = Column(JSON, nullable=False, default=list)  # JSON array of skill values
    availability = Column(
        SQLEnum(AgentAvailability, name="agent_availability", values_callable=_enum_values),
        nullable=False,
        default=AgentAvailability.AVAILABLE,
        index=True
    )

    # Last known position
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Performance
    rating = Column(Numeric(precision=3, scale=2), nullable=False, default=0)
    completed_jobs = Column(Integer, nullable=False, default=0)

    # Current work
    active_booking_id = Column(PostgresUUID(as_uuid=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<AgentModel(id={self.id}, name='{self.name}', availability='{self.availability}')>"


class BookingModel(Base):
    """SQLAlchemy model for bookings."""

    __tablename__ = "bookings"

    # Primary key
    id = Column(PostgresUUID(as_uuid=True), primary_key=True, default=uuid4)
    booking_number = Column(String(20), nullable=False, unique=True, index=True)

    # Request details
    required_skill = Column(SQLEnum(SkillType, name="skill_type", values_callable=_enum_values), nullable=False, index=True)
    priority = Column(
        SQLEnum(BookingPriority, name="booking_priority", values_callable=_enum_values),
        nullable=False,
        default=BookingPriority.NORMAL,
        index=True
    )
    description = Column(Text, nullable=False, default="")
    scheduled_time = Column(DateTime, nullable=False, index=True)
    customer_id = Column(PostgresUUID(as_uuid=True), nullable=True, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Lifecycle
    status = Column(
        booking_status_enum,
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    assigned_agent_id = Column(PostgresUUID(as_uuid=True), ForeignKey('agents.id'), nullable=True, index=True)
    estimated_arrival = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)

    # Derived from status on every write, kept for reporting
    can_cancel = Column(Boolean, nullable=False, default=True)
    can_reschedule = Column(Boolean, nullable=False, default=True)

    # Bookkeeping
    number_fallback = Column(Boolean, nullable=False, default=False, index=True)
    booking_metadata = Column("metadata", JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<BookingModel(id={self.id}, booking_number='{self.booking_number}', status='{self.status}')>"


class StatusHistoryModel(Base):
    """SQLAlchemy model for the append-only booking status history."""

    __tablename__ = "booking_status_history"

    # Primary key
    id = Column(PostgresUUID(as_uuid=True), primary_key=True, default=uuid4)

    # Insertion order within a booking
    sequence = Column(BigInteger, Identity(), nullable=False, index=True)

    booking_id = Column(PostgresUUID(as_uuid=True), ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(booking_status_enum, nullable=False)
    previous_status = Column(booking_status_enum, nullable=True)
    note = Column(Text, nullable=True)
    changed_by = Column(String(255), nullable=True)
    entry_metadata = Column("metadata", JSON, nullable=False, default=dict)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<StatusHistoryModel(booking_id={self.booking_id}, status='{self.status}', previous='{self.previous_status}')>"


class BookingSequenceModel(Base):
    """SQLAlchemy model for named booking number counters."""

    __tablename__ = "booking_sequences"

    name = Column(String(50), primary_key=True)
    last_number = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<BookingSequenceModel(name='{self.name}', last_number={self.last_number})>"
