"""Dispatch coordinator orchestrating booking creation, dispatch and lifecycle events."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from ..ports.notifications import NotificationDispatcher, NotificationEvent
from ..ports.repositories import UnitOfWork
from ..schemas.booking_schemas import BookingRequest
from .dispatch_retry import DEFAULT_NORMAL_POLICY, DEFAULT_URGENT_POLICY, DispatchRetryScheduler
from .sequence_generator import BookingNumber, SequenceGenerator
from ...domain.entities.agent import Agent
from ...domain.entities.booking import Booking, BookingStatus
from ...domain.errors import (
    BookingNotFound,
    BookingRuleViolation,
    ConcurrentModification,
    DuplicateBookingNumber,
    InvalidTransition,
    NoAgentAvailable,
    TransientDispatchError,
)
from ...domain.services.booking_lifecycle import BookingLifecycle
from ...domain.services.dispatch_engine import DispatchEngine, ScoredCandidate, eligible_skills
from ...domain.value_objects.retry_policy import RetryPolicy
from ...domain.value_objects.status_history_entry import StatusHistoryEntry
from ...infrastructure.logging import (
    log_business_rule_violation,
    log_dispatch_decision,
    log_state_transition,
)

MAX_NUMBER_ATTEMPTS = 5


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of one dispatch attempt."""

    booking: Booking
    candidate: Optional[ScoredCandidate] = None

    @property
    def matched(self) -> bool:
        return self.candidate is not None

    @property
    def agent(self) -> Optional[Agent]:
        return self.candidate.agent if self.candidate else None


class DispatchCoordinator:
    """Application service for the booking lifecycle and agent dispatch.

    Every operation that touches more than one record runs inside a single
    unit of work, so a booking status change, its history entry and the
    matching agent availability change are committed together or not at
    all. Notifications are sent only after the commit.
    """

    def __init__(
        self,
        unit_of_work_factory: Callable[[], UnitOfWork],
        sequence_generator: SequenceGenerator,
        notifier: NotificationDispatcher,
        dispatch_engine: Optional[DispatchEngine] = None,
        lifecycle: Optional[BookingLifecycle] = None,
        urgent_retry_policy: RetryPolicy = DEFAULT_URGENT_POLICY,
        normal_retry_policy: RetryPolicy = DEFAULT_NORMAL_POLICY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self._uow_factory = unit_of_work_factory
        self._sequence_generator = sequence_generator
        self._notifier = notifier
        self._engine = dispatch_engine or DispatchEngine()
        self._lifecycle = lifecycle or BookingLifecycle(clock=clock)
        self._clock = clock or datetime.utcnow
        self._retry_scheduler = DispatchRetryScheduler(
            attempt=self._retry_attempt,
            on_exhausted=self._escalate,
            urgent_policy=urgent_retry_policy,
            normal_policy=normal_retry_policy,
            sleep=sleep
        )
        self._logger = logging.getLogger(__name__)

    @property
    def retry_scheduler(self) -> DispatchRetryScheduler:
        return self._retry_scheduler

    async def create_booking(self, request: BookingRequest, changed_by: Optional[str] = None) -> Booking:
        """Create a booking, try to dispatch it and announce it.

        A number already taken by another booking (a timestamp fallback
        meeting a counter value) is replaced with a fresh one.
        """
        for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
            booking = self._new_booking(request, await self._sequence_generator.next_number())
            entry = self._lifecycle.initial_entry(booking, changed_by=changed_by)

            try:
                async with self._uow_factory() as uow:
                    await uow.bookings.add(booking)
                    await uow.history.append(entry)
            except DuplicateBookingNumber as e:
                if attempt == MAX_NUMBER_ATTEMPTS:
                    raise
                self._logger.warning(
                    "Booking number already taken, drawing a new one",
                    extra={"booking_number": e.number, "attempt": attempt}
                )
                continue
            break

        self._logger.info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "booking_number": booking.number,
                "priority": booking.priority.value,
                "required_skill": booking.required_skill.value,
            }
        )

        outcome = await self._dispatch_or_defer(booking)

        await self._emit(outcome.booking, NotificationEvent.BOOKING_CREATED)
        if outcome.matched:
            await self._announce_assignment(outcome)
        else:
            self._retry_scheduler.schedule(booking.id, booking.priority)

        return outcome.booking

    async def dispatch_booking(self, booking_id: UUID) -> DispatchOutcome:
        """Try to match a pending booking with the best available agent.

        Bookings that are no longer pending are returned unchanged.
        """
        return await self._with_conflict_retry(self._dispatch_once, booking_id)

    async def assign_agent(self, booking_id: UUID, agent_id: UUID, changed_by: Optional[str] = None) -> Booking:
        """Confirm a pending booking with a manually chosen agent."""
        outcome = await self._with_conflict_retry(self._assign_once, booking_id, agent_id, changed_by)
        self._retry_scheduler.cancel(booking_id)
        await self._announce_assignment(outcome)
        return outcome.booking

    async def cancel_booking(self, booking_id: UUID, reason: str, changed_by: Optional[str] = None) -> Booking:
        """Cancel a booking and release its agent in the same unit of work."""
        booking = await self._with_conflict_retry(
            self._transition_once, booking_id, BookingStatus.CANCELLED, reason, changed_by
        )
        self._retry_scheduler.cancel(booking_id)
        await self._emit(booking, NotificationEvent.BOOKING_CANCELLED, reason=reason)
        return booking

    async def start_work(self, booking_id: UUID, note: Optional[str] = None, changed_by: Optional[str] = None) -> Booking:
        """Mark a confirmed booking as in progress."""
        booking = await self._with_conflict_retry(
            self._transition_once, booking_id, BookingStatus.IN_PROGRESS, note or "Work started", changed_by
        )
        await self._emit(booking, NotificationEvent.STATUS_CHANGED)
        return booking

    async def complete_booking(self, booking_id: UUID, note: Optional[str] = None, changed_by: Optional[str] = None) -> Booking:
        """Complete a booking and release its agent in the same unit of work."""
        booking = await self._with_conflict_retry(
            self._transition_once, booking_id, BookingStatus.COMPLETED, note or "Work completed", changed_by
        )
        await self._emit(booking, NotificationEvent.BOOKING_COMPLETED)
        return booking

    async def transition_booking(
        self,
        booking_id: UUID,
        new_status: BookingStatus,
        note: Optional[str] = None,
        changed_by: Optional[str] = None,
        agent_id: Optional[UUID] = None
    ) -> Booking:
        """Apply an arbitrary status change requested by operations staff.

        Confirming needs an agent and goes through the assignment path.
        """
        if new_status == BookingStatus.CONFIRMED:
            if agent_id is not None:
                return await self.assign_agent(booking_id, agent_id, changed_by)
            booking = await self.get_booking(booking_id)
            if booking is None:
                raise BookingNotFound(booking_id)
            error = InvalidTransition(booking.status, BookingStatus.CONFIRMED, "an agent is required")
            log_business_rule_violation(self._logger, error.code, str(error), booking_id=str(booking_id))
            raise error
        if new_status == BookingStatus.CANCELLED:
            return await self.cancel_booking(booking_id, note or "Cancelled by operations", changed_by)
        if new_status == BookingStatus.COMPLETED:
            return await self.complete_booking(booking_id, note, changed_by)

        booking = await self._with_conflict_retry(
            self._transition_once, booking_id, new_status, note, changed_by
        )
        if booking.status != BookingStatus.PENDING:
            self._retry_scheduler.cancel(booking_id)
        await self._emit(booking, NotificationEvent.STATUS_CHANGED)
        return booking

    async def reschedule_booking(
        self,
        booking_id: UUID,
        new_time: datetime,
        reason: str,
        changed_by: Optional[str] = None
    ) -> Booking:
        """Move a pending booking to a new time and dispatch it again."""
        booking = await self._with_conflict_retry(
            self._reschedule_once, booking_id, new_time, reason, changed_by
        )
        await self._emit(booking, NotificationEvent.BOOKING_RESCHEDULED, reason=reason)

        outcome = await self._dispatch_or_defer(booking)
        if outcome.matched:
            self._retry_scheduler.cancel(booking_id)
            await self._announce_assignment(outcome)
        else:
            self._retry_scheduler.schedule(booking_id, booking.priority)
        return outcome.booking

    async def get_booking(self, booking_id: UUID) -> Optional[Booking]:
        """Get a specific booking by ID."""
        async with self._uow_factory() as uow:
            return await uow.bookings.find_by_id(booking_id)

    async def get_booking_by_number(self, number: str) -> Optional[Booking]:
        """Get a specific booking by its number."""
        async with self._uow_factory() as uow:
            return await uow.bookings.find_by_number(number)

    async def get_history(self, booking_id: UUID) -> List[StatusHistoryEntry]:
        """Get the status history of a booking, oldest first."""
        async with self._uow_factory() as uow:
            return await uow.history.list_for_booking(booking_id)

    async def suggest_agents(self, booking_id: UUID, limit: int = 3) -> List[ScoredCandidate]:
        """Rank available agents for a booking without assigning anyone."""
        async with self._uow_factory() as uow:
            booking = await self._load(uow, booking_id)
            pool = await self._candidate_pool(uow, booking)
        return self._engine.suggest_agents(booking, pool, limit=limit)

    async def sweep_pending_bookings(self, limit: Optional[int] = None) -> int:
        """Dispatch every pending booking that has no retry loop running.

        Returns the number of bookings matched.
        """
        async with self._uow_factory() as uow:
            pending = await uow.bookings.find_by_status(BookingStatus.PENDING, limit=limit)

        matched = 0
        for booking in pending:
            if self._retry_scheduler.is_scheduled(booking.id):
                continue
            outcome = await self._dispatch_or_defer(booking)
            if outcome.matched:
                matched += 1
                await self._announce_assignment(outcome)

        self._logger.info(
            "Pending booking sweep finished",
            extra={"pending_count": len(pending), "matched_count": matched}
        )
        return matched

    async def shutdown(self) -> None:
        """Stop background retry loops."""
        await self._retry_scheduler.shutdown()

    async def _dispatch_once(self, booking_id: UUID) -> DispatchOutcome:
        async with self._uow_factory() as uow:
            booking = await self._load(uow, booking_id)
            if booking.status != BookingStatus.PENDING:
                return DispatchOutcome(booking=booking)

            pool = await self._candidate_pool(uow, booking)
            ranked = self._engine.rank_candidates(booking, pool)
            candidate = ranked[0] if ranked else None
            log_dispatch_decision(
                self._logger,
                booking_id=booking.id,
                candidate_count=len(ranked),
                pool_size=len(pool),
                agent_id=candidate.agent.id if candidate else None,
                score=candidate.score if candidate else None
            )
            if candidate is None:
                return DispatchOutcome(booking=booking)

            await self._confirm_with_agent(uow, booking, candidate, None)
        return DispatchOutcome(booking=booking, candidate=candidate)

    async def _assign_once(self, booking_id: UUID, agent_id: UUID, changed_by: Optional[str]) -> DispatchOutcome:
        async with self._uow_factory() as uow:
            booking = await self._load(uow, booking_id)
            if booking.status != BookingStatus.PENDING:
                raise InvalidTransition(booking.status, BookingStatus.CONFIRMED)

            agent = await uow.agents.find_by_id(agent_id)
            if agent is None:
                raise LookupError(f"Agent not found: {agent_id}")
            if not self._engine.is_eligible(booking, agent):
                raise NoAgentAvailable(booking.id)

            candidate = self._engine.find_best_candidate(booking, [agent])
            await self._confirm_with_agent(uow, booking, candidate, changed_by)
        return DispatchOutcome(booking=booking, candidate=candidate)

    async def _confirm_with_agent(
        self,
        uow: UnitOfWork,
        booking: Booking,
        candidate: ScoredCandidate,
        changed_by: Optional[str]
    ) -> None:
        agent = candidate.agent
        previous_status = booking.status

        await uow.agents.mark_busy(agent.id, booking.id)
        result = self._lifecycle.transition(
            booking,
            BookingStatus.CONFIRMED,
            note=f"Assigned to {agent.name}",
            assigned_agent_id=agent.id,
            changed_by=changed_by
        )
        booking.set_estimated_arrival(result.entry.timestamp + timedelta(minutes=candidate.eta_minutes))
        await uow.bookings.save(booking)
        await uow.history.append(result.entry)
        log_state_transition(self._logger, booking.id, previous_status, booking.status, agent_id=agent.id)

    async def _transition_once(
        self,
        booking_id: UUID,
        new_status: BookingStatus,
        note: Optional[str],
        changed_by: Optional[str]
    ) -> Booking:
        async with self._uow_factory() as uow:
            booking = await self._load(uow, booking_id)
            previous_status = booking.status
            agent_id = booking.assigned_agent_id

            try:
                result = self._lifecycle.transition(booking, new_status, note, changed_by=changed_by)
            except BookingRuleViolation as e:
                log_business_rule_violation(self._logger, e.code, str(e), booking_id=str(booking_id))
                raise

            await uow.bookings.save(booking)
            await uow.history.append(result.entry)
            if agent_id is not None and booking.assigned_agent_id is None:
                await uow.agents.mark_available(agent_id, job_completed=new_status == BookingStatus.COMPLETED)

        log_state_transition(self._logger, booking.id, previous_status, booking.status, agent_id=agent_id)
        return booking

    async def _reschedule_once(
        self,
        booking_id: UUID,
        new_time: datetime,
        reason: str,
        changed_by: Optional[str]
    ) -> Booking:
        async with self._uow_factory() as uow:
            booking = await self._load(uow, booking_id)
            try:
                result = self._lifecycle.reschedule(booking, new_time, reason, changed_by=changed_by)
            except BookingRuleViolation as e:
                log_business_rule_violation(self._logger, e.code, str(e), booking_id=str(booking_id))
                raise

            await uow.bookings.save(booking)
            await uow.history.append(result.entry)
        return booking

    def _new_booking(self, request: BookingRequest, booking_number: BookingNumber) -> Booking:
        metadata: Dict[str, Any] = {}
        if booking_number.fallback:
            metadata["number_fallback"] = True
        if request.urgent_reason:
            metadata["urgent_reason"] = request.urgent_reason

        return Booking(
            number=booking_number.value,
            required_skill=request.required_skill,
            scheduled_time=request.scheduled_time,
            priority=request.priority,
            location=request.location.to_coordinates() if request.location else None,
            description=request.description,
            customer_id=request.customer_id,
            metadata=metadata,
            created_at=self._clock()
        )

    async def _candidate_pool(self, uow: UnitOfWork, booking: Booking) -> List[Agent]:
        pool: Dict[UUID, Agent] = {}
        for skill in sorted(eligible_skills(booking), key=lambda s: s.value):
            for agent in await uow.agents.list_available_agents(skill):
                pool.setdefault(agent.id, agent)
        return list(pool.values())

    async def _load(self, uow: UnitOfWork, booking_id: UUID) -> Booking:
        booking = await uow.bookings.find_by_id(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    async def _with_conflict_retry(self, operation: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        try:
            return await operation(*args)
        except ConcurrentModification as e:
            self._logger.warning(
                "Concurrent modification detected, retrying with fresh state",
                extra={"entity": e.entity, "entity_id": str(e.entity_id)}
            )

        try:
            return await operation(*args)
        except ConcurrentModification as e:
            raise TransientDispatchError(
                f"{e.entity} {e.entity_id} kept changing; try again later"
            ) from e

    async def _dispatch_or_defer(self, booking: Booking) -> DispatchOutcome:
        try:
            return await self.dispatch_booking(booking.id)
        except TransientDispatchError as e:
            self._logger.warning(
                "Dispatch deferred after repeated conflicts",
                extra={"booking_id": str(booking.id), "error": str(e)}
            )
            return DispatchOutcome(booking=booking)

    async def _retry_attempt(self, booking_id: UUID) -> None:
        try:
            outcome = await self.dispatch_booking(booking_id)
        except BookingNotFound:
            return

        if outcome.matched:
            await self._announce_assignment(outcome)
            return
        if outcome.booking.status != BookingStatus.PENDING:
            return
        raise NoAgentAvailable(booking_id)

    async def _escalate(self, booking_id: UUID) -> None:
        booking = await self.get_booking(booking_id)
        if booking is None or booking.status != BookingStatus.PENDING:
            return

        self._logger.error(
            "Booking unassigned after retries, needs manual escalation",
            extra={"booking_id": str(booking.id), "booking_number": booking.number}
        )
        await self._emit(booking, NotificationEvent.UNASSIGNED_ESCALATION)

    async def _announce_assignment(self, outcome: DispatchOutcome) -> None:
        await self._emit(
            outcome.booking,
            NotificationEvent.AGENT_ASSIGNED,
            agent_id=str(outcome.agent.id),
            agent_name=outcome.agent.name,
            eta_minutes=outcome.candidate.eta_minutes
        )

    async def _emit(self, booking: Booking, event: NotificationEvent, **context: Any) -> None:
        try:
            await self._notifier.notify(booking, event, **context)
        except Exception:
            self._logger.exception(
                "Notification delivery failed",
                extra={"booking_id": str(booking.id), "event": event.value}
            )
