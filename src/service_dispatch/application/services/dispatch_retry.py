"""Background re-dispatch of bookings that found no agent."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict
from uuid import UUID

from ...domain.entities.booking import BookingPriority
from ...domain.errors import DispatchError
from ...domain.value_objects.retry_policy import RetryPolicy
from ...infrastructure.logging import generate_correlation_id, set_correlation_id

DEFAULT_URGENT_POLICY = RetryPolicy(base_delay=5.0, factor=2.0, max_delay=60.0, max_attempts=6)
DEFAULT_NORMAL_POLICY = RetryPolicy.fixed(interval=300.0, max_attempts=3)

# Raising marks a failed attempt; returning ends the loop.
AttemptCallback = Callable[[UUID], Awaitable[None]]
ExhaustedCallback = Callable[[UUID], Awaitable[None]]


class DispatchRetryScheduler:
    """Runs one retry loop per unmatched booking.

    Urgent and emergency bookings back off exponentially and escalate when
    attempts run out; normal bookings retry on a fixed interval and are then
    left for the periodic sweep.
    """

    def __init__(
        self,
        attempt: AttemptCallback,
        on_exhausted: ExhaustedCallback,
        urgent_policy: RetryPolicy = DEFAULT_URGENT_POLICY,
        normal_policy: RetryPolicy = DEFAULT_NORMAL_POLICY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self._attempt = attempt
        self._on_exhausted = on_exhausted
        self.urgent_policy = urgent_policy
        self.normal_policy = normal_policy
        self._sleep = sleep
        self._tasks: Dict[UUID, asyncio.Task] = {}
        self._logger = logging.getLogger(__name__)

    def policy_for(self, priority: BookingPriority) -> RetryPolicy:
        if priority in (BookingPriority.URGENT, BookingPriority.EMERGENCY):
            return self.urgent_policy
        return self.normal_policy

    def is_scheduled(self, booking_id: UUID) -> bool:
        task = self._tasks.get(booking_id)
        return task is not None and not task.done()

    def schedule(self, booking_id: UUID, priority: BookingPriority) -> asyncio.Task:
        """Start a retry loop for a booking unless one is already running."""
        if self.is_scheduled(booking_id):
            return self._tasks[booking_id]

        policy = self.policy_for(priority)
        task = asyncio.create_task(
            self._run(booking_id, policy),
            name=f"dispatch-retry-{booking_id}"
        )
        self._tasks[booking_id] = task
        task.add_done_callback(lambda done, key=booking_id: self._forget(key, done))

        self._logger.info(
            "Scheduled dispatch retry",
            extra={
                "booking_id": str(booking_id),
                "priority": priority.value,
                "max_attempts": policy.max_attempts,
            }
        )
        return task

    def cancel(self, booking_id: UUID) -> bool:
        """Stop the retry loop for a booking."""
        task = self._tasks.pop(booking_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def join(self) -> None:
        """Wait for every running retry loop to finish."""
        while True:
            pending = [task for task in self._tasks.values() if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all retry loops."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _forget(self, booking_id: UUID, task: asyncio.Task) -> None:
        if self._tasks.get(booking_id) is task:
            del self._tasks[booking_id]

    async def _run(self, booking_id: UUID, policy: RetryPolicy) -> None:
        set_correlation_id(generate_correlation_id())

        for attempt in range(1, policy.max_attempts + 1):
            await self._sleep(policy.delay_for(attempt))

            try:
                await self._attempt(booking_id)
            except DispatchError as e:
                self._logger.warning(
                    "Dispatch retry attempt failed",
                    extra={"booking_id": str(booking_id), "attempt": attempt, "error": str(e)}
                )
                continue
            except Exception:
                self._logger.exception(
                    "Dispatch retry attempt raised an unexpected error",
                    extra={"booking_id": str(booking_id), "attempt": attempt}
                )
                continue

            return

        self._logger.warning(
            "Dispatch retries exhausted",
            extra={"booking_id": str(booking_id), "attempts": policy.max_attempts}
        )
        if not policy.escalate_on_exhaustion:
            return

        try:
            await self._on_exhausted(booking_id)
        except Exception:
            self._logger.exception(
                "Escalation of unassigned booking failed",
                extra={"booking_id": str(booking_id)}
            )
