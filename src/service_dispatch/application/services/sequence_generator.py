"""Booking number generation."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..ports.repositories import BookingSequenceRepository
from ...domain.errors import SequenceUnavailable


FALLBACK_DIGITS = 6


@dataclass(frozen=True)
class BookingNumber:
    """A generated booking number and the path that produced it."""

    value: str
    fallback: bool = False

    def __str__(self) -> str:
        return self.value


class SequenceGenerator:
    """Produces unique, ordered, human-readable booking numbers.

    The primary path relies on the counter's atomic increment. When the
    counter cannot be reached a timestamp-derived number is returned and
    flagged so it can be renumbered later. Fallbacks from one generator
    never repeat a millisecond; they can still meet a counter value or a
    fallback from another process, which the unique index rejects.
    """

    def __init__(
        self,
        counter: BookingSequenceRepository,
        prefix: str = "NMS",
        width: int = 6,
        sequence_name: str = "booking",
        clock_millis: Optional[Callable[[], int]] = None
    ):
        self._counter = counter
        self.prefix = prefix
        self.width = width
        self.sequence_name = sequence_name
        self._clock_millis = clock_millis or (lambda: time.time_ns() // 1_000_000)
        self._last_fallback_millis = 0
        self._logger = logging.getLogger(__name__)

    def format(self, value: int) -> str:
        """Format a counter value as a booking number."""
        return f"{self.prefix}{value:0{self.width}d}"

    def fallback_number(self) -> str:
        millis = max(self._clock_millis(), self._last_fallback_millis + 1)
        self._last_fallback_millis = millis
        return f"{self.prefix}{str(millis)[-FALLBACK_DIGITS:]}"

    async def next_number(self) -> BookingNumber:
        """Get the next booking number. Never raises on storage failure."""
        try:
            value = await self._counter.increment(self.sequence_name)
        except SequenceUnavailable as e:
            number = self.fallback_number()
            self._logger.warning(
                "Booking sequence unavailable, using timestamp fallback",
                extra={
                    "sequence_name": self.sequence_name,
                    "booking_number": number,
                    "error": str(e)
                }
            )
            return BookingNumber(value=number, fallback=True)

        return BookingNumber(value=self.format(value))

    async def next(self) -> str:
        """Get the next booking number as a string."""
        return (await self.next_number()).value
