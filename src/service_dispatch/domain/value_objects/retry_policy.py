"""Retry policy value object for dispatch re-attempts."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable backoff schedule for unmatched bookings."""

    base_delay: float
    factor: float = 2.0
    max_delay: float = 60.0
    max_attempts: int = 6
    escalate_on_exhaustion: bool = True

    def __post_init__(self) -> None:
        """Validate policy values."""
        if self.base_delay < 0:
            raise ValueError("Base delay cannot be negative")
        if self.factor < 1:
            raise ValueError("Backoff factor must be at least 1")
        if self.max_delay < self.base_delay:
            raise ValueError("Max delay must not be lower than base delay")
        if self.max_attempts < 1:
            raise ValueError("Max attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Get delay in seconds before the given 1-based attempt."""
        if attempt < 1:
            raise ValueError("Attempt numbers start at 1")
        return min(self.max_delay, self.base_delay * self.factor ** (attempt - 1))

    @property
    def total_delay(self) -> float:
        """Get worst-case time spent waiting across all attempts."""
        return sum(self.delay_for(attempt) for attempt in range(1, self.max_attempts + 1))

    @classmethod
    def fixed(cls, interval: float, max_attempts: int, escalate_on_exhaustion: bool = False) -> "RetryPolicy":
        """Create a fixed-interval policy."""
        return cls(
            base_delay=interval,
            factor=1.0,
            max_delay=interval,
            max_attempts=max_attempts,
            escalate_on_exhaustion=escalate_on_exhaustion
        )
