"""Unit tests for dispatch value objects."""

import pytest
from dataclasses import FrozenInstanceError
from uuid import uuid4

from service_dispatch.domain.entities.booking import BookingStatus
from service_dispatch.domain.value_objects.coordinates import Coordinates
from service_dispatch.domain.value_objects.retry_policy import RetryPolicy
from service_dispatch.domain.value_objects.status_history_entry import StatusHistoryEntry


class TestCoordinates:
    """Test cases for Coordinates value object."""

    def test_distance_to_self_is_zero(self):
        """Test distance to the same point."""
        point = Coordinates(lat=8.1778, lng=77.4362)

        assert point.distance_to(point) == pytest.approx(0.0)

    def test_distance_is_symmetric(self):
        """Test distance does not depend on direction."""
        a = Coordinates(lat=8.1778, lng=77.4362)
        b = Coordinates(lat=8.0883, lng=77.5385)

        assert a.distance_to(b) == pytest.approx(b.distance_to(a))

    def test_one_degree_of_latitude(self):
        """Test one degree of latitude is about 111 km."""
        a = Coordinates(lat=0.0, lng=0.0)
        b = Coordinates(lat=1.0, lng=0.0)

        assert a.distance_to(b) == pytest.approx(111.19, abs=0.01)

    def test_dict_round_trip(self):
        """Test conversion to and from mappings."""
        point = Coordinates(lat=8.1778, lng=77.4362)

        assert point.as_dict() == {"lat": 8.1778, "lng": 77.4362}
        assert Coordinates.from_dict({"lat": "8.1778", "lng": "77.4362"}) == point

    def test_immutable(self):
        """Test coordinates cannot be modified."""
        point = Coordinates(lat=1.0, lng=2.0)

        with pytest.raises(FrozenInstanceError):
            point.lat = 3.0


class TestRetryPolicy:
    """Test cases for RetryPolicy value object."""

    def test_exponential_schedule_is_capped(self):
        """Test delays double and stop at the ceiling."""
        policy = RetryPolicy(base_delay=5.0, factor=2.0, max_delay=60.0, max_attempts=6)

        delays = [policy.delay_for(attempt) for attempt in range(1, 7)]

        assert delays == [5.0, 10.0, 20.0, 40.0, 60.0, 60.0]
        assert policy.total_delay == 195.0

    def test_fixed_policy(self):
        """Test fixed policies repeat the same delay and do not escalate."""
        policy = RetryPolicy.fixed(interval=300.0, max_attempts=3)

        assert [policy.delay_for(attempt) for attempt in range(1, 4)] == [300.0, 300.0, 300.0]
        assert policy.escalate_on_exhaustion is False

    def test_attempt_numbers_start_at_one(self):
        """Test attempt zero is rejected."""
        policy = RetryPolicy(base_delay=1.0)

        with pytest.raises(ValueError):
            policy.delay_for(0)

    def test_invalid_policies(self):
        """Test policy validation."""
        with pytest.raises(ValueError, match="negative"):
            RetryPolicy(base_delay=-1.0)
        with pytest.raises(ValueError, match="factor"):
            RetryPolicy(base_delay=1.0, factor=0.5)
        with pytest.raises(ValueError, match="Max delay"):
            RetryPolicy(base_delay=10.0, max_delay=5.0)
        with pytest.raises(ValueError, match="Max attempts"):
            RetryPolicy(base_delay=1.0, max_attempts=0)


class TestStatusHistoryEntry:
    """Test cases for StatusHistoryEntry value object."""

    def test_initial_entry(self):
        """Test an entry without previous status records creation."""
        entry = StatusHistoryEntry(booking_id=uuid4(), status=BookingStatus.PENDING)

        assert entry.is_initial
        assert not entry.is_status_change
        assert entry.id is not None
        assert entry.metadata == {}

    def test_status_change_entry(self):
        """Test an entry between two statuses."""
        entry = StatusHistoryEntry(
            booking_id=uuid4(),
            status=BookingStatus.CONFIRMED,
            previous_status=BookingStatus.PENDING
        )

        assert not entry.is_initial
        assert entry.is_status_change

    def test_reschedule_entry_is_not_a_status_change(self):
        """Test an entry that keeps the status."""
        entry = StatusHistoryEntry(
            booking_id=uuid4(),
            status=BookingStatus.PENDING,
            previous_status=BookingStatus.PENDING
        )

        assert not entry.is_status_change
