"""Unit tests for the dispatch engine."""

import pytest
from datetime import datetime
from uuid import UUID

from service_dispatch.domain.entities.agent import Agent, AgentAvailability
from service_dispatch.domain.entities.booking import Booking, BookingPriority, SkillType
from service_dispatch.domain.services.dispatch_engine import (
    DispatchEngine,
    eligible_skills,
    estimate_arrival_minutes,
)
from service_dispatch.domain.value_objects.coordinates import Coordinates

BOOKING_LOCATION = Coordinates(lat=8.1778, lng=77.4362)

# One degree of latitude is ~111.195 km
KM_PER_DEGREE_LAT = 111.195


def north_of(origin: Coordinates, km: float) -> Coordinates:
    return Coordinates(lat=origin.lat + km / KM_PER_DEGREE_LAT, lng=origin.lng)


def make_booking(**overrides) -> Booking:
    values = {
        "number": "NMS000001",
        "required_skill": SkillType.ELECTRICAL,
        "scheduled_time": datetime(2025, 10, 1, 10, 0),
        "location": BOOKING_LOCATION,
    }
    values.update(overrides)
    return Booking(**values)


def make_agent(name, rating, km=None, skills=(SkillType.ELECTRICAL,), **overrides) -> Agent:
    location = north_of(BOOKING_LOCATION, km) if km is not None else None
    return Agent(name=name, skills=skills, rating=rating, current_location=location, **overrides)


class TestEstimateArrival:
    """Test cases for ETA estimation."""

    def test_city_speed(self):
        """Test 25 km/h city speed rounded up to whole minutes."""
        assert estimate_arrival_minutes(0.0) == 0
        assert estimate_arrival_minutes(2.0) == 5
        assert estimate_arrival_minutes(1.0) == 3

    def test_invalid_speed(self):
        """Test non-positive speeds are rejected."""
        with pytest.raises(ValueError):
            estimate_arrival_minutes(1.0, speed_kmh=0)


class TestEligibleSkills:
    """Test cases for pool widening."""

    def test_normal_booking_needs_exact_skill(self):
        """Test non-emergency bookings only accept the requested skill."""
        booking = make_booking(priority=BookingPriority.URGENT)

        assert eligible_skills(booking) == {SkillType.ELECTRICAL}

    def test_emergency_booking_accepts_emergency_agents(self):
        """Test emergency bookings widen the pool."""
        booking = make_booking(priority=BookingPriority.EMERGENCY)

        assert eligible_skills(booking) == {SkillType.ELECTRICAL, SkillType.EMERGENCY}


class TestDispatchEngine:
    """Test cases for DispatchEngine."""

    def test_rating_outweighs_small_distance(self):
        """Test a 4.8 agent 2 km away beats a 4.2 agent 1 km away."""
        engine = DispatchEngine()
        near = make_agent("Near", rating=4.2, km=1.0)
        better = make_agent("Better", rating=4.8, km=2.0)

        ranked = engine.rank_candidates(make_booking(), [near, better])

        assert [candidate.agent for candidate in ranked] == [better, near]
        assert ranked[0].score == pytest.approx(46.0, abs=0.01)
        assert ranked[1].score == pytest.approx(41.0, abs=0.01)
        assert ranked[0].eta_minutes == 5
        assert engine.find_best_agent(make_booking(), [near, better]) == better

    def test_ineligible_agents_are_skipped(self):
        """Test busy, off-duty, unlocated and unskilled agents are ignored."""
        engine = DispatchEngine()
        pool = [
            make_agent("Busy", rating=5.0, km=0.5, availability=AgentAvailability.BUSY),
            make_agent("Off", rating=5.0, km=0.5, availability=AgentAvailability.OFF_DUTY),
            make_agent("Nowhere", rating=5.0),
            make_agent("Plumber", rating=5.0, km=0.5, skills=(SkillType.PLUMBING,)),
        ]

        assert engine.find_best_agent(make_booking(), pool) is None
        assert engine.rank_candidates(make_booking(), pool) == []

    def test_empty_pool(self):
        """Test no agent means no match."""
        assert DispatchEngine().find_best_candidate(make_booking(), []) is None

    def test_booking_without_location_ranks_by_rating(self):
        """Test unlocated bookings treat every agent as zero distance."""
        engine = DispatchEngine()
        far = make_agent("Far", rating=4.9, km=30.0)
        near = make_agent("Near", rating=4.0, km=0.5)

        best = engine.find_best_candidate(make_booking(location=None), [near, far])

        assert best.agent == far
        assert best.distance_km == 0.0
        assert best.eta_minutes == 0

    def test_tie_breaks_on_distance_then_id(self):
        """Test equal scores prefer the closer agent, then the lower id."""
        engine = DispatchEngine(rating_weight=10.0, distance_weight=0.0)
        closer = make_agent("Closer", rating=4.0, km=1.0)
        farther = make_agent("Farther", rating=4.0, km=3.0)

        assert engine.find_best_agent(make_booking(), [farther, closer]) == closer

        low = make_agent("Low", rating=4.0, km=1.0, agent_id=UUID(int=1))
        high = make_agent("High", rating=4.0, km=1.0, agent_id=UUID(int=2))

        assert engine.find_best_agent(make_booking(), [high, low]) == low

    def test_emergency_skill_widens_pool(self):
        """Test emergency agents serve emergency bookings only."""
        engine = DispatchEngine()
        responder = make_agent("Responder", rating=4.0, km=1.0, skills=(SkillType.EMERGENCY,))

        assert engine.find_best_agent(make_booking(priority=BookingPriority.EMERGENCY), [responder]) == responder
        assert engine.find_best_agent(make_booking(priority=BookingPriority.URGENT), [responder]) is None

    def test_selection_is_pure_and_deterministic(self):
        """Test the same inputs give the same answer and are left unchanged."""
        engine = DispatchEngine()
        booking = make_booking()
        pool = [make_agent(f"Agent {i}", rating=3.0 + i * 0.3, km=i + 0.5) for i in range(5)]

        first = engine.rank_candidates(booking, pool)
        second = engine.rank_candidates(booking, list(reversed(pool)))

        assert [c.agent.id for c in first] == [c.agent.id for c in second]
        assert all(agent.is_available() for agent in pool)
        assert booking.assigned_agent_id is None

    def test_suggest_agents_limit(self):
        """Test suggestions return the top candidates only."""
        engine = DispatchEngine()
        pool = [make_agent(f"Agent {i}", rating=4.0, km=float(i + 1)) for i in range(5)]

        suggestions = engine.suggest_agents(make_booking(), pool, limit=2)

        assert [s.agent.name for s in suggestions] == ["Agent 0", "Agent 1"]

    def test_custom_weights(self):
        """Test distance can dominate with a heavier weight."""
        engine = DispatchEngine(rating_weight=1.0, distance_weight=10.0)
        near = make_agent("Near", rating=4.2, km=1.0)
        better = make_agent("Better", rating=4.8, km=2.0)

        assert engine.find_best_agent(make_booking(), [better, near]) == near
