"""Agent selection for booking dispatch."""

import math
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional

from ..entities.agent import Agent
from ..entities.booking import Booking, BookingPriority, SkillType

DEFAULT_TRAVEL_SPEED_KMH = 25.0


def estimate_arrival_minutes(distance_km: float, speed_kmh: float = DEFAULT_TRAVEL_SPEED_KMH) -> int:
    """Estimate city travel time in whole minutes."""
    if speed_kmh <= 0:
        raise ValueError("Travel speed must be positive")
    return math.ceil(distance_km / speed_kmh * 60)


def eligible_skills(booking: Booking) -> FrozenSet[SkillType]:
    """Get skills that qualify an agent for a booking.

    Emergency bookings also accept agents with the generic emergency skill.
    """
    if booking.priority == BookingPriority.EMERGENCY:
        return frozenset({booking.required_skill, SkillType.EMERGENCY})
    return frozenset({booking.required_skill})


@dataclass(frozen=True)
class ScoredCandidate:
    """An eligible agent with its dispatch score."""

    agent: Agent
    distance_km: float
    score: float
    eta_minutes: int

    @property
    def sort_key(self) -> tuple:
        """Best candidate sorts first: high score, then short distance, then low id."""
        return (-self.score, self.distance_km, self.agent.id)


class DispatchEngine:
    """Selects the best available agent for a booking.

    The engine only reads its inputs. Marking agents busy and assigning
    bookings is left to the coordinator.
    """

    def __init__(
        self,
        rating_weight: float = 10.0,
        distance_weight: float = 1.0,
        travel_speed_kmh: float = DEFAULT_TRAVEL_SPEED_KMH
    ):
        self.rating_weight = rating_weight
        self.distance_weight = distance_weight
        self.travel_speed_kmh = travel_speed_kmh

    def is_eligible(self, booking: Booking, agent: Agent) -> bool:
        """Check availability, skill and known location."""
        if not agent.is_available():
            return False
        if agent.current_location is None:
            return False
        return bool(agent.skills & eligible_skills(booking))

    def score(self, rating: float, distance_km: float) -> float:
        return rating * self.rating_weight - distance_km * self.distance_weight

    def rank_candidates(self, booking: Booking, agent_pool: Iterable[Agent]) -> List[ScoredCandidate]:
        """Score every eligible agent, best first."""
        candidates = []
        for agent in agent_pool:
            if not self.is_eligible(booking, agent):
                continue

            if booking.location is None:
                distance_km = 0.0
            else:
                distance_km = booking.location.distance_to(agent.current_location)

            candidates.append(ScoredCandidate(
                agent=agent,
                distance_km=distance_km,
                score=self.score(agent.rating, distance_km),
                eta_minutes=estimate_arrival_minutes(distance_km, self.travel_speed_kmh)
            ))

        candidates.sort(key=lambda candidate: candidate.sort_key)
        return candidates

    def find_best_candidate(self, booking: Booking, agent_pool: Iterable[Agent]) -> Optional[ScoredCandidate]:
        ranked = self.rank_candidates(booking, agent_pool)
        return ranked[0] if ranked else None

    def find_best_agent(self, booking: Booking, agent_pool: Iterable[Agent]) -> Optional[Agent]:
        """Get the best matching agent, or None when nobody is eligible."""
        best = self.find_best_candidate(booking, agent_pool)
        return best.agent if best else None

    def suggest_agents(self, booking: Booking, agent_pool: Iterable[Agent], limit: int = 3) -> List[ScoredCandidate]:
        """Get the top candidates for manual assignment."""
        return self.rank_candidates(booking, agent_pool)[:limit]
