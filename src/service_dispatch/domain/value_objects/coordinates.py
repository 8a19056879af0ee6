"""Geographic coordinate value object."""

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinates:
    """Immutable latitude/longitude pair in decimal degrees."""

    lat: float
    lng: float

    def distance_to(self, other: "Coordinates") -> float:
        """Great-circle distance to another point in kilometers (haversine)."""
        d_lat = math.radians(other.lat - self.lat)
        d_lng = math.radians(other.lng - self.lng)

        a = (
            math.sin(d_lat / 2) ** 2
            + math.cos(math.radians(self.lat))
            * math.cos(math.radians(other.lat))
            * math.sin(d_lng / 2) ** 2
        )

        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
        return EARTH_RADIUS_KM * c

    def as_dict(self) -> dict:
        """Serialize as a lat/lng mapping."""
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: dict) -> "Coordinates":
        """Build coordinates from a lat/lng mapping."""
        return cls(lat=float(data["lat"]), lng=float(data["lng"]))
