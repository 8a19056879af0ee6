"""Pydantic schemas for inbound booking requests."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ...domain.entities.booking import BookingPriority, SkillType
from ...domain.value_objects.coordinates import Coordinates


class LocationSchema(BaseModel):
    """Geographic location of the service address."""
    lat: float = Field(..., description="Latitude in decimal degrees")
    lng: float = Field(..., description="Longitude in decimal degrees")

    def to_coordinates(self) -> Coordinates:
        """Convert to the domain value object."""
        return Coordinates(lat=self.lat, lng=self.lng)


class BookingRequest(BaseModel):
    """Pre-validated request to create a booking.

    Field formats and coordinate bounds are checked upstream.
    """
    model_config = ConfigDict(frozen=True)

    required_skill: SkillType = Field(..., description="Service category requested")
    scheduled_time: datetime = Field(..., description="Requested service time")
    priority: BookingPriority = Field(default=BookingPriority.NORMAL, description="Booking urgency")
    description: str = Field(default="", description="Problem description")
    location: Optional[LocationSchema] = Field(default=None, description="Service address coordinates")
    customer_id: Optional[UUID] = Field(default=None, description="ID of the requesting customer")
    urgent_reason: Optional[str] = Field(default=None, description="Why the request is urgent")
