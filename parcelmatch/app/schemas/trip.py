"""
Trip schemas.

Schemas for trip creation, editing and visibility.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime
from parcelmatch.app.core.timeutils import as_utc, utcnow
from parcelmatch.app.models.trip_enums import TripCapacity, TripStatus
from parcelmatch.app.schemas.parcel import reject_explicit_nulls
from parcelmatch.app.services.corridor_alignment import addresses_match

NON_NULLABLE_TRIP_FIELDS = ("origin_address", "destination_address", "departure_time", "estimated_arrival")


def ensure_arrival_after_departure(departure: datetime, arrival: datetime) -> None:
    if as_utc(arrival) <= as_utc(departure):
        raise ValueError("Estimated arrival must be after departure time")


def validate_trip_times(departure: Optional[datetime], arrival: Optional[datetime]) -> None:
    """Neither time in the past; arrival strictly after departure."""
    now = utcnow()
    if departure is not None and as_utc(departure) < now:
        raise ValueError("Departure time cannot be in the past")
    if arrival is not None and as_utc(arrival) < now:
        raise ValueError("Estimated arrival cannot be in the past")
    if departure is not None and arrival is not None:
        ensure_arrival_after_departure(departure, arrival)


class TripCreate(BaseModel):
    """Schema for creating a trip."""
    origin_address: str = Field(..., min_length=1)
    origin_latitude: Optional[float] = Field(None, ge=-90, le=90)
    origin_longitude: Optional[float] = Field(None, ge=-180, le=180)
    destination_address: str = Field(..., min_length=1)
    destination_latitude: Optional[float] = Field(None, ge=-90, le=90)
    destination_longitude: Optional[float] = Field(None, ge=-180, le=180)
    departure_time: datetime
    estimated_arrival: datetime
    available_capacity: Optional[TripCapacity] = None

    @field_validator('available_capacity', mode='before')
    @classmethod
    def normalize_capacity(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @model_validator(mode='after')
    def validate_route_and_times(self) -> "TripCreate":
        if addresses_match(self.origin_address, self.destination_address):
            raise ValueError("Origin and destination addresses cannot be the same")
        validate_trip_times(self.departure_time, self.estimated_arrival)
        return self


class TripUpdate(BaseModel):
    """Schema for editing a scheduled trip. Only the fields sent are changed."""
    origin_address: Optional[str] = Field(None, min_length=1)
    origin_latitude: Optional[float] = Field(None, ge=-90, le=90)
    origin_longitude: Optional[float] = Field(None, ge=-180, le=180)
    destination_address: Optional[str] = Field(None, min_length=1)
    destination_latitude: Optional[float] = Field(None, ge=-90, le=90)
    destination_longitude: Optional[float] = Field(None, ge=-180, le=180)
    departure_time: Optional[datetime] = None
    estimated_arrival: Optional[datetime] = None
    available_capacity: Optional[TripCapacity] = None

    @field_validator('available_capacity', mode='before')
    @classmethod
    def normalize_capacity(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @model_validator(mode='after')
    def validate_required_fields_not_cleared(self) -> "TripUpdate":
        reject_explicit_nulls(self, NON_NULLABLE_TRIP_FIELDS)
        return self


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    courier_id: int
    origin_address: str
    origin_latitude: Optional[float]
    origin_longitude: Optional[float]
    destination_address: str
    destination_latitude: Optional[float]
    destination_longitude: Optional[float]
    departure_time: datetime
    estimated_arrival: datetime
    available_capacity: Optional[TripCapacity]
    status: TripStatus
    locked_parcel_id: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TripListResponse(BaseModel):
    """Schema for paginated trip list."""
    trips: List[TripResponse]
    total: int
    page: int
    page_size: int
