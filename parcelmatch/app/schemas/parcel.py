"""
Parcel Pydantic schemas.

Request and response models for parcel management.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from typing import Optional, List, Tuple
from parcelmatch.app.core.timeutils import as_utc, utcnow
from parcelmatch.app.models.parcel_enums import ParcelStatus
from parcelmatch.app.services.corridor_alignment import addresses_match

MAX_ESTIMATED_VALUE = 2000
NON_NULLABLE_PARCEL_FIELDS = ("pickup_address", "delivery_address", "dimensions")


def _not_in_past(value: Optional[datetime], field: str) -> Optional[datetime]:
    if value is not None and as_utc(value) < utcnow():
        raise ValueError(f"{field} cannot be in the past")
    return value


def reject_explicit_nulls(model: BaseModel, fields: Tuple[str, ...]) -> None:
    """Partial updates may omit required columns but never clear them."""
    cleared = [name for name in fields if name in model.model_fields_set and getattr(model, name) is None]
    if cleared:
        raise ValueError(f"{', '.join(cleared)} cannot be null")


class ParcelCreate(BaseModel):
    """Schema for creating a new parcel."""
    pickup_address: str = Field(..., min_length=1, description="Pickup address, ending with the country")
    pickup_latitude: Optional[float] = Field(None, ge=-90, le=90)
    pickup_longitude: Optional[float] = Field(None, ge=-180, le=180)
    delivery_address: str = Field(..., min_length=1, description="Delivery address, ending with the country")
    delivery_latitude: Optional[float] = Field(None, ge=-90, le=90)
    delivery_longitude: Optional[float] = Field(None, ge=-180, le=180)
    description: Optional[str] = Field(None, max_length=500, description="Parcel description")
    weight_kg: Optional[float] = Field(None, gt=0, description="Weight in kilograms")
    dimensions: str = Field(..., min_length=1, max_length=200, description="Free-text dimensions, e.g. 30x20x10 cm")
    estimated_value: Optional[float] = Field(None, ge=0, le=MAX_ESTIMATED_VALUE)
    estimated_value_currency: Optional[str] = Field(None, min_length=3, max_length=3)
    preferred_pickup_time: Optional[datetime] = None

    @field_validator('preferred_pickup_time')
    @classmethod
    def validate_preferred_pickup_time(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _not_in_past(v, "Preferred pickup time")

    @model_validator(mode='after')
    def validate_addresses_differ(self) -> "ParcelCreate":
        if addresses_match(self.pickup_address, self.delivery_address):
            raise ValueError("Pickup and delivery addresses cannot be the same")
        return self


class ParcelUpdate(BaseModel):
    """Schema for updating an existing parcel. Only the fields sent are changed."""
    pickup_address: Optional[str] = Field(None, min_length=1)
    pickup_latitude: Optional[float] = Field(None, ge=-90, le=90)
    pickup_longitude: Optional[float] = Field(None, ge=-180, le=180)
    delivery_address: Optional[str] = Field(None, min_length=1)
    delivery_latitude: Optional[float] = Field(None, ge=-90, le=90)
    delivery_longitude: Optional[float] = Field(None, ge=-180, le=180)
    description: Optional[str] = Field(None, max_length=500)
    weight_kg: Optional[float] = Field(None, gt=0)
    dimensions: Optional[str] = Field(None, min_length=1, max_length=200)
    estimated_value: Optional[float] = Field(None, ge=0, le=MAX_ESTIMATED_VALUE)
    estimated_value_currency: Optional[str] = Field(None, min_length=3, max_length=3)
    preferred_pickup_time: Optional[datetime] = None

    @field_validator('preferred_pickup_time')
    @classmethod
    def validate_preferred_pickup_time(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _not_in_past(v, "Preferred pickup time")

    @model_validator(mode='after')
    def validate_required_fields_not_cleared(self) -> "ParcelUpdate":
        reject_explicit_nulls(self, NON_NULLABLE_PARCEL_FIELDS)
        return self


class ParcelResponse(BaseModel):
    """Schema for parcel response."""
    id: int
    sender_id: int
    pickup_address: str
    pickup_latitude: Optional[float]
    pickup_longitude: Optional[float]
    delivery_address: str
    delivery_latitude: Optional[float]
    delivery_longitude: Optional[float]
    description: Optional[str]
    weight_kg: Optional[float]
    dimensions: str
    estimated_value: Optional[float]
    estimated_value_currency: Optional[str]
    preferred_pickup_time: Optional[datetime]
    status: ParcelStatus
    matched_trip_id: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ParcelCreateResponse(BaseModel):
    """Response after parcel creation, with the outcome of the matching run."""
    parcel: ParcelResponse
    matches_created: int


class ParcelListResponse(BaseModel):
    """Schema for paginated parcel list."""
    parcels: List[ParcelResponse]
    total: int
    page: int
    page_size: int


class ParcelStatusHistoryResponse(BaseModel):
    """One status change of a parcel."""
    id: int
    status: ParcelStatus
    notes: Optional[str]
    match_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class ParcelStatusHistoryListResponse(BaseModel):
    parcel_id: int
    history: List[ParcelStatusHistoryResponse]
