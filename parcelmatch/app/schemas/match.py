"""
Match schemas.

Match listings, delivery price estimates and the admin score preview.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional
from parcelmatch.app.models.match_enums import MatchStatus, PaymentStatus


class MatchResponse(BaseModel):
    """Schema for a parcel-trip match."""
    id: int
    parcel_id: int
    trip_id: int
    match_score: float
    status: MatchStatus
    matched_at: datetime
    accepted_at: Optional[datetime]
    delivery_fee: Optional[float]
    platform_fee: Optional[float]
    total_amount: Optional[float]
    currency: Optional[str]
    payment_status: Optional[PaymentStatus]
    delivery_confirmed_by_sender_at: Optional[datetime]

    class Config:
        from_attributes = True


class MatchListResponse(BaseModel):
    matches: List[MatchResponse]
    total: int


class PriceEstimateResponse(BaseModel):
    """What the sender will be charged once a courier accepts the parcel."""
    parcel_id: int
    delivery_fee: float
    platform_fee: float
    total_amount: float
    currency: str
    is_domestic: bool
    distance_km: float
    estimated_delivery_min_hours: int
    estimated_delivery_max_hours: int


class ScorePreviewRequest(BaseModel):
    parcel_id: int
    trip_id: int


class ScorePreviewResponse(BaseModel):
    """Score breakdown for a pair; rejected_reason is set when a gate fired."""
    parcel_id: int
    trip_id: int
    total: float
    route_alignment: float
    proximity: float
    time_compatibility: float
    capacity: float
    strategy: Optional[str]
    rejected_reason: Optional[str]
    threshold: float
    is_valid: bool
