"""
Matching configuration value object.

Weights, radii and the acceptance threshold used by the candidate scorer and
the matching orchestrator. Built once at the composition root and passed in
explicitly; scoring code never reads global settings.
"""

from pydantic import BaseModel, Field


class MatchingConfig(BaseModel):
    """Immutable scoring configuration."""

    # Sub-score weights
    route_alignment_weight: float = Field(0.4, ge=0)
    proximity_weight: float = Field(0.3, ge=0)
    time_compatibility_weight: float = Field(0.2, ge=0)
    capacity_weight: float = Field(0.1, ge=0)

    # Radii (km)
    max_pickup_distance_km: float = Field(30.0, gt=0)
    max_delivery_distance_km: float = Field(30.0, gt=0)
    max_proximity_distance_km: float = Field(50.0, gt=0)

    # Anything farther apart than this is treated as a different country
    max_reasonable_distance_km: float = Field(3000.0, gt=0)

    # Acceptance threshold
    min_score_threshold: float = Field(60.0, ge=0, le=100)

    class Config:
        frozen = True

    @classmethod
    def from_settings(cls, settings) -> "MatchingConfig":
        """Build the config from deployment settings."""
        return cls(
            route_alignment_weight=settings.matching_route_alignment_weight,
            proximity_weight=settings.matching_proximity_weight,
            time_compatibility_weight=settings.matching_time_compatibility_weight,
            capacity_weight=settings.matching_capacity_weight,
            max_pickup_distance_km=settings.matching_max_pickup_distance_km,
            max_delivery_distance_km=settings.matching_max_delivery_distance_km,
            max_proximity_distance_km=settings.matching_max_proximity_distance_km,
            max_reasonable_distance_km=settings.matching_max_reasonable_distance_km,
            min_score_threshold=settings.matching_min_score_threshold,
        )


DEFAULT_MATCHING_CONFIG = MatchingConfig()
