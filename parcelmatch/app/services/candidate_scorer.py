"""
Candidate scoring for parcel-trip matching.

Combines route alignment, proximity, time compatibility and capacity into one
0-100 score behind two hard gates (country, distance sanity). Hand-tuned
weighted heuristic; every function here is pure and takes its configuration
and the current time explicitly.
"""

import logging
from datetime import datetime
from typing import Callable, NamedTuple, Optional, Tuple

from parcelmatch.app.core.matching_config import MatchingConfig, DEFAULT_MATCHING_CONFIG
from parcelmatch.app.core.timeutils import as_utc, utcnow
from parcelmatch.app.models.trip_enums import TripCapacity
from parcelmatch.app.services.corridor_alignment import (
    COORDINATE_STRATEGY,
    extract_country,
    select_route_strategy,
)
from parcelmatch.app.services.geo_metrics import GeoPoint

logger = logging.getLogger("parcelmatch.matching.scorer")

SMALL_PARCEL_MAX_KG = 2.0
MEDIUM_PARCEL_MAX_KG = 10.0

CAPACITY_LEVELS = {
    TripCapacity.SMALL: 1,
    TripCapacity.MEDIUM: 2,
    TripCapacity.LARGE: 3,
}


class ScoreBreakdown(NamedTuple):
    """Sub-scores behind a total, for logging and previews."""
    total: float
    route_alignment: float = 0.0
    proximity: float = 0.0
    time_compatibility: float = 0.0
    capacity: float = 0.0
    strategy: Optional[str] = None
    rejected_reason: Optional[str] = None


def parcel_points(parcel) -> Tuple[GeoPoint, GeoPoint]:
    return (
        GeoPoint(parcel.pickup_address, parcel.pickup_latitude, parcel.pickup_longitude),
        GeoPoint(parcel.delivery_address, parcel.delivery_latitude, parcel.delivery_longitude),
    )


def trip_points(trip) -> Tuple[GeoPoint, GeoPoint]:
    return (
        GeoPoint(trip.origin_address, trip.origin_latitude, trip.origin_longitude),
        GeoPoint(trip.destination_address, trip.destination_latitude, trip.destination_longitude),
    )


def countries_match(parcel, trip) -> Tuple[bool, bool]:
    """(pickup country == origin country, delivery country == destination country)."""
    return (
        extract_country(parcel.pickup_address) == extract_country(trip.origin_address),
        extract_country(parcel.delivery_address) == extract_country(trip.destination_address),
    )


def _hours(delta) -> float:
    return delta.total_seconds() / 3600.0


def time_compatibility_score(
    preferred_pickup: Optional[datetime],
    departure: Optional[datetime],
    now: datetime,
) -> float:
    """
    Score how well the parcel's preferred pickup time fits the trip departure.

    With a preferred pickup time P and a departure D:
        P in the past → 0; D in the past → 0;
        |P - D| ≤ 1h → 100, ≤ 3h → 80, ≤ 6h → 60, ≤ 12h → 40, else 20.
    P without D (flexible trip): P within 24h → 90, within 72h → 70, else 50.
    D without P: less than 1h away → 30, less than 24h → 70, else 90.
    Neither: 70.
    """
    now = as_utc(now)
    preferred_pickup = as_utc(preferred_pickup)
    departure = as_utc(departure)

    if preferred_pickup is not None:
        if preferred_pickup < now:
            return 0.0

        if departure is not None:
            if departure < now:
                return 0.0

            hours_apart = abs(_hours(preferred_pickup - departure))
            if hours_apart <= 1:
                return 100.0
            if hours_apart <= 3:
                return 80.0
            if hours_apart <= 6:
                return 60.0
            if hours_apart <= 12:
                return 40.0
            return 20.0

        hours_until_pickup = _hours(preferred_pickup - now)
        if hours_until_pickup <= 24:
            return 90.0
        if hours_until_pickup <= 72:
            return 70.0
        return 50.0

    if departure is not None:
        if departure < now:
            return 0.0

        hours_until_departure = _hours(departure - now)
        if hours_until_departure < 1:
            return 30.0
        if hours_until_departure < 24:
            return 70.0
        return 90.0

    return 70.0


def parcel_size_class(weight_kg: Optional[float], dimensions: Optional[str]) -> Optional[TripCapacity]:
    """
    Size class from weight.

    Unknown only when neither weight nor dimensions were given; a parcel with
    dimensions but no weight counts as small.
    """
    if not weight_kg and not dimensions:
        return None

    weight = weight_kg or 0
    if weight <= SMALL_PARCEL_MAX_KG:
        return TripCapacity.SMALL
    if weight <= MEDIUM_PARCEL_MAX_KG:
        return TripCapacity.MEDIUM
    return TripCapacity.LARGE


def _as_capacity(value) -> Optional[TripCapacity]:
    if value is None or isinstance(value, TripCapacity):
        return value
    try:
        return TripCapacity(str(value).upper())
    except ValueError:
        return None


def capacity_score(parcel, trip) -> float:
    """
    Score whether the parcel fits the space the courier has left.

    Trip capacity unset → 70 (assume flexible); parcel size unknown → 60;
    exact → 100; one class larger → 80; two larger → 60; smaller → 0.
    """
    if not trip.available_capacity:
        return 70.0

    size = parcel_size_class(parcel.weight_kg, parcel.dimensions)
    if size is None:
        return 60.0

    capacity = _as_capacity(trip.available_capacity)
    if capacity == size:
        return 100.0

    parcel_level = CAPACITY_LEVELS[size]
    trip_level = CAPACITY_LEVELS.get(capacity, 0)

    if trip_level == parcel_level + 1:
        return 80.0
    if trip_level > parcel_level + 1:
        return 60.0
    return 0.0


def score_breakdown(
    parcel,
    trip,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
    now: Optional[datetime] = None,
) -> ScoreBreakdown:
    """
    Score a parcel-trip pair and keep the sub-scores.

    Gates, in order:
        1. Country gate: pickup/origin and delivery/destination countries
           (last address token) must both match.
        2. Distance sanity gate: with coordinates, neither end may be more than
           max_reasonable_distance_km apart. Catches country-string false
           negatives such as spelling variants.
    """
    now = now or utcnow()

    pickup_match, delivery_match = countries_match(parcel, trip)
    if not (pickup_match and delivery_match):
        side = "pickup" if not pickup_match else "delivery"
        logger.debug(
            "Parcel %s <-> Trip %s rejected: %s country mismatch",
            parcel.id, trip.id, side
        )
        return ScoreBreakdown(total=0.0, rejected_reason=f"{side}_country_mismatch")

    pickup, delivery = parcel_points(parcel)
    origin, destination = trip_points(trip)
    strategy = select_route_strategy(pickup, delivery, origin, destination)

    if strategy is COORDINATE_STRATEGY:
        pickup_km, delivery_km = strategy.endpoint_distances(pickup, delivery, origin, destination)
        if pickup_km > config.max_reasonable_distance_km or delivery_km > config.max_reasonable_distance_km:
            logger.debug(
                "Parcel %s <-> Trip %s rejected: implausible distance (pickup %.2fkm, delivery %.2fkm)",
                parcel.id, trip.id, pickup_km, delivery_km
            )
            return ScoreBreakdown(total=0.0, strategy=strategy.name, rejected_reason="distance_implausible")

    route_alignment = strategy.alignment(
        pickup, delivery, origin, destination,
        config.max_pickup_distance_km, config.max_delivery_distance_km
    )
    proximity = strategy.proximity(
        pickup, delivery, origin, destination, config.max_proximity_distance_km
    )
    time_compatibility = time_compatibility_score(parcel.preferred_pickup_time, trip.departure_time, now)
    capacity = capacity_score(parcel, trip)

    total = (
        route_alignment * config.route_alignment_weight
        + proximity * config.proximity_weight
        + time_compatibility * config.time_compatibility_weight
        + capacity * config.capacity_weight
    )
    total = round(total, 2)

    logger.debug(
        "Parcel %s <-> Trip %s score %.2f [%s] alignment=%.2f proximity=%.2f time=%.2f capacity=%.2f",
        parcel.id, trip.id, total, strategy.name,
        route_alignment, proximity, time_compatibility, capacity
    )

    return ScoreBreakdown(
        total=total,
        route_alignment=round(route_alignment, 2),
        proximity=round(proximity, 2),
        time_compatibility=time_compatibility,
        capacity=capacity,
        strategy=strategy.name,
    )


def score(
    parcel,
    trip,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
    now: Optional[datetime] = None,
) -> float:
    """Match score (0-100, two decimals) for a parcel-trip pair."""
    return score_breakdown(parcel, trip, config, now).total


def is_match_valid(match_score: float, threshold: float = 60.0) -> bool:
    return match_score >= threshold


class CandidateScorer:
    """
    Scorer bound to a config and a clock.

    The orchestrator and the repository's re-scoring share one instance so a
    matching run scores every pair against the same "now".
    """

    def __init__(
        self,
        config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.clock = clock

    def breakdown(self, parcel, trip) -> ScoreBreakdown:
        return score_breakdown(parcel, trip, self.config, self.clock())

    def score(self, parcel, trip) -> float:
        return self.breakdown(parcel, trip).total

    def is_valid(self, match_score: float) -> bool:
        return is_match_valid(match_score, self.config.min_score_threshold)
