"""
Corridor alignment: how well a parcel's pickup→delivery path lies along a
trip's origin→destination path.

Two strategies, chosen per call from the inputs that are available:

- CoordinateRouteStrategy: geometry, when all four points are geocoded.
- AddressRouteStrategy: a coarse textual heuristic on the address strings,
  when any coordinate is missing. Addresses without coordinates cannot be
  confidently rejected, so this strategy never scores 0.

The text heuristic reads the last comma-separated token as the country and
the one before it as the city. It breaks on addresses without a trailing
country or with commas inside the street part; matching outcomes depend on
it, so it is kept exactly as is.
"""

import re
from typing import Tuple

from parcelmatch.app.services.geo_metrics import GeoPoint, point_distance_km, proximity_score


def normalize_address(address: str) -> str:
    """Lower-case, collapse whitespace and drop punctuation other than commas."""
    normalized = re.sub(r"\s+", " ", address.lower().strip())
    return re.sub(r"[^\w\s,]", "", normalized)


def addresses_match(first: str, second: str) -> bool:
    return normalize_address(first) == normalize_address(second)


def extract_country(address: str) -> str:
    """Last comma-separated token, trimmed and lower-cased."""
    parts = [part.strip().lower() for part in address.split(",")]
    return parts[-1]


def extract_city(address: str) -> str:
    """Second-to-last comma-separated token; the whole address when there is no comma."""
    parts = [part.strip().lower() for part in address.split(",")]
    if len(parts) >= 2:
        return parts[-2]
    return address.lower()


class CoordinateRouteStrategy:
    """Scores from great-circle distances between geocoded points."""

    name = "coordinates"

    def alignment(
        self,
        pickup: GeoPoint,
        delivery: GeoPoint,
        origin: GeoPoint,
        destination: GeoPoint,
        max_pickup_km: float,
        max_delivery_km: float,
    ) -> float:
        pickup_km, delivery_km = self.endpoint_distances(pickup, delivery, origin, destination)

        # Either end outside its radius means the parcel is not on this corridor
        if pickup_km > max_pickup_km or delivery_km > max_delivery_km:
            return 0.0

        pickup_score = proximity_score(pickup_km, max_pickup_km)
        delivery_score = proximity_score(delivery_km, max_delivery_km)
        return (pickup_score + delivery_score) / 2

    def proximity(
        self,
        pickup: GeoPoint,
        delivery: GeoPoint,
        origin: GeoPoint,
        destination: GeoPoint,
        max_km: float,
    ) -> float:
        pickup_km, delivery_km = self.endpoint_distances(pickup, delivery, origin, destination)
        return (proximity_score(pickup_km, max_km) + proximity_score(delivery_km, max_km)) / 2

    @staticmethod
    def endpoint_distances(
        pickup: GeoPoint, delivery: GeoPoint, origin: GeoPoint, destination: GeoPoint
    ) -> Tuple[float, float]:
        return point_distance_km(pickup, origin), point_distance_km(delivery, destination)


class AddressRouteStrategy:
    """Scores from city tokens when coordinates are missing."""

    name = "address"

    # (both ends match, one end matches, no match)
    ALIGNMENT_SCORES = (75.0, 60.0, 55.0)
    PROXIMITY_SCORES = (70.0, 60.0, 50.0)

    def alignment(
        self,
        pickup: GeoPoint,
        delivery: GeoPoint,
        origin: GeoPoint,
        destination: GeoPoint,
        max_pickup_km: float = None,
        max_delivery_km: float = None,
    ) -> float:
        return self._city_score(pickup, delivery, origin, destination, self.ALIGNMENT_SCORES)

    def proximity(
        self,
        pickup: GeoPoint,
        delivery: GeoPoint,
        origin: GeoPoint,
        destination: GeoPoint,
        max_km: float = None,
    ) -> float:
        return self._city_score(pickup, delivery, origin, destination, self.PROXIMITY_SCORES)

    @staticmethod
    def _city_score(pickup, delivery, origin, destination, scores) -> float:
        pickup_match = extract_city(pickup.address) == extract_city(origin.address)
        delivery_match = extract_city(delivery.address) == extract_city(destination.address)

        if pickup_match and delivery_match:
            return scores[0]
        if pickup_match or delivery_match:
            return scores[1]
        return scores[2]


COORDINATE_STRATEGY = CoordinateRouteStrategy()
ADDRESS_STRATEGY = AddressRouteStrategy()


def select_route_strategy(*points: GeoPoint):
    """Coordinates when every point is geocoded, address text otherwise."""
    if all(point.has_coordinates for point in points):
        return COORDINATE_STRATEGY
    return ADDRESS_STRATEGY


def alignment_score(
    pickup: GeoPoint,
    delivery: GeoPoint,
    origin: GeoPoint,
    destination: GeoPoint,
    max_pickup_km: float = 30.0,
    max_delivery_km: float = 30.0,
) -> float:
    """
    Route alignment score (0-100) for a parcel against a trip.

    Args:
        pickup, delivery: Parcel endpoints
        origin, destination: Trip endpoints
        max_pickup_km: Largest acceptable pickup↔origin distance
        max_delivery_km: Largest acceptable delivery↔destination distance
    """
    strategy = select_route_strategy(pickup, delivery, origin, destination)
    return strategy.alignment(pickup, delivery, origin, destination, max_pickup_km, max_delivery_km)
