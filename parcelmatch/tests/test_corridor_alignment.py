"""
Unit tests for corridor alignment and its address-text fallback.
"""

import pytest

from parcelmatch.app.services.corridor_alignment import (
    ADDRESS_STRATEGY,
    COORDINATE_STRATEGY,
    addresses_match,
    alignment_score,
    extract_city,
    extract_country,
    select_route_strategy,
)
from parcelmatch.app.services.geo_metrics import GeoPoint

PICKUP = GeoPoint("New York, USA", 40.0, -73.0)
DELIVERY = GeoPoint("Los Angeles, USA", 34.0, -118.0)
ORIGIN = GeoPoint("New York, USA", 40.01, -73.01)
DESTINATION = GeoPoint("Los Angeles, USA", 34.02, -118.01)


def test_extract_country_is_last_token_lowercased():
    assert extract_country("12 Main St, Harare, Zimbabwe ") == "zimbabwe"


def test_extract_city_is_second_to_last_token():
    assert extract_city("12 Main St, Harare, Zimbabwe") == "harare"


def test_extract_city_without_comma_is_whole_address():
    assert extract_city("Harare") == "harare"


def test_addresses_match_ignores_case_spacing_and_punctuation():
    assert addresses_match("12 Main St.,  Harare, Zimbabwe", "12 main st, harare, zimbabwe")
    assert not addresses_match("Harare, Zimbabwe", "Bulawayo, Zimbabwe")


def test_strategy_selection_depends_on_coordinates():
    assert select_route_strategy(PICKUP, DELIVERY, ORIGIN, DESTINATION) is COORDINATE_STRATEGY

    no_coords = GeoPoint("New York, USA")
    assert select_route_strategy(no_coords, DELIVERY, ORIGIN, DESTINATION) is ADDRESS_STRATEGY


def test_alignment_close_endpoints_scores_high():
    score = alignment_score(PICKUP, DELIVERY, ORIGIN, DESTINATION)
    assert score == pytest.approx(93.66, abs=0.05)


def test_alignment_is_zero_when_pickup_outside_radius():
    far_pickup = GeoPoint("New York, USA", 41.8, -73.0)
    assert alignment_score(far_pickup, DELIVERY, ORIGIN, DESTINATION) == 0.0


def test_alignment_is_zero_when_delivery_outside_radius():
    far_delivery = GeoPoint("Los Angeles, USA", 34.5, -118.0)
    assert alignment_score(PICKUP, far_delivery, ORIGIN, DESTINATION, max_delivery_km=30) == 0.0


def test_alignment_radius_is_configurable():
    far_pickup = GeoPoint("New York, USA", 40.3, -73.0)
    assert alignment_score(far_pickup, DELIVERY, ORIGIN, DESTINATION, max_pickup_km=30) == 0.0
    assert alignment_score(far_pickup, DELIVERY, ORIGIN, DESTINATION, max_pickup_km=60) > 0.0


@pytest.mark.parametrize("pickup,delivery,expected", [
    ("Harare, Zimbabwe", "Bulawayo, Zimbabwe", 75.0),
    ("Harare, Zimbabwe", "Mutare, Zimbabwe", 60.0),
    ("Gweru, Zimbabwe", "Mutare, Zimbabwe", 55.0),
])
def test_address_fallback_alignment(pickup, delivery, expected):
    score = alignment_score(
        GeoPoint(pickup), GeoPoint(delivery),
        GeoPoint("Harare, Zimbabwe"), GeoPoint("Bulawayo, Zimbabwe")
    )
    assert score == expected


@pytest.mark.parametrize("pickup,delivery,expected", [
    ("Harare, Zimbabwe", "Bulawayo, Zimbabwe", 70.0),
    ("Harare, Zimbabwe", "Mutare, Zimbabwe", 60.0),
    ("Gweru, Zimbabwe", "Mutare, Zimbabwe", 50.0),
])
def test_address_fallback_proximity(pickup, delivery, expected):
    score = ADDRESS_STRATEGY.proximity(
        GeoPoint(pickup), GeoPoint(delivery),
        GeoPoint("Harare, Zimbabwe"), GeoPoint("Bulawayo, Zimbabwe")
    )
    assert score == expected


def test_address_fallback_never_scores_zero():
    score = alignment_score(
        GeoPoint("Lagos, Nigeria"), GeoPoint("Accra, Ghana"),
        GeoPoint("Harare, Zimbabwe"), GeoPoint("Bulawayo, Zimbabwe")
    )
    assert score > 0


def test_coordinate_proximity_uses_wider_radius():
    score = COORDINATE_STRATEGY.proximity(PICKUP, DELIVERY, ORIGIN, DESTINATION, 50)
    assert score == pytest.approx(96.19, abs=0.05)
