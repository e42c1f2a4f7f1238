"""
Unit tests for delivery pricing: country codes, rate cards, size multipliers
and the platform commission.
"""

import pytest
from types import SimpleNamespace

from parcelmatch.app.core.config import Settings
from parcelmatch.app.core.pricing_config import DeliveryRate, PricingConfig
from parcelmatch.app.models.trip_enums import TripCapacity
from parcelmatch.app.services.geo_metrics import GeoPoint, distance_km
from parcelmatch.app.services.pricing import (
    country_to_code,
    pricing_size_class,
    quote_parcel,
    quote_route,
)

HARARE = GeoPoint("Harare, Zimbabwe", -17.83, 31.05)
BULAWAYO = GeoPoint("Bulawayo, Zimbabwe", -20.15, 28.58)
JOHANNESBURG = GeoPoint("Johannesburg, South Africa", -26.20, 28.05)


@pytest.mark.parametrize("country, code", [
    ("Zimbabwe", "ZW"),
    ("  south africa ", "ZA"),
    ("UK", "GB"),
    ("za", "ZA"),
    ("Wakanda", "WA"),
    ("", "*"),
    (None, "*"),
])
def test_country_to_code(country, code):
    assert country_to_code(country) == code


@pytest.mark.parametrize("weight, size", [
    (1.0, TripCapacity.SMALL),
    (2.0, TripCapacity.SMALL),
    (10.0, TripCapacity.MEDIUM),
    (10.5, TripCapacity.LARGE),
    (None, TripCapacity.LARGE),
])
def test_pricing_size_class(weight, size):
    assert pricing_size_class(weight) == size


def test_domestic_route_is_priced_per_km():
    quote = quote_route(HARARE, BULAWAYO, 3.0)

    distance = distance_km(HARARE.latitude, HARARE.longitude, BULAWAYO.latitude, BULAWAYO.longitude)
    assert quote.is_domestic is True
    assert quote.distance_km == pytest.approx(distance, abs=0.01)
    assert quote.delivery_fee == pytest.approx(5.0 + distance * 0.40, abs=0.01)
    assert quote.currency == "USD"
    assert quote.estimated_delivery_min_hours == quote.estimated_delivery_max_hours == 24


def test_missing_coordinates_charge_the_base_fee():
    quote = quote_route(GeoPoint("Harare, Zimbabwe"), GeoPoint("Bulawayo, Zimbabwe"), 3.0)

    assert quote.distance_km == 0.0
    assert quote.delivery_fee == 5.0
    assert quote.platform_fee == 0.75
    assert quote.total_amount == 5.75


def test_size_multiplier_scales_the_fee():
    unknown_weight = quote_route(GeoPoint("Harare, Zimbabwe"), GeoPoint("Bulawayo, Zimbabwe"), None)

    assert unknown_weight.delivery_fee == 6.0
    assert unknown_weight.total_amount == 6.9


def test_cross_border_distance_is_capped():
    quote = quote_route(HARARE, JOHANNESBURG, 3.0)

    # ~980 km billed as 500 km: 25.00 + 500 * 0.10
    assert quote.distance_km > 500
    assert quote.is_domestic is False
    assert quote.delivery_fee == 75.0
    assert quote.platform_fee == 11.25
    assert quote.total_amount == 86.25
    assert (quote.estimated_delivery_min_hours, quote.estimated_delivery_max_hours) == (2, 240)


def test_cross_border_route_without_card_has_no_price():
    assert quote_route(HARARE, GeoPoint("Nairobi, Kenya", -1.29, 36.82), 3.0) is None


def test_same_country_without_card_uses_generic_domestic_rate():
    quote = quote_route(GeoPoint("Nairobi, Kenya"), GeoPoint("Mombasa, Kenya"), 3.0)

    assert quote.is_domestic is True
    assert quote.delivery_fee == 5.0


def test_quote_parcel_reads_the_parcel_route():
    parcel = SimpleNamespace(
        pickup_address=HARARE.address,
        pickup_latitude=None,
        pickup_longitude=None,
        delivery_address=JOHANNESBURG.address,
        delivery_latitude=JOHANNESBURG.latitude,
        delivery_longitude=JOHANNESBURG.longitude,
        weight_kg=1.0,
    )

    quote = quote_parcel(parcel)

    # Base fee only, small parcel
    assert quote.delivery_fee == 22.5


def test_config_from_settings():
    settings = Settings(
        pricing_platform_commission_percent=10.0,
        pricing_domestic_base_fee=2.0,
        pricing_domestic_rate_per_km=0.0,
        pricing_rates={"ZW:ZW": {"base_fee": 4.0, "rate_per_km": 0.0, "is_domestic": True}},
    )
    config = PricingConfig.from_settings(settings)

    zimbabwe = quote_route(GeoPoint("Harare, Zimbabwe"), GeoPoint("Bulawayo, Zimbabwe"), 3.0, config)
    kenya = quote_route(GeoPoint("Nairobi, Kenya"), GeoPoint("Mombasa, Kenya"), 3.0, config)

    assert zimbabwe.delivery_fee == 4.0
    assert zimbabwe.platform_fee == 0.4
    assert kenya.delivery_fee == 2.0
    # Seeded cross-border cards are replaced, not merged
    assert config.rate_for("ZW", "ZA") is None


def test_rate_cards_are_immutable():
    rate = DeliveryRate(base_fee=1.0, rate_per_km=0.1)
    with pytest.raises(Exception):
        rate.base_fee = 2.0
