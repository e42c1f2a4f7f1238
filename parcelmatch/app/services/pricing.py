"""
Delivery pricing.

The fee for a parcel is computed by the server when a courier accepts it:
the rate card of the pickup and delivery countries applied to the parcel's
own pickup→delivery distance, scaled by its size. The platform commission
and the total charged to the sender are derived from that fee.
"""

import logging
import math
from typing import NamedTuple, Optional

from parcelmatch.app.core.pricing_config import PricingConfig, DEFAULT_PRICING_CONFIG
from parcelmatch.app.models.trip_enums import TripCapacity
from parcelmatch.app.services.candidate_scorer import parcel_size_class
from parcelmatch.app.services.corridor_alignment import extract_country
from parcelmatch.app.services.geo_metrics import GeoPoint, point_distance_km

logger = logging.getLogger("parcelmatch.pricing")

ANY_COUNTRY = "*"

# Country names seen in addresses -> ISO 3166-1 alpha-2
COUNTRY_CODES = {
    "zimbabwe": "ZW",
    "south africa": "ZA",
    "united kingdom": "GB",
    "uk": "GB",
    "united states": "US",
    "usa": "US",
    "america": "US",
    "united arab emirates": "AE",
    "uae": "AE",
    "australia": "AU",
    "germany": "DE",
    "france": "FR",
    "netherlands": "NL",
    "kenya": "KE",
    "nigeria": "NG",
    "ghana": "GH",
    "botswana": "BW",
    "mozambique": "MZ",
    "zambia": "ZM",
    "malawi": "MW",
    "tanzania": "TZ",
    "uganda": "UG",
    "canada": "CA",
    "india": "IN",
    "china": "CN",
    "japan": "JP",
    "brazil": "BR",
    "mexico": "MX",
    "spain": "ES",
    "italy": "IT",
    "portugal": "PT",
    "belgium": "BE",
    "switzerland": "CH",
    "austria": "AT",
    "poland": "PL",
    "ireland": "IE",
    "new zealand": "NZ",
    "singapore": "SG",
    "malaysia": "MY",
    "hong kong": "HK",
    "south korea": "KR",
    "thailand": "TH",
    "vietnam": "VN",
    "indonesia": "ID",
    "philippines": "PH",
    "estonia": "EE",
    "egypt": "EG",
    "morocco": "MA",
    "saudi arabia": "SA",
    "israel": "IL",
    "turkey": "TR",
    "russia": "RU",
    "ukraine": "UA",
    "pakistan": "PK",
    "bangladesh": "BD",
    "sri lanka": "LK",
    "namibia": "NA",
    "angola": "AO",
    "cote d'ivoire": "CI",
    "ivory coast": "CI",
    "senegal": "SN",
    "ethiopia": "ET",
    "rwanda": "RW",
    "cameroon": "CM",
    "congo (democratic republic)": "CD",
    "drc": "CD",
    "congo": "CG",
    "republic of congo": "CG",
}

SIZE_MULTIPLIERS = {
    TripCapacity.SMALL: 0.9,
    TripCapacity.MEDIUM: 1.0,
    TripCapacity.LARGE: 1.2,
}

DOMESTIC_KM_PER_DAY = 400
MAX_DOMESTIC_DAYS = 7
CROSS_BORDER_MIN_HOURS = 2
CROSS_BORDER_MAX_HOURS = 10 * 24


class PricingQuote(NamedTuple):
    delivery_fee: float
    platform_fee: float
    total_amount: float
    currency: str
    is_domestic: bool
    distance_km: float
    estimated_delivery_min_hours: int
    estimated_delivery_max_hours: int


def country_to_code(country: Optional[str]) -> str:
    """
    ISO code for a country name or code as written in an address.

    Known names map through COUNTRY_CODES, two-letter tokens are taken as
    codes, anything else falls back to its first two letters.
    """
    if not country or not country.strip():
        return ANY_COUNTRY
    normalized = country.strip().lower()
    if normalized in COUNTRY_CODES:
        return COUNTRY_CODES[normalized]
    return normalized[:2].upper()


def pricing_size_class(weight_kg: Optional[float]) -> TripCapacity:
    """Size class billed for a parcel; unknown weight is billed as large."""
    return parcel_size_class(weight_kg, None) if weight_kg else TripCapacity.LARGE


def _delivery_window_hours(is_domestic: bool, distance_km: float):
    if not is_domestic:
        return CROSS_BORDER_MIN_HOURS, CROSS_BORDER_MAX_HOURS
    days = max(1, min(MAX_DOMESTIC_DAYS, math.ceil(distance_km / DOMESTIC_KM_PER_DAY)))
    return days * 24, days * 24


def quote_route(
    pickup: GeoPoint,
    delivery: GeoPoint,
    weight_kg: Optional[float],
    config: PricingConfig = DEFAULT_PRICING_CONFIG,
) -> Optional[PricingQuote]:
    """
    Price a pickup→delivery route.

    Returns:
        The quote, or None when no rate card covers the country pair
    """
    origin_code = country_to_code(extract_country(pickup.address))
    destination_code = country_to_code(extract_country(delivery.address))
    rate = config.rate_for(origin_code, destination_code)
    if rate is None:
        logger.info("No delivery pricing for %s -> %s", origin_code, destination_code)
        return None

    distance = 0.0
    if pickup.has_coordinates and delivery.has_coordinates:
        distance = point_distance_km(pickup, delivery)

    billed_distance = distance
    if rate.max_distance_km is not None:
        billed_distance = min(distance, rate.max_distance_km)

    multiplier = SIZE_MULTIPLIERS[pricing_size_class(weight_kg)]
    delivery_fee = round(max(0.0, (rate.base_fee + billed_distance * rate.rate_per_km) * multiplier), 2)
    platform_fee = round(delivery_fee * config.platform_commission_percent / 100, 2)
    min_hours, max_hours = _delivery_window_hours(rate.is_domestic, distance)

    return PricingQuote(
        delivery_fee=delivery_fee,
        platform_fee=platform_fee,
        total_amount=round(delivery_fee + platform_fee, 2),
        currency=rate.currency,
        is_domestic=rate.is_domestic,
        distance_km=round(distance, 2),
        estimated_delivery_min_hours=min_hours,
        estimated_delivery_max_hours=max_hours,
    )


def quote_parcel(parcel, config: PricingConfig = DEFAULT_PRICING_CONFIG) -> Optional[PricingQuote]:
    """Price a parcel's own pickup→delivery route."""
    pickup = GeoPoint(parcel.pickup_address, parcel.pickup_latitude, parcel.pickup_longitude)
    delivery = GeoPoint(parcel.delivery_address, parcel.delivery_latitude, parcel.delivery_longitude)
    return quote_route(pickup, delivery, parcel.weight_kg, config)
