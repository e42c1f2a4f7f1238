"""
Delivery pricing configuration value object.

Rate cards per (origin country, destination country) pair, keyed by ISO
3166-1 alpha-2 codes as "ZW:ZA", plus the generic domestic card used for any
same-country route without a card of its own. Built from settings at the
composition root, like MatchingConfig.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field

# Seed rate cards (USD)
DEFAULT_DELIVERY_RATES: Dict[str, Dict] = {
    "ZW:ZW": {"base_fee": 5.0, "rate_per_km": 0.40, "is_domestic": True},
    "ZA:ZA": {"base_fee": 5.0, "rate_per_km": 0.35, "is_domestic": True},
    "GB:GB": {"base_fee": 8.0, "rate_per_km": 0.50, "is_domestic": True},
    "ZW:ZA": {"base_fee": 25.0, "rate_per_km": 0.10, "max_distance_km": 500.0},
    "ZA:ZW": {"base_fee": 25.0, "rate_per_km": 0.10, "max_distance_km": 500.0},
    "ZW:GB": {"base_fee": 80.0, "rate_per_km": 0.05, "max_distance_km": 1000.0},
    "GB:ZW": {"base_fee": 80.0, "rate_per_km": 0.05, "max_distance_km": 1000.0},
    "ZA:GB": {"base_fee": 70.0, "rate_per_km": 0.05, "max_distance_km": 1000.0},
    "GB:ZA": {"base_fee": 70.0, "rate_per_km": 0.05, "max_distance_km": 1000.0},
}


def route_key(origin_code: str, destination_code: str) -> str:
    return f"{origin_code}:{destination_code}"


class DeliveryRate(BaseModel):
    """Base fee plus a per-km rate, with an optional cap on the billed distance."""
    base_fee: float = Field(..., ge=0)
    rate_per_km: float = Field(..., ge=0)
    max_distance_km: Optional[float] = Field(None, gt=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    is_domestic: bool = False

    class Config:
        frozen = True


class PricingConfig(BaseModel):
    """Immutable pricing configuration."""

    rates: Dict[str, DeliveryRate] = Field(
        default_factory=lambda: {key: DeliveryRate(**card) for key, card in DEFAULT_DELIVERY_RATES.items()}
    )
    domestic_fallback: DeliveryRate = DeliveryRate(base_fee=5.0, rate_per_km=0.40, is_domestic=True)

    # Platform share added on top of the courier's delivery fee
    platform_commission_percent: float = Field(15.0, ge=0, le=100)

    class Config:
        frozen = True

    def rate_for(self, origin_code: str, destination_code: str) -> Optional[DeliveryRate]:
        """
        Card for a country pair.

        Same-country routes without their own card use the generic domestic
        card; cross-border routes without a card have no price.
        """
        rate = self.rates.get(route_key(origin_code, destination_code))
        if rate is not None:
            return rate
        if origin_code == destination_code:
            return self.domestic_fallback
        return None

    @classmethod
    def from_settings(cls, settings) -> "PricingConfig":
        """Build the config from deployment settings."""
        return cls(
            rates={key: DeliveryRate(**card) for key, card in settings.pricing_rates.items()},
            domestic_fallback=DeliveryRate(
                base_fee=settings.pricing_domestic_base_fee,
                rate_per_km=settings.pricing_domestic_rate_per_km,
                is_domestic=True,
            ),
            platform_commission_percent=settings.pricing_platform_commission_percent,
        )


DEFAULT_PRICING_CONFIG = PricingConfig()
