"""
Deterministic booking price computation.

    adjusted  = round2(base_price × vehicle_size_multiplier)
    surcharge = 0                                    within the free radius
              = clamp(excess_miles × rate, min, max) beyond it
    total     = round2(adjusted + surcharge)

Rounding is half-up to 2 decimal places. The engine holds no state; inputs
are validated by the request schemas before they reach it.
"""

import logging
from decimal import Decimal
from typing import Optional

from detailing_booking.catalog import get_size_multiplier
from detailing_booking.config import BusinessConfig, PricingConfig, settings
from detailing_booking.distance import resolve_distance
from detailing_booking.schemas.booking_schema import (
    AddressDescriptor,
    PriceBreakdown,
    ServiceDescriptor,
    VehicleDescriptor,
)
from detailing_booking.utils import round_money, to_decimal

logger = logging.getLogger(__name__)


class PricingEngine:
    """Pure price calculator parameterised by the travel surcharge config."""

    def __init__(
        self,
        config: Optional[PricingConfig] = None,
        business: Optional[BusinessConfig] = None,
    ) -> None:
        self.config = config or settings.pricing
        self.business = business or settings.business

    def distance_surcharge(self, distance_from_base: Decimal) -> Decimal:
        distance = to_decimal(distance_from_base)
        if distance <= self.config.free_radius_miles:
            return round_money(Decimal("0"))
        excess = distance - self.config.free_radius_miles
        raw = excess * self.config.per_mile_rate
        clamped = min(max(raw, self.config.minimum_surcharge), self.config.maximum_surcharge)
        return round_money(clamped)

    def compute_price(
        self,
        base_price: Decimal,
        vehicle_size_multiplier: Decimal,
        distance_from_base: Decimal,
    ) -> PriceBreakdown:
        base = to_decimal(base_price)
        multiplier = to_decimal(vehicle_size_multiplier)
        distance = to_decimal(distance_from_base)

        adjusted = round_money(base * multiplier)
        surcharge = self.distance_surcharge(distance)
        total = round_money(adjusted + surcharge)

        return PriceBreakdown(
            base_price=round_money(base),
            vehicle_size_multiplier=multiplier,
            adjusted_price=adjusted,
            distance_miles=distance,
            within_free_radius=distance <= self.config.free_radius_miles,
            distance_surcharge=surcharge,
            total=total,
        )

    def price_booking(
        self,
        service: ServiceDescriptor,
        vehicle: VehicleDescriptor,
        address: AddressDescriptor,
    ) -> PriceBreakdown:
        """Price a concrete service / vehicle / address selection."""
        multiplier = get_size_multiplier(vehicle.size)
        distance = resolve_distance(address, self.business)
        breakdown = self.compute_price(service.base_price, multiplier, distance)
        breakdown = breakdown.model_copy(update={"vehicle_size": vehicle.size})
        logger.debug(
            "Priced %s for size %s at %.2f miles: %s",
            service.id, vehicle.size.value, distance, breakdown.total,
        )
        return breakdown

    def verify(self, breakdown: PriceBreakdown) -> bool:
        """Re-derive a persisted breakdown from its own inputs and compare totals."""
        derived = self.compute_price(
            breakdown.base_price,
            breakdown.vehicle_size_multiplier,
            breakdown.distance_miles,
        )
        return (
            derived.adjusted_price == breakdown.adjusted_price
            and derived.distance_surcharge == breakdown.distance_surcharge
            and derived.total == breakdown.total
        )


def compute_price(
    base_price: Decimal,
    vehicle_size_multiplier: Decimal,
    distance_from_base: Decimal,
) -> PriceBreakdown:
    """Module-level shortcut using the configured surcharge parameters."""
    return PricingEngine().compute_price(base_price, vehicle_size_multiplier, distance_from_base)
