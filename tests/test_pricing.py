"""Tests for the pricing engine."""

from decimal import Decimal

import pytest

from detailing_booking.config import PricingConfig
from detailing_booking.engine.pricing import PricingEngine, compute_price
from detailing_booking.schemas.booking_schema import (
    AddressDescriptor,
    ServiceDescriptor,
    VehicleDescriptor,
    VehicleSize,
)


@pytest.fixture
def engine(config):
    return PricingEngine(config.pricing, config.business)


class TestComputePrice:
    def test_reference_scenario(self, engine):
        breakdown = engine.compute_price(Decimal("100"), Decimal("1.2"), Decimal("25"))
        assert breakdown.adjusted_price == Decimal("120.00")
        assert breakdown.distance_surcharge == Decimal("5.00")
        assert breakdown.total == Decimal("125.00")
        assert not breakdown.within_free_radius

    def test_within_free_radius_has_no_surcharge(self, engine):
        breakdown = engine.compute_price(Decimal("75"), Decimal("1.0"), Decimal("10"))
        assert breakdown.distance_surcharge == Decimal("0.00")
        assert breakdown.within_free_radius
        assert breakdown.total == Decimal("75.00")

    def test_exactly_at_radius_is_free(self, engine):
        breakdown = engine.compute_price(Decimal("75"), Decimal("1.0"), Decimal("17.5"))
        assert breakdown.distance_surcharge == Decimal("0.00")

    def test_surcharge_between_min_and_max(self, engine):
        # 37.5 miles -> 20 excess miles * 0.50 = 10.00
        breakdown = engine.compute_price(Decimal("50"), Decimal("1.0"), Decimal("37.5"))
        assert breakdown.distance_surcharge == Decimal("10.00")
        assert breakdown.total == Decimal("60.00")

    def test_surcharge_capped_at_maximum(self, engine):
        breakdown = engine.compute_price(Decimal("50"), Decimal("1.0"), Decimal("200"))
        assert breakdown.distance_surcharge == Decimal("25.00")

    def test_adjusted_price_rounds_half_up(self, engine):
        # 33.35 * 1.5 = 50.025 -> 50.03
        breakdown = engine.compute_price(Decimal("33.35"), Decimal("1.5"), Decimal("0"))
        assert breakdown.adjusted_price == Decimal("50.03")

    def test_float_inputs_do_not_leak_binary_noise(self, engine):
        breakdown = engine.compute_price(100, 1.2, 25)
        assert breakdown.vehicle_size_multiplier == Decimal("1.2")
        assert breakdown.total == Decimal("125.00")

    def test_custom_config(self):
        engine = PricingEngine(PricingConfig(
            free_radius_miles=Decimal("5"),
            per_mile_rate=Decimal("1.00"),
            minimum_surcharge=Decimal("2.00"),
            maximum_surcharge=Decimal("8.00"),
        ))
        assert engine.distance_surcharge(Decimal("9")) == Decimal("4.00")


class TestPricingProperties:
    @pytest.mark.parametrize("base,multiplier,distance", [
        ("35", "1.0", "0"),
        ("75", "1.2", "17.6"),
        ("100", "1.4", "30"),
        ("85", "1.6", "120"),
        ("0.01", "0.5", "18"),
    ])
    def test_deterministic_and_total_at_least_adjusted(self, engine, base, multiplier, distance):
        first = engine.compute_price(Decimal(base), Decimal(multiplier), Decimal(distance))
        second = engine.compute_price(Decimal(base), Decimal(multiplier), Decimal(distance))
        assert first == second
        assert first.total >= first.adjusted_price

    def test_verify_accepts_untampered_breakdown(self, engine):
        breakdown = engine.compute_price(Decimal("100"), Decimal("1.2"), Decimal("25"))
        assert engine.verify(breakdown)

    def test_verify_detects_tampered_total(self, engine):
        breakdown = engine.compute_price(Decimal("100"), Decimal("1.2"), Decimal("25"))
        tampered = breakdown.model_copy(update={"total": Decimal("99.00")})
        assert not engine.verify(tampered)


class TestPriceBooking:
    def test_uses_vehicle_size_multiplier(self, engine):
        service = ServiceDescriptor(id="premium-detail", name="Premium", base_price=Decimal("100"))
        vehicle = VehicleDescriptor(make="Ford", model="Transit", size=VehicleSize.EXTRA_LARGE)
        address = AddressDescriptor(
            address_line1="1 Road", city="London", postcode="SW9", distance_miles=Decimal("3")
        )
        breakdown = engine.price_booking(service, vehicle, address)
        assert breakdown.vehicle_size == VehicleSize.EXTRA_LARGE
        assert breakdown.adjusted_price == Decimal("160.00")
        assert breakdown.total == Decimal("160.00")

    def test_distance_derived_from_coordinates(self, engine):
        service = ServiceDescriptor(id="full-valet", name="Full Valet", base_price=Decimal("75"))
        vehicle = VehicleDescriptor(make="VW", model="Golf", size=VehicleSize.SMALL)
        # Base coordinates: zero distance
        address = AddressDescriptor(
            address_line1="1 Road", city="London", postcode="SW9",
            latitude=51.4719, longitude=-0.1162,
        )
        breakdown = engine.price_booking(service, vehicle, address)
        assert breakdown.distance_miles == Decimal("0.0")
        assert breakdown.total == Decimal("75.00")


class TestModuleShortcut:
    def test_compute_price_uses_settings(self):
        breakdown = compute_price(Decimal("35"), Decimal("1.0"), Decimal("0"))
        assert breakdown.total == Decimal("35.00")
        assert breakdown.within_free_radius
