"""Service catalog with base prices, durations, and vehicle-size multipliers."""

import logging
from decimal import Decimal
from typing import Optional

from detailing_booking.schemas.booking_schema import ServiceDescriptor, VehicleSize

logger = logging.getLogger(__name__)

SERVICE_CATALOG: dict[str, dict] = {
    "essential-wash": {
        "name": "Essential Wash",
        "description": "Exterior hand wash, wheels, tyres and windows.",
        "base_price": Decimal("35.00"),
        "duration_minutes": 60,
    },
    "full-valet": {
        "name": "Full Valet",
        "description": "Exterior wash plus full interior vacuum, wipe-down and glass.",
        "base_price": Decimal("75.00"),
        "duration_minutes": 120,
    },
    "premium-detail": {
        "name": "Premium Detail",
        "description": "Clay bar decontamination, machine polish and sealant.",
        "base_price": Decimal("100.00"),
        "duration_minutes": 180,
    },
    "interior-deep-clean": {
        "name": "Interior Deep Clean",
        "description": "Shampoo and extraction of seats and carpets, leather conditioning.",
        "base_price": Decimal("85.00"),
        "duration_minutes": 150,
    },
}

VEHICLE_SIZE_MULTIPLIERS: dict[VehicleSize, Decimal] = {
    VehicleSize.SMALL: Decimal("1.00"),
    VehicleSize.MEDIUM: Decimal("1.20"),
    VehicleSize.LARGE: Decimal("1.40"),
    VehicleSize.EXTRA_LARGE: Decimal("1.60"),
}

VEHICLE_SIZE_LABELS: dict[VehicleSize, str] = {
    VehicleSize.SMALL: "Small",
    VehicleSize.MEDIUM: "Medium",
    VehicleSize.LARGE: "Large",
    VehicleSize.EXTRA_LARGE: "Extra Large",
}


def get_size_multiplier(size: VehicleSize) -> Decimal:
    """Return the price multiplier for a vehicle size class."""
    return VEHICLE_SIZE_MULTIPLIERS[VehicleSize(size)]


def get_all_services() -> list[dict]:
    """Return all services with basic info."""
    return [
        {"id": sid, "name": info["name"], "base_price": info["base_price"]}
        for sid, info in SERVICE_CATALOG.items()
    ]


def get_service(service_id: str) -> Optional[ServiceDescriptor]:
    """Look up a catalog service by id. Returns None if unknown."""
    info = SERVICE_CATALOG.get(service_id.lower().strip())
    if info is None:
        logger.debug("Unknown service id: %s", service_id)
        return None
    return ServiceDescriptor(
        id=service_id.lower().strip(),
        name=info["name"],
        base_price=info["base_price"],
        duration_minutes=info["duration_minutes"],
    )
