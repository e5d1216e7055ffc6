"""
Distance from the business base to a service address.

Addresses usually arrive with ``distance_miles`` already computed by the
address layer. When only coordinates are known, the great-circle distance
from the configured base is used.
"""

import math
from decimal import Decimal
from typing import Optional

from detailing_booking.config import BusinessConfig, settings
from detailing_booking.schemas.booking_schema import AddressDescriptor

EARTH_RADIUS_KM = 6371.0
KM_TO_MILES = 0.621371


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def miles_from_base(
    latitude: float, longitude: float, business: Optional[BusinessConfig] = None
) -> Decimal:
    """Distance in miles from the business base, to 2 decimal places."""
    business = business or settings.business
    km = haversine_km(business.base_latitude, business.base_longitude, latitude, longitude)
    return Decimal(str(round(km * KM_TO_MILES, 2)))


def resolve_distance(
    address: AddressDescriptor, business: Optional[BusinessConfig] = None
) -> Decimal:
    """Return the address's precomputed distance, or derive it from coordinates."""
    if address.distance_miles is not None:
        return Decimal(address.distance_miles)
    # AddressDescriptor guarantees coordinates when distance is missing
    return miles_from_base(address.latitude, address.longitude, business)
