"""
Centralized configuration with environment variable overrides.

Pricing constants, calendar templates and policy thresholds live here so the
engine components never carry magic numbers of their own.
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_decimal(env_var: str, default: str) -> Decimal:
    """Parse a money amount from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return Decimal(raw)
    except (InvalidOperation, TypeError):
        raise ValueError(
            f"Invalid decimal for {env_var}: {raw!r}"
        ) from None


def _csv(env_var: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(env_var, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class BusinessConfig:
    """Business identity and the base location distances are measured from."""

    name: str = os.getenv("BUSINESS_NAME", "Love4Detailing")
    base_postcode: str = os.getenv("BUSINESS_BASE_POSTCODE", "SW9")
    base_latitude: float = _safe_float("BUSINESS_BASE_LATITUDE", "51.4719")
    base_longitude: float = _safe_float("BUSINESS_BASE_LONGITUDE", "-0.1162")
    reference_prefix: str = os.getenv("BOOKING_REFERENCE_PREFIX", "L4D")


@dataclass(frozen=True)
class PricingConfig:
    """Travel surcharge parameters applied on top of the service price."""

    free_radius_miles: Decimal = _safe_decimal("FREE_RADIUS_MILES", "17.5")
    per_mile_rate: Decimal = _safe_decimal("SURCHARGE_PER_MILE", "0.50")
    minimum_surcharge: Decimal = _safe_decimal("MINIMUM_SURCHARGE", "5.00")
    maximum_surcharge: Decimal = _safe_decimal("MAXIMUM_SURCHARGE", "25.00")


@dataclass(frozen=True)
class CalendarConfig:
    """Default day template used when seeding slots."""

    default_start_times: tuple[str, ...] = _csv(
        "SLOT_START_TIMES", "09:00,11:00,13:00,15:00"
    )
    slot_duration_minutes: int = _safe_int("SLOT_DURATION_MINUTES", "120")
    booking_buffer_minutes: int = _safe_int("BOOKING_BUFFER_MINUTES", "0")


@dataclass(frozen=True)
class PolicyConfig:
    """Cancellation and reschedule policy thresholds."""

    refund_threshold_hours: int = _safe_int("REFUND_THRESHOLD_HOURS", "24")
    # 0 keeps pending reschedule requests open indefinitely.
    reschedule_pending_ttl_hours: int = _safe_int("RESCHEDULE_PENDING_TTL_HOURS", "0")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    pricing = config.pricing
    if pricing.free_radius_miles < 0:
        raise ValueError(
            f"FREE_RADIUS_MILES must be >= 0, got {pricing.free_radius_miles}"
        )
    if pricing.per_mile_rate < 0:
        raise ValueError(
            f"SURCHARGE_PER_MILE must be >= 0, got {pricing.per_mile_rate}"
        )
    if pricing.minimum_surcharge < 0:
        raise ValueError(
            f"MINIMUM_SURCHARGE must be >= 0, got {pricing.minimum_surcharge}"
        )
    if pricing.maximum_surcharge < pricing.minimum_surcharge:
        raise ValueError(
            "MAXIMUM_SURCHARGE must be >= MINIMUM_SURCHARGE, "
            f"got {pricing.maximum_surcharge} < {pricing.minimum_surcharge}"
        )

    if not config.calendar.default_start_times:
        raise ValueError("SLOT_START_TIMES must list at least one HH:MM time")
    if config.calendar.slot_duration_minutes < 1:
        raise ValueError(
            f"SLOT_DURATION_MINUTES must be >= 1, got {config.calendar.slot_duration_minutes}"
        )
    if config.calendar.booking_buffer_minutes < 0:
        raise ValueError(
            f"BOOKING_BUFFER_MINUTES must be >= 0, got {config.calendar.booking_buffer_minutes}"
        )

    if config.policy.refund_threshold_hours < 0:
        raise ValueError(
            f"REFUND_THRESHOLD_HOURS must be >= 0, got {config.policy.refund_threshold_hours}"
        )
    if config.policy.reschedule_pending_ttl_hours < 0:
        raise ValueError(
            "RESCHEDULE_PENDING_TTL_HOURS must be >= 0, "
            f"got {config.policy.reschedule_pending_ttl_hours}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()
