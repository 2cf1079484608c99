"""
Utility helpers for timestamps and money.
"""
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import pytz

UTC = pytz.UTC


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC, convert aware ones to UTC"""
    if dt.tzinfo is None:
        return UTC.localize(dt)
    return dt.astimezone(UTC)


def isoformat_utc(dt: Optional[datetime] = None) -> str:
    return ensure_utc(dt or utc_now()).isoformat()


def to_minor_units(price: float) -> int:
    """Convert a price in major units (dollars) to integer cents."""
    return int((Decimal(str(price)) * 100).to_integral_value(rounding=ROUND_HALF_UP))
