from __future__ import annotations
from datetime import datetime, timezone


def utcnow() -> datetime:
    # Single clock for the lifecycle rules; tests patch this.
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_years(value: datetime, years: int) -> datetime:
    """Same calendar date ``years`` later; Feb 29 lands on Feb 28 in a non-leap year."""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)
