"""
timeutil.py — UTC helpers.

All timestamps are stored and compared as timezone-aware UTC datetimes.
Some backends (SQLite) hand back naive values for DateTime(timezone=True)
columns; as_utc() is the single place that normalises them.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes are taken to be UTC; aware ones are converted to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    normalised = as_utc(value)
    return normalised.isoformat() if normalised is not None else None
