"""
SceneStack — UTC clock helpers

All lifecycle timestamps are timezone-aware UTC. SQLite (tests) drops tzinfo
on round-trip, so values read back from the store go through ensure_utc()
before any arithmetic.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_since(start: datetime, reference_time: datetime | None = None) -> int:
    """Whole days elapsed between start and reference_time (default: now)."""
    now = ensure_utc(reference_time) if reference_time is not None else utcnow()
    return (now - ensure_utc(start)).days
