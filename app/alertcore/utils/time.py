from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if not isinstance(value, datetime):
        raise TypeError(f"Expected datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_duration(raw: Any) -> timedelta:
    """Parse ``"12 minutes"``, ``"90 seconds"``, ``"3 days"`` or a bare minute count."""
    if isinstance(raw, timedelta):
        return raw
    if isinstance(raw, bool):
        raise ValueError(f"Unsupported duration: {raw!r}")
    if isinstance(raw, (int, float)):
        return timedelta(minutes=raw)
    parts = str(raw).strip().split()
    if len(parts) == 1:
        return timedelta(minutes=float(parts[0]))
    if len(parts) != 2:
        raise ValueError(f"Unsupported duration: {raw!r}")
    value, unit = parts
    amount = float(value)
    unit = unit.lower()
    if unit.startswith("sec"):
        return timedelta(seconds=amount)
    if unit.startswith("min"):
        return timedelta(minutes=amount)
    if unit.startswith("hour"):
        return timedelta(hours=amount)
    if unit.startswith("day"):
        return timedelta(days=amount)
    if unit.startswith("week"):
        return timedelta(weeks=amount)
    raise ValueError(f"Unsupported duration unit: {unit}")


def minutes_until(target: datetime, now: datetime) -> int:
    """Whole minutes remaining, rounded up; zero or negative once ``target`` has passed."""
    return math.ceil((target - now).total_seconds() / 60)
