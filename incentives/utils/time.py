"""Time utilities (UTC now, timezone coercion, local-day bounds)."""
from __future__ import annotations
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime, tz_name: str) -> datetime:
    """Attach ``tz_name`` to a naive datetime; aware values pass through."""
    if value.tzinfo is None:
        return value.replace(tzinfo=ZoneInfo(tz_name))
    return value


def as_utc(value: datetime, tz_name: str = "UTC") -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns; those were stored as UTC.
    return ensure_aware(value, tz_name).astimezone(timezone.utc)


def to_local(value: datetime, tz_name: str) -> datetime:
    return as_utc(value).astimezone(ZoneInfo(tz_name))


def local_day_bounds(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """[start, end) of a calendar day in ``tz_name`` expressed in UTC."""
    tz = ZoneInfo(tz_name)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


__all__ = ["utc_now", "ensure_aware", "as_utc", "to_local", "local_day_bounds"]
