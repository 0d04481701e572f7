"""Centralized time helpers with app timezone support."""
import os
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

# App timezone setting - decides what "today" means for a journal entry
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Asia/Shanghai")


def get_app_tz() -> ZoneInfo:
    """Get the application timezone."""
    return ZoneInfo(APP_TIMEZONE)


def utc_now() -> datetime:
    """Return naive UTC now, matching the DateTime columns and stored JSON."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def next_timestamp(previous: Optional[datetime] = None) -> datetime:
    """Return a write timestamp strictly later than `previous`.

    Two writes can land inside the same clock tick; updated_at must still
    move forward so "changed since" comparisons stay meaningful.
    """
    now = utc_now()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def today_local() -> date:
    """Today's date in the app timezone."""
    return datetime.now(get_app_tz()).date()


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a stored timestamp for JSON output."""
    if dt is None:
        return None
    return dt.isoformat()


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO timestamp from JSON into naive UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        # JSON from browsers carries a trailing Z
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
