from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

ORDER_STAMP_FORMAT = "%Y%m%d%H%M%S"


def utcnow() -> datetime:
    """Naive UTC 'now'; every stored timestamp uses this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an upstream or client ISO-8601 timestamp into naive UTC.

    Upstream *_gmt fields carry no offset and are already UTC. Values with
    "Z" or an explicit offset are converted. Blank input gives None.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing 'Z'; naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def utc_day_window(dt: datetime) -> tuple[datetime, datetime]:
    """[start, end) of the UTC calendar day containing dt."""
    start = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def order_stamp(dt: datetime) -> str:
    return dt.strftime(ORDER_STAMP_FORMAT)
