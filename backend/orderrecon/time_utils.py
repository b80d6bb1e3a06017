# Overview: Timestamp helpers; all stored datetimes are UTC-naive, all remote timestamps are normalized on the way in.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def stale_cutoff(age: timedelta) -> datetime:
    """Rows created at or before this moment are older than `age`."""
    return utcnow() - age


def parse_remote_timestamp(value: Any) -> Optional[datetime]:
    """
    Normalize a timestamp from the order/inventory/receivables services.

    Accepted:
        "2026-10-19 10:00:00"        MySQL style, taken as UTC
        "2026-10-19T10:00:00Z"       ISO-8601 with Z or an offset
        1792404000                   epoch seconds
        datetime                     returned as UTC-naive
    Anything else (None, "", "0000-00-00 00:00:00") -> None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float, Decimal)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc).replace(tzinfo=None)
    else:
        text = str(value).strip()
        if not text or text.startswith("0000-00-00"):
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None

    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing Z, seconds precision. Naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
