# Overview: UTC clock helpers; every timestamp column stores naive UTC.

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

_EPOCH = datetime(1970, 1, 1)
_ONE_MS = timedelta(milliseconds=1)


def utcnow() -> datetime:
    """Current time as naive UTC, the form stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def epoch_millis(moment: Optional[datetime] = None) -> int:
    """Milliseconds since the Unix epoch for a naive-UTC datetime (default: now)."""
    moment = moment or utcnow()
    return (moment - _EPOCH) // _ONE_MS


def parse_iso_datetime(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a query-string timestamp into naive UTC.

    Accepts full ISO-8601 ("2026-10-19T14:30:00Z", offsets, or no zone, which
    is read as UTC) and bare dates. A bare date maps to midnight, or to the
    last microsecond of that day when end_of_day is set, so `end=2026-10-19`
    includes sales rung up that afternoon.

    Raises ValueError for anything else.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()

    if len(text) == 10:
        day = date.fromisoformat(text)
        return datetime.combine(day, time.max if end_of_day else time.min)

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(moment: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp as ISO-8601 with a trailing Z, to the second."""
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.replace(microsecond=0).isoformat() + "Z"
