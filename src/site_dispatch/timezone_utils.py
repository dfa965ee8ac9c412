"""Timezone resolution helpers with pragmatic fallbacks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Fixed-offset fallback when IANA tzdata is unavailable (Windows hosts).
# Standard time only; DST-sensitive day boundaries need tzdata installed.
_FIXED_FALLBACKS: dict[str, tzinfo] = {
    "Europe/Brussels": timezone(timedelta(hours=1)),
    "Europe/Amsterdam": timezone(timedelta(hours=1)),
    "UTC": timezone.utc,
}


def resolve_timezone(tz_name: str) -> tzinfo:
    """Resolve an IANA timezone name with safe fallbacks.

    Order:
    1. IANA database via ZoneInfo.
    2. Known fixed-offset fallback map.
    3. UTC.
    """
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        pass

    return _FIXED_FALLBACKS.get(tz_name, timezone.utc)


def to_local(ts: datetime, tz: tzinfo) -> datetime:
    """Express a timestamp in ``tz``; naive timestamps are taken as already local."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=tz)
    return ts.astimezone(tz)


def start_of_local_day(ts: datetime, tz: tzinfo) -> datetime:
    """Midnight of the calendar day containing ``ts``, in ``tz``."""
    local = to_local(ts, tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)
