from __future__ import annotations

from datetime import datetime, timezone, timedelta

# feed formats
KILL_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"   # e.g. 2024-01-01 03:00:00
START_TIME_FORMAT = "%Y%m%d%H%M"         # path segment for startTime/<ts>/

def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)

def parse_kill_time(s: str) -> datetime:
    """
    Parse a feed kill time. Strict: raises ValueError on anything that is
    not exactly YYYY-MM-DD HH:MM:SS. Result is UTC-aware.
    """
    return datetime.strptime(s, KILL_TIME_FORMAT).replace(tzinfo=timezone.utc)

def format_start_time(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(START_TIME_FORMAT)

def window_start(now: datetime, window: timedelta) -> datetime:
    """Start of a trailing window ending at `now`."""
    return now - window