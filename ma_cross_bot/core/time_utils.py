"""Time helpers for consistent UTC timestamps and Binance interval arithmetic."""

import re
from datetime import datetime, timezone

_TIMEFRAME_RE = re.compile(r"^(\d+)([smhdwM])$")
_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 7 * 86400,
    "M": 30 * 86400,
}


def utc_now() -> datetime:
    """Return current UTC datetime with timezone attached."""

    return datetime.now(timezone.utc)


def ms_to_datetime(value_ms: int) -> datetime:
    return datetime.fromtimestamp(value_ms / 1000.0, tz=timezone.utc)


def datetime_to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def timeframe_to_seconds(timeframe: str) -> int:
    """Return the bar length of a Binance style interval such as 15m, 4h or 1d."""

    match = _TIMEFRAME_RE.match(timeframe.strip())
    if match is None:
        raise ValueError(f"unsupported timeframe: {timeframe!r}")
    count, unit = match.groups()
    seconds = int(count) * _UNIT_SECONDS[unit]
    if seconds <= 0:
        raise ValueError(f"unsupported timeframe: {timeframe!r}")
    return seconds
