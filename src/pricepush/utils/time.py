from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]

# RFC3339 with optional fraction; Go-style writers emit up to 9 fractional digits
_RFC3339 = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(tz=timezone.utc)


def monotonic_s() -> float:
    return time.monotonic()


def to_rfc3339(dt: datetime) -> str:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_rfc3339(s: str) -> datetime:
    """
    Parse an RFC3339 timestamp into an aware UTC datetime.
    Fractions longer than microseconds are truncated.
    """
    m = _RFC3339.match(s.strip())
    if m is None:
        raise ValueError(f"not an RFC3339 timestamp: {s!r}")
    frac = m.group("frac")
    text = m.group("base")
    if frac:
        text += "." + frac[:6].ljust(6, "0")
    tz = m.group("tz")
    text += "+00:00" if tz == "Z" else tz
    return datetime.fromisoformat(text).astimezone(timezone.utc)


def in_zone(dt: datetime, tz_name: str) -> datetime:
    return dt.astimezone(ZoneInfo(tz_name))
