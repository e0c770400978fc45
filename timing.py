# =========  timing.py  =========
"""
Clock and duration helpers.

Durations in the config file are written humantime style ("3s", "1600ms",
"2m 30s") or as bare numbers of seconds; everything inside the program
works in float seconds or integer milliseconds.
"""

from __future__ import annotations

import datetime
import re

_UNIT_SECONDS = {
    "ms": 0.001, "msec": 0.001,
    "s": 1.0, "sec": 1.0, "secs": 1.0,
    "m": 60.0, "min": 60.0, "mins": 60.0,
    "h": 3600.0, "hr": 3600.0, "hrs": 3600.0,
}
_PART_RE = re.compile(r"\s*(\d+(?:\.\d+)?)\s*([a-z]*)")


def parse_duration(value) -> float:
    """Return *value* in seconds. Raises ValueError on junk."""
    if isinstance(value, bool):
        raise ValueError(f"not a duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip().lower()
    if not text:
        raise ValueError("empty duration")
    total, pos = 0.0, 0
    while pos < len(text):
        m = _PART_RE.match(text, pos)
        if not m or m.end() == pos:
            raise ValueError(f"not a duration: {value!r}")
        unit = m.group(2) or "s"
        if unit not in _UNIT_SECONDS:
            raise ValueError(f"unknown duration unit {unit!r} in {value!r}")
        total += float(m.group(1)) * _UNIT_SECONDS[unit]
        pos = m.end()
    return total


def date_text(now: datetime.datetime | None = None) -> str:
    """Date/time as shown on the bottom line of the LCD."""
    return (now or datetime.datetime.now()).strftime("%d %b %y %H:%M:%S")


def fmt_ms(ms: int | None) -> str:
    """Track position as m:ss, or h:mm:ss past the hour."""
    if ms is None:
        return "?"
    sec = int(max(0, ms) // 1000)
    m, s = divmod(sec, 60)
    h, m = divmod(m, 60)
    if h:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"
