"""
Duration parsing and formatting.

Accepts compact durations such as "30m", "24h", "7d" and "1h30m".
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Optional

from vpnauth.core.exceptions import InputError

MAX_CERT_DURATION = timedelta(days=365)

_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}

_TOKEN = re.compile(r"(\d+)([smhd])")


def parse_duration(value: str) -> timedelta:
    """
    Parse a compact duration string.

    Examples:
        "30m"   -> 30 minutes
        "1h30m" -> 90 minutes
        "7d"    -> 7 days

    Raises:
        InputError: If the string is empty or malformed
    """
    text = value.strip().lower()
    if not text:
        raise InputError("duration cannot be empty")
    if text == "0":
        return timedelta(0)

    total = timedelta(0)
    pos = 0
    for match in _TOKEN.finditer(text):
        if match.start() != pos:
            break
        total += int(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()

    if pos != len(text) or pos == 0:
        raise InputError(f"invalid duration: {value!r} (use e.g. 30m, 24h, 7d, 1h30m)")
    return total


def parse_session_duration(value: str) -> Optional[timedelta]:
    """
    Parse the session cache duration.

    "0" (or any zero duration) means no preference: the server
    lifetime alone decides expiry. Returns None in that case.
    """
    duration = parse_duration(value)
    if duration <= timedelta(0):
        return None
    return duration


def parse_to_minutes(value: str) -> str:
    """
    Convert a certificate duration to the API's "<n> min" format.

    Raises:
        InputError: If the duration is zero, below a minute, or above 365 days
    """
    duration = parse_duration(value)
    if duration < timedelta(minutes=1):
        raise InputError("certificate duration must be at least 1 minute")
    if duration > MAX_CERT_DURATION:
        raise InputError("certificate duration cannot exceed 365d")
    return f"{int(duration.total_seconds() // 60)} min"


def humanize_duration(delta: timedelta) -> str:
    """Format a duration as e.g. "3d 4h", "2h 5m" or "45s"."""
    seconds = int(delta.total_seconds())
    if seconds <= 0:
        return "0s"

    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    if days:
        return f"{days}d {hours}h" if hours else f"{days}d"
    if hours:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    if minutes:
        return f"{minutes}m"
    return f"{seconds}s"
