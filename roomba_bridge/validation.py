"""Parsing helpers for user-supplied times and durations."""

import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

_DURATION_RE = re.compile(r"^(\d+)(ms|s|m|h|d|w)$", re.IGNORECASE)

_DURATION_FACTORS = {
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
}


def is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and len(value.strip()) > 0


def is_finite_number(value: Any) -> bool:
    """True for ints and floats that are finite as floats. Bools are excluded."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # int too large for a float
        return False


def parse_duration_to_ms(value: Any, fallback: Optional[int] = None) -> Optional[int]:
    """Parse ``500``, ``"500"``, ``"30s"``, ``"10m"``, ``"2h"``, ``"1d"`` or ``"1w"``.

    Returns ``fallback`` for empty or unparseable input and for results that
    are not positive finite numbers. Fractions of a millisecond round up.
    """
    if value is None or value == "":
        return fallback
    if isinstance(value, (int, float)):
        if not is_finite_number(value) or value <= 0:
            return fallback
        return math.ceil(value)

    text = str(value).strip()
    if not text:
        return fallback
    if text.isdecimal():
        result = int(text)
    else:
        match = _DURATION_RE.match(text)
        if not match:
            return fallback
        result = int(match.group(1)) * _DURATION_FACTORS[match.group(2).lower()]
    return result if result > 0 and is_finite_number(result) else fallback


def parse_timestamp_ms(value: Any) -> Optional[int]:
    """Parse an epoch-milliseconds number or an ISO-8601 datetime string.

    Naive datetimes are taken as UTC. Returns ``None`` when the value cannot
    be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if is_finite_number(value) else None

    text = str(value).strip()
    if not text:
        return None
    if text.removeprefix("-").isdecimal():
        parsed_ms = int(text)
        return parsed_ms if is_finite_number(parsed_ms) else None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)
