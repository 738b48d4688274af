"""Duration normalization for sleep entries.

The Shortcut reports durations in whatever format the device locale
produces.  Everything is reduced to whole minutes:

    90          -> 90
    "1:30"      -> 90   (H:MM)
    "1:30:30"   -> 91   (H:MM:SS, seconds rounded in)
    "2h 15m"    -> 135
    "45 min"    -> 45
    "PT1H30M"   -> 90
"""

from __future__ import annotations

import math
import re
from typing import Any

_COLON_RE = re.compile(r"^(\d{1,3}):(\d{2})(?::(\d{2}))?$")
_HOURS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:hours|hour|hrs|hr|h)", re.IGNORECASE)
_MINUTES_RE = re.compile(
    r"(\d+(?:\.\d+)?)\s*(?:minutes|minute|mins|min|m)", re.IGNORECASE
)
_ISO_RE = re.compile(
    r"^P?T?(?:(\d+(?:\.\d+)?)H)?(?:(\d+(?:\.\d+)?)M)?$", re.IGNORECASE
)


def round_half_up(x: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.floor(abs(x) + 0.5)) * (1 if x >= 0 else -1)


def _from_number(x: float) -> int | None:
    if not math.isfinite(x):
        return None
    return round_half_up(x)


def to_minutes(value: Any) -> int | None:
    """Convert a duration in any supported encoding to integer minutes.

    Args:
        value: Number, numeric string, ``H:MM[:SS]``, unit-word string
               (``"2h 15m"``) or ISO-like duration (``"PT1H30M"``).

    Returns:
        Minutes rounded to the nearest integer, or None if unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_number(float(value))

    s = str(value).strip()
    if not s:
        return None

    try:
        return _from_number(float(s))
    except ValueError:
        pass

    colon = _COLON_RE.match(s)
    if colon:
        hours = int(colon.group(1))
        minutes = int(colon.group(2))
        seconds = int(colon.group(3)) if colon.group(3) else 0
        return round_half_up(hours * 60 + minutes + seconds / 60)

    hours_m = _HOURS_RE.search(s)
    minutes_m = _MINUTES_RE.search(s)
    if hours_m or minutes_m:
        h = float(hours_m.group(1)) if hours_m else 0.0
        m = float(minutes_m.group(1)) if minutes_m else 0.0
        return round_half_up(h * 60 + m)

    iso = _ISO_RE.match(s)
    if iso and (iso.group(1) or iso.group(2)):
        return round_half_up(float(iso.group(1) or 0) * 60 + float(iso.group(2) or 0))

    return None
