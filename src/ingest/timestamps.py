"""Timestamp normalization for Shortcut payloads.

iOS formats dates with the device locale, e.g. ``"5 Mar 2025, 9:41 pm"`` or
``"5 Mar 2025 at 9:41 pm"``, using narrow no-break spaces (U+202F) before
the am/pm marker.  The wall-clock time is in the user's zone, which defaults
to Australia/Brisbane (fixed UTC+10, no daylight saving).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

from dateutil import parser as dtparser

logger = logging.getLogger("healthsync.ingest.timestamps")

DEFAULT_SOURCE_TZ = ZoneInfo("Australia/Brisbane")

DATE_FORMATS: tuple[str, ...] = (
    "%d %b %Y, %I:%M %p",
    "%d %b %Y at %I:%M %p",
)

# Fallback defaults differ in year, month and day
_DEFAULT_A = datetime(2000, 1, 1)
_DEFAULT_B = datetime(2001, 2, 2)


def clean_date_string(text: str) -> str:
    """Replace non-standard space characters with plain spaces."""
    return text.replace("\u202f", " ").replace("\u00a0", " ").strip()


def _parse_complete_date(s: str) -> datetime | None:
    """``dateutil`` parse that rejects strings missing a date component.

    dateutil fills absent fields from its default, so a string that yields
    different results under two unrelated defaults lacked a year, month
    or day.
    """
    try:
        first = dtparser.parse(s, default=_DEFAULT_A)
        second = dtparser.parse(s, default=_DEFAULT_B)
    except (ValueError, OverflowError):
        return None
    if first.date() != second.date():
        return None
    return first


def parse_local_timestamp(
    text: str | None, source_tz: tzinfo = DEFAULT_SOURCE_TZ
) -> datetime | None:
    """Parse a locale-formatted date string into an aware UTC datetime.

    Fixed Shortcut formats are tried first; anything else goes through
    ``dateutil``.  Naive results are interpreted in ``source_tz``.

    Args:
        text:      Raw date string from the payload.
        source_tz: Zone the wall-clock time was recorded in.

    Returns:
        UTC datetime, or None if the string cannot be interpreted.
    """
    if text is None:
        return None
    s = clean_date_string(str(text))
    if not s:
        return None

    parsed: datetime | None = None
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(s, fmt)
            break
        except ValueError:
            continue

    if parsed is None:
        parsed = _parse_complete_date(s)
        if parsed is None:
            logger.debug("Unparseable timestamp: %r", s)
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=source_tz)
    try:
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def isoformat_utc(dt: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    utc = dt.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"
