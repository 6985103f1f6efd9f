"""
Time normalisation
------------------

The feed mixes two clock formats:

• ``pubDate``   – RFC‑2822 with an explicit offset, e.g.
  ``"Thu, 01 Oct 2026 19:05:00 +0000"``
• ``ukončení:`` – Czech local wall clock without any offset, e.g.
  ``"1. října 2026, 21:32"``

The second one has to be projected onto UTC through the civil timezone
(Europe/Prague in production), including the DST rule for that date.
"""
from __future__ import annotations
import re
import unicodedata
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from incidentfeed.errors import UnparsableTime

#: Czech genitive month names, keyed by their ASCII‑folded spelling
MONTHS = {
    "ledna": 1, "unora": 2, "brezna": 3, "dubna": 4,
    "kvetna": 5, "cervna": 6, "cervence": 7, "srpna": 8,
    "zari": 9, "rijna": 10, "listopadu": 11, "prosince": 12,
}

_WALL_CLOCK = re.compile(
    r"^\s*(\d{1,2})\.\s*([^\W\d_]+)\s+(\d{4})\s*,?\s*(\d{1,2}):(\d{2})\s*$"
)


def fold(text: str) -> str:
    "Lower‑case and strip diacritics: 'Října' → 'rijna'."
    nfkd = unicodedata.normalize("NFKD", text)
    return "".join(c for c in nfkd if not unicodedata.combining(c)).lower()


def _zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise UnparsableTime(f"unknown timezone {tz_name!r}") from exc


def to_utc_instant(text: str, tz_name: str = "Europe/Prague") -> datetime:
    """
    Parameters
    ----------
    text    : ``"D. <month> YYYY, HH:MM"`` with a Czech genitive month,
              with or without diacritics
    tz_name : IANA zone the wall clock belongs to

    Returns
    -------
    aware ``datetime`` in UTC

    Raises
    ------
    UnparsableTime when the grammar, month word or calendar date is wrong.
    """
    m = _WALL_CLOCK.match(text or "")
    if not m:
        raise UnparsableTime(f"not a wall-clock string: {text!r}")

    day, month_word, year, hour, minute = m.groups()
    month = MONTHS.get(fold(month_word))
    if month is None:
        raise UnparsableTime(f"unknown month {month_word!r} in {text!r}")

    zone = _zone(tz_name)
    try:
        provisional = datetime(int(year), month, int(day), int(hour), int(minute),
                               tzinfo=timezone.utc)
        # The offset depends on the instant we are trying to find, so read it
        # at the provisional instant: render that instant in the civil zone
        # and see how far its wall clock sits from the fields we parsed.
        local = provisional.astimezone(zone)
        offset = local.replace(tzinfo=None) - provisional.replace(tzinfo=None)
        return provisional - offset
    except (ValueError, OverflowError) as exc:
        raise UnparsableTime(f"invalid or out-of-range date in {text!r}") from exc


def parse_pub_date(text: Optional[str]) -> Optional[datetime]:
    """RFC‑2822 ``pubDate`` → aware UTC datetime, ``None`` when unparsable."""
    if not text or not text.strip():
        return None
    try:
        parsed = parsedate_to_datetime(text.strip())
        if parsed is None:
            return None
        if parsed.tzinfo is None:       # "-0000" means UTC with no zone info
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None


def duration_minutes(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    """Whole minutes from `start` to `end`; ``None`` if missing or reversed."""
    if start is None or end is None:
        return None
    delta = end - start
    if delta < timedelta(0):
        return None
    return round(delta.total_seconds() / 60)
