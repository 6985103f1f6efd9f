"""
Field extraction
----------------

Decomposes one feed item into structured fields.

Title convention ``"<category> - [<subtype> -] <place>"``::

    "dopravní nehoda - uvolnění komunikace, odtažení - Kutná Hora"
      → category="dopravní nehoda", subtype="uvolnění komunikace, odtažení",
        place="Kutná Hora"

Description (HTML‑escaped, ``<br>`` separated)::

    stav: ukončená<br>ukončení: 1. října 2026, 22:10<br>Kutná Hora<br>okres Kutná Hora

Both are heuristics; nothing in here raises on odd input, a field that cannot
be recognised is simply ``None``.
"""
from __future__ import annotations
import hashlib
import html
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from incidentfeed.errors import UnparsableTime
from incidentfeed.ingest.records import IncidentRecord, RawFeedItem
from incidentfeed.ingest.timeparse import (
    duration_minutes, parse_pub_date, to_utc_instant,
)

_log = logging.getLogger(__name__)

#: tried in order; the colon form only counts for a short leading segment
TITLE_SEPARATORS = (" - ", " – ")
COLON_MAX_HEAD = 40

_BR        = re.compile(r"<br\s*/?>", re.IGNORECASE)
_KM        = re.compile(r"km:\s*(\d+(?:[.,]\d+)?)", re.IGNORECASE)
_ROAD      = re.compile(r"\b([A-Z]{1,2}\d{1,3})\b")
_LINK_ID   = re.compile(r"/(\d+)/?$")

STATUS_PREFIX   = "stav:"
END_PREFIXES    = ("ukončení:", "ukonceni:")
DISTRICT_PREFIX = "okres "


@dataclass(frozen=True)
class DescriptionFields:
    text: Optional[str] = None          # normalised, newline‑joined
    status: Optional[str] = None
    end_time_raw: Optional[str] = None
    district: Optional[str] = None
    road: Optional[str] = None
    distance_km: Optional[float] = None
    place: Optional[str] = None


def _segments(title: str, sep: str) -> List[str]:
    return [s.strip() for s in title.split(sep) if s.strip()]


def split_title(title: Optional[str]) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Return ``(category, subtype, place)``."""
    title = (title or "").strip()
    if not title:
        return None, None, None

    parts, sep = [title], None
    for candidate in TITLE_SEPARATORS:
        if candidate in title:
            parts, sep = _segments(title, candidate), candidate
            break
    else:
        if ":" in title and len(title.split(":", 1)[0].strip()) <= COLON_MAX_HEAD:
            parts, sep = _segments(title, ":"), ": "

    if len(parts) >= 3:
        return parts[0], sep.join(parts[1:-1]), parts[-1]
    if len(parts) == 2:
        return parts[0], None, parts[1]
    return (parts[0] if parts else title), None, None


def description_lines(description: Optional[str]) -> List[str]:
    "Entity‑decode, turn <br> into line breaks, trim, drop blanks."
    text = html.unescape(description or "")
    text = _BR.sub("\n", text)
    return [ln.strip() for ln in text.splitlines() if ln.strip()]


def _after_prefix(line: str, prefix: str) -> str:
    return line[len(prefix):].strip()


def extract_description(description: Optional[str]) -> DescriptionFields:
    lines = description_lines(description)
    if not lines:
        return DescriptionFields()

    status = end_raw = district = road = None
    distance = None
    remaining: List[str] = []

    for line in lines:
        low = line.lower()
        if low.startswith(STATUS_PREFIX):
            status = _after_prefix(line, STATUS_PREFIX) or None
            continue
        end_prefix = next((p for p in END_PREFIXES if low.startswith(p)), None)
        if end_prefix:
            end_raw = _after_prefix(line, end_prefix) or None
            continue
        if low.startswith(DISTRICT_PREFIX):
            district = _after_prefix(line, DISTRICT_PREFIX) or None
            continue

        consumed = False
        km = _KM.search(line)
        if km:
            distance = float(km.group(1).replace(",", "."))
            consumed = True
        rd = _ROAD.search(line)
        if rd:
            road = road or rd.group(1)
            consumed = True
        if not consumed:
            remaining.append(line)

    return DescriptionFields(
        text="\n".join(lines),
        status=status,
        end_time_raw=end_raw,
        district=district,
        road=road,
        distance_km=distance,
        place=remaining[-1] if remaining else None,
    )


def derive_id(link: Optional[str], guid: Optional[str], title: Optional[str],
              pub_date: Optional[str], guid_prefix: str = "") -> Optional[str]:
    """link‑embedded number → guid sans prefix → hash(title|pubDate)."""
    if link:
        m = _LINK_ID.search(urlparse(link.strip()).path)
        if m:
            return m.group(1)
    if guid and guid.strip():
        gid = guid.strip()
        if guid_prefix and gid.startswith(guid_prefix):
            gid = gid[len(guid_prefix):]
        if gid:
            return gid
    if title or pub_date:
        seed = f"{(title or '').strip()}|{(pub_date or '').strip()}"
        return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:24]
    return None


def extract(item: RawFeedItem, *, tz_name: str = "Europe/Prague",
            guid_prefix: str = "") -> Optional[IncidentRecord]:
    """
    Build an `IncidentRecord` from one feed item.

    Returns ``None`` when a mandatory field (id, title, link, publish time)
    is missing; the caller counts that item as skipped.
    """
    title = (item.title or "").strip()
    link = (item.link or "").strip()
    published_at = parse_pub_date(item.pub_date)
    rec_id = derive_id(link, item.guid, title, item.pub_date, guid_prefix)
    if not (rec_id and title and link and published_at):
        _log.debug("Rejecting item %r (id=%r, pubDate=%r)", title, rec_id, item.pub_date)
        return None

    category, subtype, title_place = split_title(title)
    desc = extract_description(item.description)

    duration = None
    if desc.end_time_raw:
        try:
            ended = to_utc_instant(desc.end_time_raw, tz_name)
        except UnparsableTime as exc:
            _log.debug("Item %s: %s", rec_id, exc)
        else:
            duration = duration_minutes(published_at, ended)

    return IncidentRecord(
        id=rec_id,
        title=title,
        link=link,
        published_at=published_at,
        category=category,
        subtype=subtype,
        place=desc.place or title_place,
        district=desc.district,
        status=desc.status,
        road=desc.road,
        distance_km=desc.distance_km,
        end_time_raw=desc.end_time_raw,
        duration_minutes=duration,
        raw_description=desc.text,
    )
