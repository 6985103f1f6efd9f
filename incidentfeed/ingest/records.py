"""Shared ingestion data types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class RawFeedItem:
    """One <item> as it came out of the feed.

    Anything missing in the source is ``None``, never an empty string.
    """

    title: Optional[str] = None
    link: Optional[str] = None
    guid: Optional[str] = None
    pub_date: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class IncidentRecord:
    """Normalized incident, the durable unit kept in the store."""

    id: str
    title: str
    link: str
    published_at: datetime
    category: Optional[str] = None
    subtype: Optional[str] = None
    place: Optional[str] = None
    district: Optional[str] = None
    status: Optional[str] = None
    road: Optional[str] = None
    distance_km: Optional[float] = None
    end_time_raw: Optional[str] = None
    duration_minutes: Optional[int] = None
    raw_description: Optional[str] = None
    ingested_at: Optional[datetime] = None

    def comparable(self) -> Dict[str, Any]:
        """Every extracted/derived field; `ingested_at` is bookkeeping only."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "ingested_at"}


# Higher wins; an existing coordinate is only replaced by an equal or better source.
PROVIDER_CONFIDENCE = {"manual": 100, "nominatim": 50}


def provider_confidence(provider: Optional[str]) -> int:
    return PROVIDER_CONFIDENCE.get((provider or "").lower(), 0)


@dataclass(frozen=True)
class PlaceCoordinate:
    place: str
    district: Optional[str]
    lat: Optional[float] = None
    lon: Optional[float] = None
    provider: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lon is not None


class RunState(str, Enum):
    FETCHING = "fetching"
    PARSING = "parsing"
    EXTRACTING = "extracting"
    RECONCILING = "reconciling"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunSummary:
    """Audit record of one ingestion run."""

    source: Optional[str] = None
    state: RunState = RunState.FETCHING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    items_total: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "itemsTotal": self.items_total,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "sourceUsed": self.source,
            "state": self.state.value,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class IncidentQuery:
    """Filter options for reading incidents back; the store binds the values."""

    since: Optional[datetime] = None
    until: Optional[datetime] = None
    place: Optional[str] = None
    district: Optional[str] = None
    category: Optional[str] = None
    category_prefix: bool = False
    limit: int = 100
    offset: int = 0


def record_to_dict(record: IncidentRecord) -> Dict[str, Any]:
    out = asdict(record)
    for key in ("published_at", "ingested_at"):
        if out[key] is not None:
            out[key] = out[key].isoformat()
    return out
