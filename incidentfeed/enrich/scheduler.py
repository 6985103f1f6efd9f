"""
Coordinate enrichment
---------------------

After an ingestion run, a handful of (place, district) pairs that still have
no coordinates are sent to the geocoder. Best effort only: a miss or an error
leaves the pair for the next run, nothing is retried within the same run.

The spacing between geocoder calls is a hard minimum. Nominatim enforces its
usage policy per client IP.
"""
from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Tuple

from incidentfeed.ingest.records import PlaceCoordinate
from incidentfeed.store.base import IncidentStore

_log = logging.getLogger(__name__)

PER_RUN_CAP = 5
MIN_DELAY_S = 1.1


class Geocoder(Protocol):
    provider: str

    def lookup(self, name: str, country_hint: Optional[str],
               district: Optional[str] = None) -> Optional[Tuple[float, float]]: ...


@dataclass
class EnrichmentSummary:
    attempted: int = 0
    resolved: int = 0
    pending: int = 0


class EnrichmentScheduler:
    def __init__(self, store: IncidentStore, geocoder: Geocoder, *,
                 cap: int = PER_RUN_CAP, min_delay_s: float = MIN_DELAY_S,
                 country_hint: Optional[str] = "cz",
                 sleep: Callable[[float], None] = time.sleep,
                 monotonic: Callable[[], float] = time.monotonic):
        self.store = store
        self.geocoder = geocoder
        self.cap = cap
        self.min_delay_s = min_delay_s
        self.country_hint = country_hint
        self._sleep = sleep
        self._monotonic = monotonic
        self._last_call: Optional[float] = None

    @classmethod
    def from_conf(cls, conf, store: IncidentStore, geocoder: Geocoder) -> "EnrichmentScheduler":
        geo = conf.geocode
        return cls(
            store, geocoder,
            cap=int(geo.get("per_run_cap", PER_RUN_CAP)),
            min_delay_s=float(geo.get("min_delay_s", MIN_DELAY_S)),
            country_hint=geo.get("country_hint", "cz"),
        )

    def _throttle(self) -> None:
        if self._last_call is not None:
            wait = self.min_delay_s - (self._monotonic() - self._last_call)
            if wait > 0:
                self._sleep(wait)
        self._last_call = self._monotonic()

    def run(self) -> EnrichmentSummary:
        summary = EnrichmentSummary()
        for place, district in self.store.list_missing_coordinates(self.cap):
            existing = self.store.get_coordinate(place, district)
            if existing is not None and existing.has_coordinates:
                continue

            summary.attempted += 1
            self._throttle()
            try:
                hit = self.geocoder.lookup(place, self.country_hint, district=district)
            except Exception:       # noqa: BLE001
                _log.exception("Geocoder raised for %s (%s)", place, district)
                hit = None

            if hit is None:
                summary.pending += 1
                # bump updated_at so other pending pairs get their turn next run
                self.store.upsert_coordinate(PlaceCoordinate(
                    place=place, district=district, updated_at=datetime.now(timezone.utc),
                ))
                continue

            lat, lon = hit
            self.store.upsert_coordinate(PlaceCoordinate(
                place=place, district=district, lat=lat, lon=lon,
                provider=getattr(self.geocoder, "provider", None),
                updated_at=datetime.now(timezone.utc),
            ))
            summary.resolved += 1
            _log.info("Geocoded %s (%s) → %.5f, %.5f", place, district, lat, lon)
        return summary
