"""
Incident Ingester
-----------------

Pulls the fire‑brigade incident RSS feed, normalises every item into an
`IncidentRecord` and reconciles it against the store:

    fetching → parsing → extracting → reconciling → done | failed

Behaviour
~~~~~~~~~
• An id never seen before is **inserted**.
• An id whose extracted fields are all unchanged is **skipped**; the stored
  row (including ``ingested_at``) is left alone.
• Anything else is **updated**: the whole row is replaced and
  ``ingested_at`` moves forward.
• Items without id/title/link or with an unparsable ``pubDate`` are counted
  as skipped and never touch the store.

Running the same feed twice therefore ends with ``inserted=0, updated=0``.
Each row is its own transaction: interrupting a run keeps what was written.
"""
from __future__ import annotations
import dataclasses
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from incidentfeed.errors import FetchFailed, MalformedFeed
from incidentfeed.ingest.extractor import extract
from incidentfeed.ingest.feed_parser import parse_feed
from incidentfeed.ingest.fetcher import Fetcher
from incidentfeed.ingest.records import IncidentRecord, RunState, RunSummary
from incidentfeed.store.base import IncidentStore

_log = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IncidentIngester:
    """
    Parameters
    ----------
    store       : anything implementing `IncidentStore`
    fetcher     : `Fetcher` (or a stand‑in with the same ``fetch``)
    tz_name     : civil timezone of the feed's wall‑clock strings
    guid_prefix : synthetic prefix stripped from guids before they become ids
    enricher    : optional object with ``run()``, called after reconciliation
    clock       : returns the current aware UTC time
    """

    def __init__(self, store: IncidentStore, fetcher: Fetcher, *,
                 tz_name: str = "Europe/Prague", guid_prefix: str = "",
                 enricher=None, clock: Callable[[], datetime] = _utc_now):
        self.store = store
        self.fetcher = fetcher
        self.tz_name = tz_name
        self.guid_prefix = guid_prefix
        self.enricher = enricher
        self.clock = clock

    def _fail(self, summary: RunSummary, exc: Exception) -> None:
        summary.state = RunState.FAILED
        summary.error = str(exc)
        summary.finished_at = self.clock()
        self.store.record_run(summary)
        _log.error("Ingestion run failed: %s", exc)

    def reconcile(self, record: IncidentRecord, summary: RunSummary) -> str:
        """Insert / update / skip one record; returns the decision."""
        existing = self.store.get_by_id(record.id)
        if existing is not None and existing.comparable() == record.comparable():
            summary.skipped += 1
            return "skipped"
        outcome = self.store.upsert(dataclasses.replace(record, ingested_at=self.clock()))
        if outcome == "inserted":
            summary.inserted += 1
        else:
            summary.updated += 1
        return outcome

    def run(self, source: str) -> RunSummary:
        """
        Parameters
        ----------
        source : feed URL (the direct candidate)

        Returns
        -------
        RunSummary in state DONE.

        Raises
        ------
        FetchFailed, MalformedFeed – after the failed run has been recorded.
        """
        summary = RunSummary(source=source, started_at=self.clock())

        try:
            summary.state = RunState.FETCHING
            fetched = self.fetcher.fetch(source)
            summary.source = fetched.source

            summary.state = RunState.PARSING
            items = parse_feed(fetched.content)
        except (FetchFailed, MalformedFeed) as exc:
            self._fail(summary, exc)
            raise

        summary.items_total = len(items)
        summary.state = RunState.EXTRACTING
        records = [extract(it, tz_name=self.tz_name, guid_prefix=self.guid_prefix) for it in items]

        summary.state = RunState.RECONCILING
        for record in records:
            if record is None:
                summary.skipped += 1
                continue
            self.reconcile(record, summary)

        summary.state = RunState.DONE
        summary.finished_at = self.clock()
        self.store.record_run(summary)
        _log.info(
            "Ingested %d items from %s: %d inserted, %d updated, %d skipped",
            summary.items_total, summary.source, summary.inserted, summary.updated, summary.skipped,
        )

        if self.enricher is not None:
            try:
                self.enricher.run()
            except Exception:       # noqa: BLE001
                _log.exception("Coordinate enrichment failed; ingestion result stands")
        return summary


def run(source: Optional[str] = None, conf=None) -> RunSummary:
    """
    One ingestion pass wired from config.

    Parameters
    ----------
    source : str | None
        • "https://…" ➜ ingest that feed
        • None        ➜ conf.ingest["rss_url"]
    """
    from incidentfeed.enrich.geocoder import NominatimGeocoder
    from incidentfeed.enrich.scheduler import EnrichmentScheduler
    from incidentfeed.store.sqlite_store import SqliteStore
    from incidentfeed.utils.config import get_conf

    conf = conf or get_conf()
    with SqliteStore(conf.db_path) as store:
        enricher = None
        if conf.geocode.get("enabled", True):
            enricher = EnrichmentScheduler.from_conf(conf, store, NominatimGeocoder.from_conf(conf))
        ingester = IncidentIngester(
            store,
            Fetcher.from_conf(conf),
            tz_name=conf.ingest.get("timezone", "Europe/Prague"),
            guid_prefix=conf.ingest.get("guid_prefix", ""),
            enricher=enricher,
        )
        return ingester.run(source or conf.ingest["rss_url"])


if __name__ == "__main__":
    import json, sys
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    summary = run(sys.argv[1] if len(sys.argv) > 1 else None)  # python -m … [url]
    print(json.dumps(summary.as_dict(), indent=2, ensure_ascii=False))
