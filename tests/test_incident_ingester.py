from dataclasses import replace

import pytest

from incidentfeed.errors import FetchFailed, MalformedFeed
from incidentfeed.ingest.incident_ingester import IncidentIngester
from incidentfeed.ingest.records import RunState, RunSummary

from conftest import (
    FEED_URL, ITEM_BROKEN_DATE, ITEM_NEHODA, ITEM_POPLACH, FakeFetcher, StepClock, make_feed,
)


def _ingester(store, content=b"", error=None, clock=None, **kw):
    return IncidentIngester(
        store, FakeFetcher(content, error), guid_prefix="urn:uuid:", clock=clock or StepClock(), **kw
    )


def test_first_run_inserts_valid_items(store, feed_bytes):
    summary = _ingester(store, feed_bytes).run(FEED_URL)

    assert summary.state is RunState.DONE
    assert (summary.items_total, summary.inserted, summary.updated, summary.skipped) == (3, 2, 0, 1)
    assert summary.as_dict()["sourceUsed"] == FEED_URL

    rec = store.get_by_id("12345")
    assert rec.category == "dopravní nehoda"
    assert rec.place == "Kutná Hora"
    assert rec.duration_minutes == 27        # 21:32 CEST is 19:32Z
    assert store.get_by_id("12347") is None  # unparsable pubDate


def test_same_feed_twice_is_idempotent(store, feed_bytes):
    ingester = _ingester(store, feed_bytes)
    ingester.run(FEED_URL)
    before = store.get_by_id("12345")

    second = ingester.run(FEED_URL)

    assert (second.inserted, second.updated, second.skipped) == (0, 0, 3)
    assert store.get_by_id("12345") == before    # ingested_at untouched too


def test_changed_item_is_replaced_and_restamped(store):
    clock = StepClock()
    _ingester(store, make_feed(ITEM_NEHODA.format(status="nová")), clock=clock).run(FEED_URL)
    first = store.get_by_id("12345")

    summary = _ingester(store, make_feed(ITEM_NEHODA.format(status="ukončená")), clock=clock).run(FEED_URL)
    second = store.get_by_id("12345")

    assert (summary.inserted, summary.updated, summary.skipped) == (0, 1, 0)
    assert (first.status, second.status) == ("nová", "ukončená")
    assert second.ingested_at > first.ingested_at


def test_reconcile_ignores_ingested_at_only_difference(store, feed_bytes):
    ingester = _ingester(store, feed_bytes)
    ingester.run(FEED_URL)
    stored = store.get_by_id("12346")

    summary = RunSummary()
    fresh = replace(stored, ingested_at=None)
    assert ingester.reconcile(fresh, summary) == "skipped"
    assert summary.skipped == 1 and summary.updated == 0
    assert store.get_by_id("12346").ingested_at == stored.ingested_at


def test_fetch_failure_is_recorded_and_reraised(store):
    err = FetchFailed([(FEED_URL, "timeout after 20s")])
    with pytest.raises(FetchFailed):
        _ingester(store, error=err).run(FEED_URL)

    run = store.recent_runs(1)[0]
    assert run["state"] == "failed"
    assert run["items_total"] == 0
    assert "timeout" in run["error"]


def test_malformed_feed_fails_the_run(store):
    with pytest.raises(MalformedFeed):
        _ingester(store, b"Access denied").run(FEED_URL)
    assert store.recent_runs(1)[0]["state"] == "failed"


def test_successful_run_is_recorded(store, feed_bytes):
    _ingester(store, feed_bytes).run(FEED_URL)
    run = store.recent_runs(1)[0]
    assert (run["state"], run["inserted"], run["skipped"]) == ("done", 2, 1)


def test_enricher_failure_does_not_fail_the_run(store):
    class Exploding:
        def run(self):
            raise RuntimeError("geocoder down")

    summary = _ingester(store, make_feed(ITEM_POPLACH), enricher=Exploding()).run(FEED_URL)
    assert summary.state is RunState.DONE
    assert summary.inserted == 1


def test_enricher_runs_after_reconciliation(store):
    seen = []

    class Recorder:
        def run(self):
            seen.append(store.list_missing_coordinates(10))

    _ingester(store, make_feed(ITEM_POPLACH, ITEM_BROKEN_DATE), enricher=Recorder()).run(FEED_URL)
    assert seen == [[("Bobnice", "Nymburk")]]


def test_out_of_range_dates_degrade_instead_of_failing_the_run(store):
    far_end = ITEM_POPLACH.replace("12346", "12348").replace(
        "okres Nymburk", "ukončení: 31. prosince 9999, 23:59&lt;br&gt;okres Nymburk"
    )
    far_pub = ITEM_POPLACH.replace("12346", "12349").replace(
        "Thu, 01 Oct 2026 18:00:00 +0000", "Fri, 31 Dec 9999 23:59:00 -0100"
    )

    summary = _ingester(store, make_feed(ITEM_POPLACH, far_end, far_pub)).run(FEED_URL)

    assert summary.state is RunState.DONE
    assert (summary.items_total, summary.inserted, summary.skipped) == (3, 2, 1)
    rec = store.get_by_id("12348")
    assert rec.end_time_raw == "31. prosince 9999, 23:59"
    assert rec.duration_minutes is None
    assert store.get_by_id("12349") is None
    assert store.recent_runs(1)[0]["state"] == "done"
