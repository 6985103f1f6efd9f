from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
import requests

from incidentfeed.store.sqlite_store import SqliteStore

FEED_URL = "https://pkr.hzscr.cz/rss/zasahy-jpo/stc"

ITEM_NEHODA = """
    <item>
      <title>dopravní nehoda - uvolnění komunikace, odtažení - Kutná Hora</title>
      <link>https://pkr.hzscr.cz/zasahy-jpo/12345/</link>
      <guid isPermaLink="false">urn:uuid:0f6c-12345</guid>
      <pubDate>Thu, 01 Oct 2026 19:05:00 +0000</pubDate>
      <description>stav: {status}&lt;br&gt;ukončení: 1. října 2026, 21:32&lt;br&gt;Kutná Hora&lt;br&gt;okres Kutná Hora</description>
    </item>"""

ITEM_POPLACH = """
    <item>
      <title>planý poplach - Bobnice</title>
      <link>https://pkr.hzscr.cz/zasahy-jpo/12346/</link>
      <guid isPermaLink="false">urn:uuid:0f6c-12346</guid>
      <pubDate>Thu, 01 Oct 2026 18:00:00 +0000</pubDate>
      <description>stav: ukončená&lt;br&gt;Bobnice&lt;br&gt;okres Nymburk</description>
    </item>"""

ITEM_BROKEN_DATE = """
    <item>
      <title>technická pomoc - odstranění stromu - Kolín</title>
      <link>https://pkr.hzscr.cz/zasahy-jpo/12347/</link>
      <pubDate>včera odpoledne</pubDate>
      <description>stav: nová</description>
    </item>"""


def make_feed(*items: str, prefix: bytes = b"") -> bytes:
    body = (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<rss version="2.0"><channel>\n'
        "<title>Zásahy JPO</title>\n"
        f"{''.join(items)}\n"
        "</channel></rss>\n"
    )
    return prefix + body.encode("utf-8")


@pytest.fixture
def feed_bytes() -> bytes:
    return make_feed(ITEM_NEHODA.format(status="ukončená"), ITEM_POPLACH, ITEM_BROKEN_DATE)


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"",
                 headers: Optional[Dict[str, str]] = None, json_data: Any = None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self._json = json_data

    @property
    def is_redirect(self) -> bool:
        return self.status_code in (301, 302, 303, 307, 308) and "location" in self.headers

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json


class FakeSession:
    """Maps URL → FakeResponse or exception instance; records every call."""

    def __init__(self, routes: Dict[str, Any]):
        self.routes = routes
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        outcome = self.routes.get(url)
        if outcome is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeFetcher:
    """Stand-in for Fetcher: returns canned bytes or raises."""

    def __init__(self, content: bytes = b"", error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls = 0

    def fetch(self, source: str):
        from incidentfeed.ingest.fetcher import FetchResult

        self.calls += 1
        if self.error is not None:
            raise self.error
        return FetchResult(content=self.content, source=source)


class StepClock:
    """Deterministic clock advancing one minute per call."""

    def __init__(self, start: datetime = datetime(2026, 10, 2, 6, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture
def store():
    with SqliteStore(":memory:") as s:
        yield s
