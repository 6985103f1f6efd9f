from datetime import datetime, timezone

from incidentfeed.enrich.scheduler import EnrichmentScheduler
from incidentfeed.ingest.records import IncidentRecord, PlaceCoordinate


class FakeGeocoder:
    provider = "nominatim"

    def __init__(self, answers):
        self.answers = answers
        self.calls = []

    def lookup(self, name, country_hint, district=None):
        self.calls.append((name, country_hint, district))
        answer = self.answers.get(name)
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeTime:
    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _seed(store, *pairs):
    for n, (place, district) in enumerate(pairs):
        store.upsert(IncidentRecord(
            id=str(n), title=f"požár - {place}", link=f"https://pkr.hzscr.cz/zasahy-jpo/{n}/",
            published_at=datetime(2026, 10, 1, 12, n, tzinfo=timezone.utc),
            place=place, district=district,
        ))


def _scheduler(store, geocoder, clock, **kw):
    return EnrichmentScheduler(store, geocoder, sleep=clock.sleep, monotonic=clock.monotonic, **kw)


def test_resolved_places_are_stored(store):
    _seed(store, ("Bobnice", "Nymburk"), ("Kolín", "Kolín"))
    geocoder = FakeGeocoder({"Bobnice": (50.22, 15.06), "Kolín": (50.03, 15.2)})

    summary = _scheduler(store, geocoder, FakeTime()).run()

    assert (summary.attempted, summary.resolved, summary.pending) == (2, 2, 0)
    coord = store.get_coordinate("Bobnice", "Nymburk")
    assert (coord.lat, coord.lon, coord.provider) == (50.22, 15.06, "nominatim")
    assert store.list_missing_coordinates(10) == []
    assert geocoder.calls[0] == ("Bobnice", "cz", "Nymburk")


def test_calls_are_spaced_by_the_minimum_delay(store):
    _seed(store, ("A", None), ("B", None), ("C", None))
    clock = FakeTime()
    _scheduler(store, FakeGeocoder({}), clock, min_delay_s=1.1).run()

    assert clock.sleeps == [1.1, 1.1]


def test_cap_limits_lookups_per_run(store):
    _seed(store, *[(f"Obec {i}", None) for i in range(8)])
    geocoder = FakeGeocoder({})
    summary = _scheduler(store, geocoder, FakeTime(), cap=3).run()

    assert len(geocoder.calls) == 3
    assert summary.pending == 3


def test_misses_and_errors_stay_pending_without_retry(store):
    _seed(store, ("Nikde", None), ("Chyba", None))
    geocoder = FakeGeocoder({"Chyba": RuntimeError("HTTP 429")})

    summary = _scheduler(store, geocoder, FakeTime()).run()

    assert (summary.attempted, summary.resolved, summary.pending) == (2, 0, 2)
    assert sorted(name for name, *_ in geocoder.calls) == ["Chyba", "Nikde"]
    assert len(store.list_missing_coordinates(10)) == 2


def test_lower_confidence_provider_never_overwrites(store):
    store.upsert_coordinate(PlaceCoordinate("Sedlec", "Kutná Hora", 49.96, 15.29, "manual"))

    written = store.upsert_coordinate(PlaceCoordinate("Sedlec", "Kutná Hora", 1.0, 2.0, "nominatim"))

    assert written is False
    coord = store.get_coordinate("Sedlec", "Kutná Hora")
    assert (coord.lat, coord.provider) == (49.96, "manual")


class StaleListStore:
    """Lists a pair as missing although its coordinates were written meanwhile."""

    def __init__(self):
        self.written = []

    def list_missing_coordinates(self, limit):
        return [("Sedlec", "Kutná Hora"), ("Bobnice", "Nymburk")][:limit]

    def get_coordinate(self, place, district):
        if place == "Sedlec":
            return PlaceCoordinate(place, district, 49.96, 15.29, "manual")
        return PlaceCoordinate(place, district)

    def upsert_coordinate(self, coord):
        self.written.append(coord)
        return True


def test_pairs_that_already_have_coordinates_are_skipped():
    store = StaleListStore()
    geocoder = FakeGeocoder({"Bobnice": (50.22, 15.06)})
    clock = FakeTime()

    summary = _scheduler(store, geocoder, clock).run()

    assert geocoder.calls == [("Bobnice", "cz", "Nymburk")]
    assert (summary.attempted, summary.resolved, summary.pending) == (1, 1, 0)
    assert [c.place for c in store.written] == ["Bobnice"]
    assert clock.sleeps == []
