"""SQLite-backed incident store.

Three tables:

- ``incidents`` – one row per incident id
- ``places``    – one row per (place, district); coordinates filled in later
- ``runs``      – audit trail of ingestion runs

Every write runs in its own ``BEGIN IMMEDIATE`` transaction, so a row is
either fully written or not at all, and overlapping runs serialise per write.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from incidentfeed.ingest.records import (
    IncidentQuery,
    IncidentRecord,
    PlaceCoordinate,
    RunSummary,
    provider_confidence,
)
from incidentfeed.store.base import MAP_CATEGORIES, STAT_FIELDS, UNKNOWN, UpsertOutcome

MAP_LIMIT = 2000

_log = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS incidents (
  id TEXT PRIMARY KEY,
  title TEXT NOT NULL,
  link TEXT NOT NULL,
  published_at TEXT NOT NULL,
  category TEXT,
  subtype TEXT,
  place TEXT,
  district TEXT,
  status TEXT,
  road TEXT,
  distance_km REAL,
  end_time_raw TEXT,
  duration_minutes INTEGER,
  raw_description TEXT,
  ingested_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_incidents_published_at ON incidents(published_at);
CREATE INDEX IF NOT EXISTS idx_incidents_place ON incidents(place);
CREATE INDEX IF NOT EXISTS idx_incidents_district ON incidents(district);
CREATE INDEX IF NOT EXISTS idx_incidents_category ON incidents(category);

CREATE TABLE IF NOT EXISTS places (
  place TEXT NOT NULL,
  district TEXT NOT NULL DEFAULT '',
  lat REAL,
  lon REAL,
  provider TEXT,
  updated_at TEXT NOT NULL,
  PRIMARY KEY (place, district)
);

CREATE TABLE IF NOT EXISTS runs (
  run_id INTEGER PRIMARY KEY AUTOINCREMENT,
  source TEXT,
  state TEXT NOT NULL,
  started_at TEXT,
  finished_at TEXT,
  items_total INTEGER NOT NULL,
  inserted INTEGER NOT NULL,
  updated INTEGER NOT NULL,
  skipped INTEGER NOT NULL,
  error TEXT
);
"""

_COLUMNS = (
    "id", "title", "link", "published_at", "category", "subtype", "place",
    "district", "status", "road", "distance_km", "end_time_raw",
    "duration_minutes", "raw_description", "ingested_at",
)

_UPSERT = (
    f"INSERT INTO incidents ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)}) "
    "ON CONFLICT(id) DO UPDATE SET "
    + ", ".join(f"{c}=excluded.{c}" for c in _COLUMNS if c != "id")
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.astimezone(timezone.utc).isoformat() if dt else None


def _from_iso(s: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(s) if s else None


def _row_to_record(row: sqlite3.Row) -> IncidentRecord:
    data = {c: row[c] for c in _COLUMNS}
    data["published_at"] = _from_iso(data["published_at"])
    data["ingested_at"] = _from_iso(data["ingested_at"])
    return IncidentRecord(**data)


class SqliteStore:
    """Reference `IncidentStore` on top of the standard library sqlite3."""

    def __init__(self, path: Union[str, Path] = ":memory:"):
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        if self.path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.executescript(SCHEMA)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SqliteStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    # ------------------------------------------------------------------ incidents
    def get_by_id(self, incident_id: str) -> Optional[IncidentRecord]:
        row = self._conn.execute("SELECT * FROM incidents WHERE id = ?", (incident_id,)).fetchone()
        return _row_to_record(row) if row else None

    def upsert(self, record: IncidentRecord) -> UpsertOutcome:
        values = [getattr(record, c) for c in _COLUMNS]
        values[_COLUMNS.index("published_at")] = _iso(record.published_at)
        values[_COLUMNS.index("ingested_at")] = _iso(record.ingested_at or _utc_now())
        with self._tx() as conn:
            existed = conn.execute("SELECT 1 FROM incidents WHERE id = ?", (record.id,)).fetchone()
            conn.execute(_UPSERT, values)
            if record.place:
                # keep the gazetteer in step so the pair shows up as missing coords
                conn.execute(
                    "INSERT OR IGNORE INTO places (place, district, updated_at) VALUES (?, ?, ?)",
                    (record.place, record.district or "", _iso(_utc_now())),
                )
        return "updated" if existed else "inserted"

    def query_incidents(self, query: IncidentQuery) -> List[IncidentRecord]:
        where, params = self._where(query)
        limit = max(1, min(int(query.limit), 1000))
        sql = (
            f"SELECT * FROM incidents WHERE {' AND '.join(where)} "
            "ORDER BY published_at DESC, id LIMIT ? OFFSET ?"
        )
        rows = self._conn.execute(sql, [*params, limit, max(0, int(query.offset))]).fetchall()
        return [_row_to_record(r) for r in rows]

    def stats(self, field: str, query: Optional[IncidentQuery] = None) -> List[Dict[str, Any]]:
        """Incident counts grouped by place, district or category.

        Places are counted per (place, district): village names repeat
        across districts.
        """
        if field not in STAT_FIELDS:
            raise ValueError(f"cannot group by {field!r}; expected one of {STAT_FIELDS}")
        where, params = self._where(query or IncidentQuery())
        keys = ("place", "district") if field == "place" else (field,)
        cols = ", ".join(f"COALESCE({k}, ?) AS {k}" for k in keys)
        groups = ", ".join(str(n) for n in range(1, len(keys) + 1))
        sql = (
            f"SELECT {cols}, COUNT(*) AS count FROM incidents "
            f"WHERE {' AND '.join(where)} GROUP BY {groups} ORDER BY count DESC, {groups}"
        )
        rows = self._conn.execute(sql, [*(UNKNOWN for _ in keys), *params]).fetchall()
        return [{**{k: r[k] for k in keys}, "count": r["count"]} for r in rows]

    def map_places(self, query: Optional[IncidentQuery] = None) -> List[Dict[str, Any]]:
        """Geocoded places with their incident counts and a per-category breakdown."""
        where, params = self._where(query or IncidentQuery(), alias="i")
        breakdown = ", ".join(
            f"SUM(CASE WHEN i.category LIKE ? THEN 1 ELSE 0 END) AS cnt_{key}"
            for key, _ in MAP_CATEGORIES
        )
        sql = (
            f"SELECT p.place AS place, p.district AS district, p.lat AS lat, p.lon AS lon, "
            f"COUNT(i.id) AS count, {breakdown} "
            "FROM places p JOIN incidents i "
            "ON i.place = p.place AND COALESCE(i.district, '') = p.district "
            f"WHERE p.lat IS NOT NULL AND p.lon IS NOT NULL AND {' AND '.join(where)} "
            "GROUP BY p.place, p.district, p.lat, p.lon "
            "ORDER BY count DESC, p.place LIMIT ?"
        )
        prefixes = [prefix + "%" for _, prefix in MAP_CATEGORIES]
        rows = self._conn.execute(sql, [*prefixes, *params, MAP_LIMIT]).fetchall()
        out = []
        for r in rows:
            row = dict(r)
            row["district"] = row["district"] or None
            out.append(row)
        return out

    @staticmethod
    def _where(query: IncidentQuery, alias: str = "") -> Tuple[List[str], List[Any]]:
        dot = f"{alias}." if alias else ""
        where = ["1=1"]
        params: List[Any] = []
        if query.since:
            where.append(f"{dot}published_at >= ?")
            params.append(_iso(query.since))
        if query.until:
            where.append(f"{dot}published_at < ?")
            params.append(_iso(query.until))
        if query.place:
            where.append(f"{dot}place = ?")
            params.append(query.place)
        if query.district:
            where.append(f"{dot}district = ?")
            params.append(query.district)
        if query.category:
            if query.category_prefix:
                where.append(f"{dot}category LIKE ? ESCAPE '\\'")
                escaped = query.category.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
                params.append(escaped + "%")
            else:
                where.append(f"{dot}category = ?")
                params.append(query.category)
        return where, params

    # ------------------------------------------------------------------ places
    def list_missing_coordinates(self, limit: int) -> List[Tuple[str, Optional[str]]]:
        rows = self._conn.execute(
            "SELECT place, district FROM places WHERE lat IS NULL OR lon IS NULL "
            "ORDER BY updated_at, place LIMIT ?",
            (max(0, int(limit)),),
        ).fetchall()
        return [(r["place"], r["district"] or None) for r in rows]

    def get_coordinate(self, place: str, district: Optional[str]) -> Optional[PlaceCoordinate]:
        row = self._conn.execute(
            "SELECT * FROM places WHERE place = ? AND district = ?", (place, district or "")
        ).fetchone()
        if not row:
            return None
        return PlaceCoordinate(
            place=row["place"],
            district=row["district"] or None,
            lat=row["lat"],
            lon=row["lon"],
            provider=row["provider"],
            updated_at=_from_iso(row["updated_at"]),
        )

    def upsert_coordinate(self, coord: PlaceCoordinate) -> bool:
        """Write coordinates unless a more trusted provider already set them."""
        district = coord.district or ""
        stamp = _iso(coord.updated_at or _utc_now())
        with self._tx() as conn:
            row = conn.execute(
                "SELECT lat, lon, provider FROM places WHERE place = ? AND district = ?",
                (coord.place, district),
            ).fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO places (place, district, lat, lon, provider, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (coord.place, district, coord.lat, coord.lon, coord.provider, stamp),
                )
                return True
            has_coords = row["lat"] is not None and row["lon"] is not None
            if has_coords and provider_confidence(coord.provider) < provider_confidence(row["provider"]):
                _log.info("Keeping %s coordinates for %s/%s", row["provider"], coord.place, district)
                return False
            conn.execute(
                "UPDATE places SET lat = ?, lon = ?, provider = ?, updated_at = ? "
                "WHERE place = ? AND district = ?",
                (coord.lat, coord.lon, coord.provider, stamp, coord.place, district),
            )
            return True

    # ------------------------------------------------------------------ runs
    def record_run(self, summary: RunSummary) -> None:
        with self._tx() as conn:
            conn.execute(
                "INSERT INTO runs (source, state, started_at, finished_at, items_total, "
                "inserted, updated, skipped, error) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    summary.source, summary.state.value, _iso(summary.started_at),
                    _iso(summary.finished_at), summary.items_total, summary.inserted,
                    summary.updated, summary.skipped, summary.error,
                ),
            )

    def recent_runs(self, limit: int = 20) -> List[Dict[str, Any]]:
        rows = self._conn.execute(
            "SELECT * FROM runs ORDER BY run_id DESC LIMIT ?", (int(limit),)
        ).fetchall()
        return [dict(r) for r in rows]
