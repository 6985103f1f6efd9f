"""
Store interface the ingester and the enrichment scheduler talk to.

Implementations must make `upsert` atomic per row; concurrent runs then
converge with last-writer-wins per incident id.
"""
from __future__ import annotations
from typing import Dict, List, Literal, Optional, Protocol, Tuple

from incidentfeed.ingest.records import (
    IncidentQuery, IncidentRecord, PlaceCoordinate, RunSummary,
)

UpsertOutcome = Literal["inserted", "updated"]
STAT_FIELDS = ("place", "district", "category")
UNKNOWN = "Neznámé"

#: map-view breakdown: (column suffix, category prefix)
MAP_CATEGORIES = (
    ("pozar", "požár"),
    ("dn", "dopravní nehoda"),
    ("tp", "technická pomoc"),
    ("pp", "planý poplach"),
)


class IncidentStore(Protocol):
    def get_by_id(self, incident_id: str) -> Optional[IncidentRecord]: ...

    def upsert(self, record: IncidentRecord) -> UpsertOutcome: ...

    def list_missing_coordinates(self, limit: int) -> List[Tuple[str, Optional[str]]]: ...

    def get_coordinate(self, place: str, district: Optional[str]) -> Optional[PlaceCoordinate]: ...

    def upsert_coordinate(self, coord: PlaceCoordinate) -> bool: ...

    def record_run(self, summary: RunSummary) -> None: ...

    def query_incidents(self, query: IncidentQuery) -> List[IncidentRecord]: ...

    def stats(self, field: str, query: Optional[IncidentQuery] = None) -> List[Dict[str, object]]: ...

    def map_places(self, query: Optional[IncidentQuery] = None) -> List[Dict[str, object]]: ...
