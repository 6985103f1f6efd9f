"""
incidentfeed – fire‑brigade incident feed ingestion
---------------------------------------------------

Sub‑packages:
    utils   – config loader
    ingest  – fetch, parse, extract, reconcile
    store   – store interface + SQLite reference store
    enrich  – place geocoding after ingestion

Public re‑exports
-----------------
>>> from incidentfeed import ingest_feed, IncidentIngester
"""
import logging

from .errors import FetchFailed, IncidentFeedError, MalformedFeed, UnparsableTime
from .ingest.incident_ingester import IncidentIngester, run as ingest_feed

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "IncidentIngester", "ingest_feed",
    "IncidentFeedError", "FetchFailed", "MalformedFeed", "UnparsableTime",
]
__version__ = "0.1.0"
