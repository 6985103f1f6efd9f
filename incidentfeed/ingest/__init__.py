"""
Ingestion pipeline.

• fetcher.Fetcher                        – candidate URLs, first success wins
• feed_parser.parse_feed(...)            – bytes ➜ RawFeedItem list
• extractor.extract(...)                 – RawFeedItem ➜ IncidentRecord
• incident_ingester.IncidentIngester     – reconcile against the store
"""
from .extractor import extract, split_title
from .feed_parser import parse_feed
from .fetcher import Fetcher, FetchResult
from .records import IncidentQuery, IncidentRecord, PlaceCoordinate, RawFeedItem, RunSummary

__all__ = [
    "extract", "split_title", "parse_feed", "Fetcher", "FetchResult",
    "IncidentQuery", "IncidentRecord", "PlaceCoordinate", "RawFeedItem", "RunSummary",
]
