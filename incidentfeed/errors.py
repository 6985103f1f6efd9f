"""
Exception taxonomy.

Only fetch- and parse-level failures abort an ingestion run. Extraction and
enrichment problems degrade to an absent field and never reach the caller.
"""
from __future__ import annotations
from typing import List, Tuple


class IncidentFeedError(Exception):
    """Base class for everything raised by incidentfeed."""


class FetchFailed(IncidentFeedError):
    """Every retrieval candidate failed; `attempts` holds (candidate, reason)."""

    def __init__(self, attempts: List[Tuple[str, str]]):
        self.attempts = list(attempts)
        detail = "; ".join(f"{url} → {reason}" for url, reason in self.attempts)
        super().__init__(f"all {len(self.attempts)} feed candidates failed: {detail}")


class MalformedFeed(IncidentFeedError):
    """Retrieved bytes are not a recognisable RSS document."""


class UnparsableTime(IncidentFeedError, ValueError):
    """A wall-clock string did not match the expected grammar."""
