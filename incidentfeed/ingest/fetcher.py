"""
Feed fetcher
============

Tries an ordered list of candidate URLs until one answers:

1. the direct feed URL
2. one rewrite per relay template from config (``{url}`` raw,
   ``{url_q}`` percent‑encoded), for deployments whose egress cannot reach
   the upstream directly

Candidates are attempted one at a time, never in parallel. Each attempt has
its own timeout; the first 2xx response with a non‑empty body wins.

Certificate validation is switched off for *exactly one* host (the upstream
with the broken chain) and nowhere else. Redirects are followed by hand so
that decision is re‑made for every hop.
"""
from __future__ import annotations
import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
from urllib.parse import quote, urljoin, urlparse

import requests
from urllib3.exceptions import InsecureRequestWarning

from incidentfeed.errors import FetchFailed

#: Requests setup -----------------------------------------------------------
TIMEOUT = 20        # seconds per candidate attempt
MAX_REDIRECTS = 10
HEADERS = {
    "User-Agent": "incidentfeed/0.1 (your.email@example.com)",
    "Accept": "application/rss+xml, application/xml;q=0.9, */*;q=0.5",
}

_log = logging.getLogger(__name__)
logging.getLogger("urllib3").setLevel(logging.WARNING)


@dataclass(frozen=True)
class FetchResult:
    content: bytes
    source: str                              # candidate that won
    attempts: List[Tuple[str, str]] = field(default_factory=list)   # failures before it


def _host(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


class Fetcher:
    """
    Parameters
    ----------
    relays        : relay URL templates, tried after the direct URL
    timeout       : seconds per attempt
    insecure_host : the one host whose certificate chain is not validated
    session       : injectable `requests.Session` (tests pass a fake)
    """

    def __init__(self, relays: Sequence[str] = (), *, timeout: float = TIMEOUT,
                 insecure_host: Optional[str] = None, user_agent: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.relays = list(relays)
        self.timeout = timeout
        self.insecure_host = (insecure_host or "").lower() or None
        self.headers = dict(HEADERS)
        if user_agent:
            self.headers["User-Agent"] = user_agent
        self.session = session or requests.Session()

    @classmethod
    def from_conf(cls, conf) -> "Fetcher":
        ing = conf.ingest
        return cls(
            ing.get("relays") or (),
            timeout=float(ing.get("timeout_s", TIMEOUT)),
            insecure_host=ing.get("insecure_host"),
            user_agent=ing.get("user_agent"),
        )

    # ────────────────────────────────────────────────────────────────────
    def candidates(self, source: str) -> List[str]:
        out = [source]
        for tpl in self.relays:
            url = tpl.format(url=source, url_q=quote(source, safe=""))
            if url not in out:
                out.append(url)
        return out

    def _verify(self, url: str) -> bool:
        return not (self.insecure_host and _host(url) == self.insecure_host)

    def _get(self, url: str) -> requests.Response:
        verify = self._verify(url)
        if verify:
            return self.session.get(url, headers=self.headers, timeout=self.timeout,
                                    allow_redirects=False, verify=True)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", InsecureRequestWarning)
            return self.session.get(url, headers=self.headers, timeout=self.timeout,
                                    allow_redirects=False, verify=False)

    def _attempt(self, url: str) -> bytes:
        """One candidate, redirects included. Raises on any failure."""
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            resp = self._get(current)
            if resp.is_redirect:
                location = resp.headers.get("location")
                if not location:
                    raise requests.HTTPError(f"redirect {resp.status_code} without Location")
                current = urljoin(current, location)
                _log.debug("Redirect → %s", current)
                continue
            resp.raise_for_status()
            if not resp.content:
                raise ValueError("empty response body")
            return resp.content
        raise requests.TooManyRedirects(f"more than {MAX_REDIRECTS} redirects")

    def fetch(self, source: str) -> FetchResult:
        """
        Returns
        -------
        FetchResult with the body and the winning candidate.

        Raises
        ------
        FetchFailed once every candidate has failed.
        """
        failures: List[Tuple[str, str]] = []
        for url in self.candidates(source):
            try:
                content = self._attempt(url)
            except requests.Timeout:
                reason = f"timeout after {self.timeout:g}s"
            except (requests.RequestException, ValueError) as exc:
                reason = f"{type(exc).__name__}: {exc}"
            else:
                if failures:
                    _log.info("Feed fetched via fallback %s after %d failure(s)", url, len(failures))
                return FetchResult(content=content, source=url, attempts=failures)
            _log.warning("Feed candidate %s failed: %s", url, reason)
            failures.append((url, reason))
        raise FetchFailed(failures)
