"""
incidentfeed/enrich/geocoder.py
===============================

OpenStreetMap Nominatim place lookup
------------------------------------

• Resolve a place name (e.g. "Kutná Hora") into ``(lat, lon)``
• Restricted to one country via ``countrycodes`` so that "Bobnice" does not
  end up somewhere in Poland
• The district goes into the query as ``"<place>, okres <district>"``: the
  same village name exists in several districts
• Returns ``None`` on *any* miss: empty result, HTTP error, timeout,
  garbage coordinates

Rate limiting is *not* done here; the enrichment scheduler owns the spacing
between calls. Nominatim's usage policy also wants an identifying
User‑Agent, see ``HEADERS``.
"""
from __future__ import annotations
import logging
import math
from typing import Optional, Tuple

import requests

#: REST endpoint ------------------------------------------------------------
NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
PROVIDER = "nominatim"

#: Requests setup -----------------------------------------------------------
TIMEOUT = 10        # seconds for every HTTP request
HEADERS = {
    "User-Agent": "incidentfeed-geocoder/0.1 (your.email@example.com)",
    "Accept-Language": "cs,en;q=0.8",
}

_log = logging.getLogger(__name__)
logging.getLogger("urllib3").setLevel(logging.WARNING)


class NominatimGeocoder:
    provider = PROVIDER

    def __init__(self, url: str = NOMINATIM_URL, *, user_agent: Optional[str] = None,
                 timeout: float = TIMEOUT, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.headers = dict(HEADERS)
        if user_agent:
            self.headers["User-Agent"] = user_agent
        self.session = session or requests.Session()

    @classmethod
    def from_conf(cls, conf) -> "NominatimGeocoder":
        geo = conf.geocode
        return cls(
            geo.get("url", NOMINATIM_URL),
            user_agent=geo.get("user_agent"),
            timeout=float(geo.get("timeout_s", TIMEOUT)),
        )

    def lookup(self, name: str, country_hint: Optional[str] = "cz",
               district: Optional[str] = None) -> Optional[Tuple[float, float]]:
        """
        Parameters
        ----------
        name         : free‑text place, e.g. "Kutná Hora"
        country_hint : ISO‑3166 alpha‑2 code, used as ``countrycodes``
        district     : administrative district (okres) narrowing the match

        Returns
        -------
        ``(lat, lon)`` in decimal degrees, or ``None``.
        """
        q = (name or "").strip()
        if not q:
            return None
        if district and district.strip():
            q = f"{q}, okres {district.strip()}"

        params = {"q": q, "format": "jsonv2", "limit": 1}
        if country_hint:
            params["countrycodes"] = country_hint.lower()

        try:
            resp = self.session.get(self.url, params=params, headers=self.headers,
                                    timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            _log.warning("Nominatim lookup for %r failed: %s", q, exc)
            return None

        if not isinstance(data, list) or not data:
            _log.info("Nominatim has no match for %r", q)
            return None

        try:
            lat, lon = float(data[0]["lat"]), float(data[0]["lon"])
        except (KeyError, TypeError, ValueError):
            return None
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return None
        return lat, lon


if __name__ == "__main__":           # quick CLI check
    import sys, json
    print(json.dumps(NominatimGeocoder().lookup(" ".join(sys.argv[1:])), indent=2))
