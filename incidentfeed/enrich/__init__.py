"""
Coordinate enrichment.

• geocoder.NominatimGeocoder        – OSM place lookup
• scheduler.EnrichmentScheduler     – capped, rate‑limited pass over the store
"""
from .geocoder import NominatimGeocoder
from .scheduler import EnrichmentScheduler, EnrichmentSummary

__all__ = ["NominatimGeocoder", "EnrichmentScheduler", "EnrichmentSummary"]
