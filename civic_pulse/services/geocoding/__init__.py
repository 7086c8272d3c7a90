"""
Reverse geocoding - optional enrichment of report locations.

Fails gracefully and never blocks report creation.
"""

from civic_pulse.services.geocoding.base import GeocodingProvider
from civic_pulse.services.geocoding.nominatim_provider import NominatimProvider
from civic_pulse.services.geocoding.resolver import (
    enrich_location,
    get_geocoding_provider,
    set_geocoding_provider,
)

__all__ = [
    "GeocodingProvider",
    "NominatimProvider",
    "enrich_location",
    "get_geocoding_provider",
    "set_geocoding_provider",
]
