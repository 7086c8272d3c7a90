import logging
from typing import Optional

from civic_pulse.core.settings import settings
from civic_pulse.models.issue import IssueLocation
from civic_pulse.services.geocoding.base import GeocodingProvider
from civic_pulse.services.geocoding.nominatim_provider import NominatimProvider

logger = logging.getLogger(__name__)

_provider_instance: Optional[GeocodingProvider] = None


def get_geocoding_provider() -> GeocodingProvider:
    """Resolve the active geocoding provider (Nominatim, no API key required)."""
    global _provider_instance
    if _provider_instance is None:
        _provider_instance = NominatimProvider(user_agent=settings.GEOCODING_USER_AGENT)
        logger.info("Geocoding provider initialized: nominatim")
    return _provider_instance


def set_geocoding_provider(provider: Optional[GeocodingProvider]) -> None:
    global _provider_instance
    _provider_instance = provider


def enrich_location(location: IssueLocation, provider: Optional[GeocodingProvider] = None) -> IssueLocation:
    """
    Fill missing address/city/state/pincode from reverse geocoding.

    Fields the reporter supplied are never overwritten. Returns the location
    unchanged when geocoding is disabled or already complete.
    """
    if not settings.GEOCODING_ENABLED:
        return location
    if location.city and location.state:
        return location

    provider = provider or get_geocoding_provider()
    result = provider.reverse_geocode(location.latitude, location.longitude)

    updates = {}
    if not location.address and result.get("formatted_address"):
        updates["address"] = result["formatted_address"][:500]
    for field in ("city", "state", "pincode"):
        if not getattr(location, field) and result.get(field):
            updates[field] = str(result[field])

    if updates:
        logger.info(f"Reverse geocoding filled {sorted(updates)} via {result.get('provider')}")
        return location.model_copy(update=updates)
    return location
