import logging
from typing import Any, Dict, Optional

import requests

from civic_pulse.services.geocoding.base import GeocodingProvider, empty_result

logger = logging.getLogger(__name__)

PROVIDER_NAME = "nominatim"

# Nominatim reports the municipality under different keys depending on size
CITY_KEYS = ("city", "town", "municipality", "village", "county")


class NominatimProvider(GeocodingProvider):
    """
    OpenStreetMap Nominatim reverse geocoding.

    No API key; Nominatim's usage policy requires an identifying User-Agent.
    Failures come back as empty fields.
    """

    BASE_URL = "https://nominatim.openstreetmap.org/reverse"

    def __init__(self, user_agent: str = "civic-pulse/0.1", timeout: float = 3.0):
        self.user_agent = user_agent
        self.timeout = timeout

    def reverse_geocode(self, latitude: float, longitude: float) -> Dict[str, Optional[str]]:
        params = {"lat": latitude, "lon": longitude, "format": "json", "addressdetails": 1}
        try:
            resp = requests.get(
                self.BASE_URL,
                params=params,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Nominatim request failed for ({latitude}, {longitude}): {e}")
            return empty_result(PROVIDER_NAME)

        if resp.status_code != 200:
            logger.warning(f"Nominatim reverse geocode returned HTTP {resp.status_code}")
            return empty_result(PROVIDER_NAME)

        try:
            payload = resp.json()
        except ValueError:
            logger.warning("Nominatim returned a non-JSON body")
            return empty_result(PROVIDER_NAME)
        return self.parse_response(payload)

    @staticmethod
    def parse_response(payload: Any) -> Dict[str, Optional[str]]:
        if not isinstance(payload, dict):
            return empty_result(PROVIDER_NAME)

        address = payload.get("address") or {}
        city = next((address[key] for key in CITY_KEYS if address.get(key)), None)
        postcode = address.get("postcode")

        return {
            "formatted_address": payload.get("display_name"),
            "city": city,
            "state": address.get("state"),
            "pincode": str(postcode).replace(" ", "") if postcode else None,
            "provider": PROVIDER_NAME,
        }
