from abc import ABC, abstractmethod
from typing import Dict, Optional


class GeocodingProvider(ABC):
    """
    Abstract reverse-geocoding provider.

    Contract:
    - Input: latitude, longitude (floats)
    - Output: dict with well-known keys:
      {
        "formatted_address": str | None,
        "city": str | None,
        "state": str | None,
        "pincode": str | None,
        "provider": str
      }
    - MUST NEVER raise upstream exceptions.
    - MUST return empty fields on failure.
    - Implementations should enforce a network timeout <= 3 seconds.
    """

    @abstractmethod
    def reverse_geocode(self, latitude: float, longitude: float) -> Dict[str, Optional[str]]:
        raise NotImplementedError


def empty_result(provider: str) -> Dict[str, Optional[str]]:
    return {
        "formatted_address": None,
        "city": None,
        "state": None,
        "pincode": None,
        "provider": provider,
    }
