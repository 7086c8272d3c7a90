import pytest
import requests

from civic_pulse.core.settings import settings
from civic_pulse.services.geocoding import GeocodingProvider, NominatimProvider, enrich_location
from civic_pulse.services.geocoding.base import empty_result

from conftest import make_location


class StaticProvider(GeocodingProvider):
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def reverse_geocode(self, latitude, longitude):
        self.calls += 1
        return self.result


@pytest.fixture
def geocoding_enabled(monkeypatch):
    monkeypatch.setattr(settings, "GEOCODING_ENABLED", True)


def test_disabled_geocoding_leaves_location_alone():
    provider = StaticProvider({"city": "Mysuru", "provider": "static"})
    location = make_location().model_copy(update={"city": None})
    assert enrich_location(location, provider) is location
    assert provider.calls == 0


def test_enrichment_fills_only_missing_fields(geocoding_enabled):
    provider = StaticProvider({
        "formatted_address": "MG Road, Bengaluru, Karnataka",
        "city": "Mysuru",
        "state": "Karnataka",
        "pincode": "560001",
        "provider": "static",
    })
    enriched = enrich_location(make_location(), provider)

    assert enriched.address == "MG Road bus stop"
    assert enriched.city == "Bengaluru"
    assert enriched.state == "Karnataka"
    assert enriched.pincode == "560001"


def test_complete_location_skips_lookup(geocoding_enabled):
    provider = StaticProvider(empty_result("static"))
    location = make_location().model_copy(update={"state": "Karnataka"})
    assert enrich_location(location, provider) is location
    assert provider.calls == 0


def test_nominatim_response_parsing():
    parsed = NominatimProvider.parse_response({
        "display_name": "MG Road, Bengaluru",
        "address": {"town": "Bengaluru", "state": "Karnataka", "postcode": "560 001"},
    })
    assert parsed == {
        "formatted_address": "MG Road, Bengaluru",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
        "provider": "nominatim",
    }
    assert NominatimProvider.parse_response([])["city"] is None


def test_nominatim_network_failure_returns_empty(monkeypatch):
    def _fail(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(requests, "get", _fail)
    result = NominatimProvider().reverse_geocode(12.97, 77.59)
    assert result == empty_result("nominatim")
