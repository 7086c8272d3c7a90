import os

# The in-process store must be selected before settings are loaded
os.environ["USE_MOCK_DB"] = "true"
os.environ["GEOCODING_ENABLED"] = "false"

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from civic_pulse.core.enums import IssueCategory
from civic_pulse.models.issue import Issue, IssueDraft, IssueLocation
from civic_pulse.services.realtime import get_publisher
from civic_pulse.services.storage import get_chat_store, get_issue_store, reset_storage
from civic_pulse.utils.security import Actor
from civic_pulse.utils.timeutils import utcnow

# MG Road, Bengaluru
BASE_LNG = 77.5946
BASE_LAT = 12.9716
METERS_PER_DEGREE = 111195.0

CITIZEN_HEADERS = {"X-User-ID": "citizen-1"}
OTHER_CITIZEN_HEADERS = {"X-User-ID": "citizen-2"}
GOV_HEADERS = {"X-User-ID": "gov-1", "X-User-Role": "government"}


def offset_north(meters: float, lat: float = BASE_LAT) -> float:
    return lat + meters / METERS_PER_DEGREE


def make_location(lng: float = BASE_LNG, lat: float = BASE_LAT, address: str = "MG Road bus stop") -> IssueLocation:
    return IssueLocation(coordinates=[lng, lat], address=address, city="Bengaluru")


def make_issue(**overrides) -> Issue:
    data = {
        "id": "issue-1",
        "title": "Pothole on MG Road",
        "description": "Large pothole in the left lane near the bus stop",
        "category": IssueCategory.ROADS,
        "location": make_location(),
        "reported_by": "citizen-1",
        "created_at": utcnow(),
    }
    data.update(overrides)
    return Issue(**data)


def make_draft(**overrides) -> IssueDraft:
    data = {
        "title": "Pothole on MG Road",
        "description": "Large pothole in the left lane near the bus stop",
        "category": IssueCategory.ROADS.value,
        "location": make_location(),
        "reported_by": "citizen-1",
    }
    data.update(overrides)
    return IssueDraft(**data)


def issue_body(lat: float = BASE_LAT, lng: float = BASE_LNG, **overrides) -> dict:
    body = {
        "title": "Broken streetlight",
        "description": "The streetlight near the bus stop has been out for a week.",
        "category": "Street Lighting",
        "location": {"coordinates": [lng, lat], "address": "MG Road bus stop", "city": "Bengaluru"},
        "images": ["https://cdn.example.com/issues/light.jpg"],
    }
    body.update(overrides)
    return body


@pytest.fixture(autouse=True)
def clean_storage():
    reset_storage()
    yield
    reset_storage()


@pytest.fixture
def store():
    return get_issue_store()


@pytest.fixture
def chat_store():
    return get_chat_store()


@pytest.fixture
def citizen():
    return Actor(user_id="citizen-1")


@pytest.fixture
def official():
    return Actor(user_id="gov-1", role="government")


@pytest.fixture
def events():
    received = []
    publisher = get_publisher()
    publisher.subscribe(received.append)
    yield received
    publisher.unsubscribe(received.append)


@pytest.fixture
def client():
    from civic_pulse.main import app

    return TestClient(app)


@pytest.fixture
def days_ago():
    def _days_ago(days: float):
        return utcnow() - timedelta(days=days)

    return _days_ago
