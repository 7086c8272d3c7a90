import json

from fastapi.testclient import TestClient

from conftest import (
    BASE_LAT,
    BASE_LNG,
    CITIZEN_HEADERS,
    GOV_HEADERS,
    OTHER_CITIZEN_HEADERS,
    issue_body,
    offset_north,
)


def _create(client, headers=CITIZEN_HEADERS, **body_overrides):
    response = client.post("/api/issues", json=issue_body(**body_overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_root_and_health(client):
    assert client.get("/").json()["issues"] == "/api/issues"

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"

    db = client.get("/health/db").json()
    assert db["database"] == "memory"
    assert db["connected"] is True


def test_report_issue(client, events):
    response = client.post("/api/issues", json=issue_body(), headers=CITIZEN_HEADERS)
    assert response.status_code == 201

    payload = response.json()
    assert payload["success"] is True
    assert payload["message"] == "Issue reported successfully"
    data = payload["data"]
    assert data["merged"] is False
    assert data["duplicate_id"] is None
    assert data["reported_by"] == "citizen-1"
    assert data["status"] == "pending"
    assert data["priority"] == "medium"
    assert data["location"]["coordinates"] == [BASE_LNG, BASE_LAT]

    assert [event.event for event in events] == ["newIssue"]


def test_report_requires_authentication(client):
    response = client.post("/api/issues", json=issue_body())
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": "Authentication required",
        "message": "Authentication required",
    }


def test_report_accepts_json_encoded_location(client):
    location = json.dumps({"coordinates": [BASE_LNG, BASE_LAT], "address": "MG Road bus stop"})
    data = _create(client, location=location)
    assert data["location"]["address"] == "MG Road bus stop"


def test_report_accepts_legacy_coordinate_fields(client):
    data = _create(client, location="Near the metro exit", latitude=str(BASE_LAT), longitude=BASE_LNG)
    assert data["location"]["coordinates"] == [BASE_LNG, BASE_LAT]
    assert data["location"]["address"] == "Near the metro exit"


def test_report_without_coordinates(client):
    body = issue_body(location={"address": "Somewhere"})
    response = client.post("/api/issues", json=body, headers=CITIZEN_HEADERS)
    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"
    assert response.json()["message"] == "Location coordinates required"


def test_report_with_unknown_category(client):
    body = issue_body(category="Alien Landing")
    response = client.post("/api/issues", json=body, headers=CITIZEN_HEADERS)
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_repeat_report_is_merged(client):
    first = _create(client)
    response = client.post(
        "/api/issues",
        json=issue_body(lat=offset_north(25)),
        headers=OTHER_CITIZEN_HEADERS,
    )
    assert response.status_code == 201
    payload = response.json()
    assert payload["message"] == "Report merged into an existing issue"
    assert payload["data"]["merged"] is True
    assert payload["data"]["id"] == first["id"]
    assert payload["data"]["reporters"] == ["citizen-1", "citizen-2"]
    assert payload["data"]["duplicate_id"]


def test_listing_pagination(client):
    for n in range(25):
        _create(client, lat=BASE_LAT + n * 0.01, title=f"Streetlight out {n}")

    payload = client.get("/api/issues", params={"page": 2, "limit": 10}).json()
    assert len(payload["data"]) == 10
    assert payload["total_count"] == 25
    assert payload["current_page"] == 2
    assert payload["total_pages"] == 3


def test_listing_malformed_paging_uses_defaults(client):
    _create(client)
    payload = client.get("/api/issues", params={"page": "abc", "limit": "-4"}).json()
    assert payload["current_page"] == 1
    assert payload["limit"] == 10
    assert payload["total_count"] == 1


def test_listing_default_search_radius(client):
    _create(client, lat=offset_north(4000), title="Four km away")
    _create(client, lat=offset_north(6000), title="Six km away")

    payload = client.get("/api/issues", params={"location": f"{BASE_LNG},{BASE_LAT}"}).json()
    assert [issue["title"] for issue in payload["data"]] == ["Four km away"]

    wider = client.get("/api/issues", params={"location": f"{BASE_LNG},{BASE_LAT},7000"}).json()
    assert wider["total_count"] == 2


def test_listing_rejects_malformed_location_filter(client):
    response = client.get("/api/issues", params={"location": "north,south"})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_listing_filters_and_search(client):
    _create(client)
    _create(client, category="Water Supply", title="Burst pipe", lat=offset_north(2000))

    by_category = client.get("/api/issues", params={"category": "Water Supply"}).json()
    assert [issue["title"] for issue in by_category["data"]] == ["Burst pipe"]

    by_search = client.get("/api/issues", params={"search": "BURST"}).json()
    assert by_search["total_count"] == 1

    by_status = client.get("/api/issues", params={"status": "resolved"}).json()
    assert by_status["total_count"] == 0


def test_vote_round_trip(client):
    issue = _create(client)

    first = client.post(f"/api/issues/{issue['id']}/vote", headers=OTHER_CITIZEN_HEADERS).json()
    assert first["message"] == "Vote added"
    assert first["data"] == {"issue_id": issue["id"], "votes": 1, "has_voted": True}

    second = client.post(f"/api/issues/{issue['id']}/vote", headers=OTHER_CITIZEN_HEADERS).json()
    assert second["message"] == "Vote removed"
    assert second["data"]["votes"] == 0


def test_citizen_cannot_change_status(client):
    issue = _create(client)
    response = client.put(f"/api/issues/{issue['id']}/status", json={"status": "resolved"}, headers=CITIZEN_HEADERS)
    assert response.status_code == 403
    assert response.json()["error"] == "Access denied"


def test_government_resolves_issue(client):
    issue = _create(client)
    body = {
        "status": "resolved",
        "comment": "Lamp replaced",
        "resolutionDetails": {"description": "Replaced the bulb", "images": []},
    }
    response = client.put(f"/api/issues/{issue['id']}/status", json=body, headers=GOV_HEADERS)
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["status"] == "resolved"
    assert data["actual_resolution_time"] == 0
    assert data["resolution_details"]["resolved_by"] == "gov-1"
    assert data["resolution_details"]["resolution_description"] == "Replaced the bulb"
    assert data["status_history"][-1]["comment"] == "Lamp replaced"


def test_invalid_status(client):
    issue = _create(client)
    response = client.put(f"/api/issues/{issue['id']}/status", json={"status": "finished"}, headers=GOV_HEADERS)
    assert response.status_code == 400


def test_assign_issue(client, events):
    issue = _create(client)
    body = {"department": "Electrical", "officialId": "official-7"}
    response = client.put(f"/api/issues/{issue['id']}/assign", json=body, headers=GOV_HEADERS)
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["status"] == "assigned"
    assert data["assigned_to"] == {"department": "Electrical", "official": "official-7"}
    assert events[-1].event == "issueAssigned"

    assigned = client.get("/api/issues", params={"assigned_to": "official-7"}).json()
    assert assigned["total_count"] == 1


def test_unknown_issue(client):
    response = client.get("/api/issues/does-not-exist")
    assert response.status_code == 404
    assert response.json()["error"] == "Not found"


def test_reporter_view_marks_notifications_read(client):
    issue = _create(client)

    anonymous = client.get(f"/api/issues/{issue['id']}").json()["data"]
    assert anonymous["notifications"][0]["read"] is False

    own = client.get(f"/api/issues/{issue['id']}", headers=CITIZEN_HEADERS).json()["data"]
    assert own["notifications"][0]["read"] is True


def test_my_issues_include_merged_reports(client):
    _create(client)
    _create(client, headers=OTHER_CITIZEN_HEADERS)

    mine = client.get("/api/issues/user/me", headers=OTHER_CITIZEN_HEADERS).json()
    assert mine["total_count"] == 1
    assert mine["data"][0]["merged_into"] is not None

    assert client.get("/api/issues").json()["total_count"] == 1


def test_chat_thread(client, events):
    issue = _create(client)
    merged = _create(client, headers=OTHER_CITIZEN_HEADERS)
    duplicate_id = merged["duplicate_id"]

    for text in ("first", "second"):
        response = client.post(f"/api/issues/{duplicate_id}/chat", json={"message": text}, headers=CITIZEN_HEADERS)
        assert response.status_code == 201
        assert response.json()["data"]["issue_id"] == issue["id"]
    assert events[-1].event == "issueChatMessage"

    thread = client.get(f"/api/issues/{issue['id']}/chat").json()
    assert [message["message"] for message in thread["data"]] == ["first", "second"]
    assert thread["pagination"]["total"] == 2


def test_chat_requires_message(client):
    issue = _create(client)
    response = client.post(f"/api/issues/{issue['id']}/chat", json={"message": "  "}, headers=CITIZEN_HEADERS)
    assert response.status_code == 400
    assert response.json()["message"] == "Message required"

    missing = client.post(f"/api/issues/{issue['id']}/chat", json={}, headers=CITIZEN_HEADERS)
    assert missing.status_code == 400


def test_statistics(client):
    _create(client)
    _create(client, headers=OTHER_CITIZEN_HEADERS)
    _create(client, category="Water Supply", title="Burst pipe", lat=offset_north(2000))

    assert client.get("/api/issues/statistics").status_code == 401

    stats = client.get("/api/issues/statistics", params={"time_range": "7d"}, headers=GOV_HEADERS).json()["data"]
    assert stats["time_range"] == "7d"
    assert stats["total"]["total"] == 2


def test_manual_priority(client):
    issue = _create(client)
    response = client.put(
        f"/api/issues/{issue['id']}/priority",
        json={"priority": "urgent"},
        headers=GOV_HEADERS,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["priority"] == "urgent"
    assert data["priority_auto"] is False

    denied = client.put(f"/api/issues/{issue['id']}/priority", json={"priority": "low"}, headers=CITIZEN_HEADERS)
    assert denied.status_code == 403


def test_priority_refresh(client):
    _create(client)
    assert client.post("/api/issues/priority/refresh", headers=CITIZEN_HEADERS).status_code == 403

    response = client.post("/api/issues/priority/refresh", headers=GOV_HEADERS)
    assert response.status_code == 200
    assert response.json()["data"] == {"changed": 0}


def test_unexpected_errors_use_generic_envelope(monkeypatch):
    from civic_pulse.main import app
    from civic_pulse.routes import issues

    class _Broken:
        def list_issues(self, query):
            raise RuntimeError("boom")

    monkeypatch.setattr(issues, "get_issue_service", lambda: _Broken())
    client = TestClient(app, raise_server_exceptions=False)

    response = client.get("/api/issues")
    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Internal server error",
        "message": "An unexpected error occurred",
    }
