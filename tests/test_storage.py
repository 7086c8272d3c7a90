from datetime import timedelta

import pytest
from google.api_core import exceptions as google_exceptions

from civic_pulse.core.errors import NotFoundError, PersistenceFailure
from civic_pulse.models.chat import ChatMessage
from civic_pulse.models.issue import AssignedTo
from civic_pulse.services.storage import GeoFilter, IssueQuery
from civic_pulse.services.storage.firestore_store import _firestore_errors
from civic_pulse.utils.timeutils import utcnow

from conftest import BASE_LAT, BASE_LNG, make_issue, make_location, offset_north


def test_create_and_find_by_id(store):
    created = store.create(make_issue(id=None))
    assert created.id
    fetched = store.find_by_id(created.id)
    assert fetched.title == created.title
    assert fetched.location.coordinates == [BASE_LNG, BASE_LAT]


def test_find_by_id_missing(store):
    with pytest.raises(NotFoundError):
        store.find_by_id("does-not-exist")


def test_reads_are_copies(store):
    created = store.create(make_issue())
    fetched = store.find_by_id(created.id)
    fetched.title = "Changed locally"
    fetched.voters.append("someone")
    again = store.find_by_id(created.id)
    assert again.title == "Pothole on MG Road"
    assert again.voters == []


def test_save_replaces_document(store):
    created = store.create(make_issue())
    created.title = "Pothole fixed badly"
    store.save(created)
    assert store.find_by_id(created.id).title == "Pothole fixed badly"


def test_toggle_voter_round_trip(store):
    issue = store.create(make_issue())

    voted_issue, voted = store.toggle_voter(issue.id, "voter-1")
    assert voted is True
    assert voted_issue.votes == 1
    assert voted_issue.voters == ["voter-1"]

    store.toggle_voter(issue.id, "voter-2")
    unvoted_issue, voted = store.toggle_voter(issue.id, "voter-1")
    assert voted is False
    assert unvoted_issue.voters == ["voter-2"]
    assert unvoted_issue.votes == len(unvoted_issue.voters)


def test_add_to_sets_is_idempotent(store):
    issue = store.create(make_issue())
    store.add_to_sets(issue.id, reporters=["citizen-2"], duplicates=["dup-1"])
    updated = store.add_to_sets(issue.id, reporters=["citizen-2", "citizen-1"], duplicates=["dup-1"])
    assert updated.reporters == ["citizen-1", "citizen-2"]
    assert updated.duplicates == ["dup-1"]


def test_mutate_applies_function(store):
    issue = store.create(make_issue())

    def _rename(current):
        current.title = "Renamed"
        return current

    assert store.mutate(issue.id, _rename).title == "Renamed"
    assert store.find_by_id(issue.id).title == "Renamed"


def test_mutate_missing_issue(store):
    with pytest.raises(NotFoundError):
        store.mutate("missing", lambda current: current)


def test_updated_at_refreshes_on_write(store):
    issue = store.create(make_issue())
    before = store.find_by_id(issue.id).updated_at
    updated = store.update_fields(issue.id, {"title": "Pothole widened"})
    assert updated.updated_at >= before


def test_find_filters(store):
    store.create(make_issue(title="Pothole", status="pending"))
    store.create(make_issue(title="Garbage pile", category="Waste Management", status="assigned",
                            assigned_to=AssignedTo(department="Sanitation", official="off-1")))
    store.create(make_issue(title="Dark street", category="Street Lighting", reported_by="citizen-9"))

    assert store.find(IssueQuery(category="Waste Management")).total == 1
    assert store.find(IssueQuery(status="pending")).total == 2
    assert store.find(IssueQuery(official="off-1")).items[0].title == "Garbage pile"
    assert store.find(IssueQuery(reported_by="citizen-9")).items[0].title == "Dark street"
    assert store.find(IssueQuery(priority="urgent")).total == 0


def test_search_is_case_insensitive_across_fields(store):
    store.create(make_issue(title="Pothole", location=make_location(address="Near CITY MARKET")))
    store.create(make_issue(title="Flooded underpass", description="Water logging after every rain shower"))

    assert store.find(IssueQuery(search="city market")).total == 1
    assert store.find(IssueQuery(search="LOGGING")).total == 1
    assert store.find(IssueQuery(search="roads & infra")).total == 2
    assert store.find(IssueQuery(search="volcano")).total == 0


def test_date_range_is_inclusive(store):
    old = store.create(make_issue(title="Old"))
    store.update_fields(old.id, {"created_at": utcnow() - timedelta(days=10)})
    store.create(make_issue(title="New"))

    recent = store.find(IssueQuery(date_from=utcnow() - timedelta(days=1)))
    assert [issue.title for issue in recent.items] == ["New"]

    older = store.find(IssueQuery(date_to=utcnow() - timedelta(days=5)))
    assert [issue.title for issue in older.items] == ["Old"]


def test_proximity_filter(store):
    store.create(make_issue(title="Close", location=make_location(lat=offset_north(1000))))
    store.create(make_issue(title="Far", location=make_location(lat=offset_north(8000))))

    page = store.find(IssueQuery(near=GeoFilter(BASE_LNG, BASE_LAT, 5000)))
    assert [issue.title for issue in page.items] == ["Close"]


def test_sort_by_votes_and_priority(store):
    store.create(make_issue(title="One", voters=["a"]))
    store.create(make_issue(title="Three", voters=["a", "b", "c"]))
    store.create(make_issue(title="None"))

    by_votes = store.find(IssueQuery(sort_by="votes", sort_order="desc")).items
    assert [issue.title for issue in by_votes] == ["Three", "One", "None"]

    store.create(make_issue(title="Urgent", priority="urgent"))
    by_priority = store.find(IssueQuery(sort_by="priority", sort_order="desc")).items
    assert by_priority[0].title == "Urgent"


def test_sort_by_distance(store):
    store.create(make_issue(title="Far", location=make_location(lat=offset_north(3000))))
    store.create(make_issue(title="Near", location=make_location(lat=offset_north(300))))

    query = IssueQuery(near=GeoFilter(BASE_LNG, BASE_LAT, 5000), sort_by="distance", sort_order="asc")
    assert [issue.title for issue in store.find(query).items] == ["Near", "Far"]


def test_unknown_sort_field_falls_back_to_created_at(store):
    first = store.create(make_issue(title="First"))
    store.update_fields(first.id, {"created_at": utcnow() - timedelta(hours=1)})
    store.create(make_issue(title="Second"))
    items = store.find(IssueQuery(sort_by="__class__")).items
    assert [issue.title for issue in items] == ["Second", "First"]


def test_pagination(store):
    for n in range(25):
        store.create(make_issue(title=f"Issue {n}"))

    page = store.find(IssueQuery(page=2, limit=10))
    assert page.total == 25
    assert len(page.items) == 10

    last = store.find(IssueQuery(page=3, limit=10))
    assert len(last.items) == 5


def test_find_near_orders_by_distance(store):
    far = store.create(make_issue(title="Far", location=make_location(lat=offset_north(90))))
    near = store.create(make_issue(title="Near", location=make_location(lat=offset_north(30))))
    store.create(make_issue(title="Other category", category="Water Supply"))
    store.create(make_issue(title="Duplicate", merged_into=near.id))

    results = store.find_near(BASE_LNG, BASE_LAT, 100, category="Roads & Infrastructure")
    assert [issue.id for issue, _ in results] == [near.id, far.id]
    assert results[0][1] == pytest.approx(30, abs=1)


def test_chat_store_pages_newest_first(chat_store):
    for text in ("first", "second", "third"):
        chat_store.add_message(ChatMessage(issue_id="issue-1", author_id="citizen-1", message=text))
    chat_store.add_message(ChatMessage(issue_id="issue-2", author_id="citizen-1", message="elsewhere"))

    page, total = chat_store.list_messages("issue-1", 0, 2)
    assert total == 3
    assert [m.message for m in page] == ["third", "second"]

    page, _ = chat_store.list_messages("issue-1", 2, 2)
    assert [m.message for m in page] == ["first"]


def test_firestore_errors_are_translated():
    with pytest.raises(NotFoundError):
        with _firestore_errors("fetch issue", "abc"):
            raise google_exceptions.NotFound("missing")

    with pytest.raises(PersistenceFailure) as exc_info:
        with _firestore_errors("list issues"):
            raise google_exceptions.ServiceUnavailable("backend down")
    assert isinstance(exc_info.value.cause, google_exceptions.ServiceUnavailable)

    with pytest.raises(NotFoundError):
        with _firestore_errors("fetch issue"):
            raise NotFoundError("already typed")
