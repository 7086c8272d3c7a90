from datetime import timedelta

import pytest

from civic_pulse.core.errors import PermissionDenied, ValidationFailure
from civic_pulse.services.priority_derivation import (
    PriorityDerivationService,
    category_baseline,
    estimate_resolution_hours,
)
from civic_pulse.utils.timeutils import utcnow

from conftest import make_issue


@pytest.fixture
def service(store):
    return PriorityDerivationService(store=store)


def test_estimate_resolution_hours():
    assert estimate_resolution_hours("Public Safety", "urgent") == 3
    assert estimate_resolution_hours("Roads & Infrastructure", "low") == 108
    assert estimate_resolution_hours("Waste Management", "high") == 12
    assert estimate_resolution_hours("Water Supply", "medium") == 48


def test_estimate_resolution_hours_unknown_category_uses_48():
    assert estimate_resolution_hours("Graffiti", "medium") == 48
    assert estimate_resolution_hours(None, "low") == 72


def test_category_baseline():
    assert category_baseline("Public Safety") == "high"
    assert category_baseline("Waste Management") == "medium"
    assert category_baseline("Roads & Infrastructure") == "low"
    assert category_baseline("Graffiti") == "low"


def test_fresh_issue_gets_category_baseline(service):
    decision = service.derive(make_issue())
    assert decision.priority == "low"
    assert decision.reasons == ["category baseline: Roads & Infrastructure (72h)"]


def test_engagement_escalates(service):
    issue = make_issue(voters=[f"voter-{i}" for i in range(10)])
    decision = service.derive(issue)
    assert decision.priority == "high"
    assert decision.reasons == ["high engagement: 1 reporters, 10 votes"]


def test_engagement_counts_extra_reporters(service):
    issue = make_issue(reporters=["citizen-1", "a", "b", "c", "d", "e"])
    decision = service.derive(issue)
    assert decision.priority == "medium"
    assert "high engagement: 6 reporters, 0 votes" in decision.reasons


def test_engagement_urgent_tier(service):
    issue = make_issue(voters=[f"voter-{i}" for i in range(25)])
    assert service.derive(issue).priority == "urgent"


def test_aging_escalates_open_issues(service):
    now = utcnow()
    issue = make_issue(created_at=now - timedelta(days=8))
    decision = service.derive(issue, now)
    assert decision.priority == "medium"
    assert decision.reasons == ["aging: 8 days unresolved"]

    assert service.derive(make_issue(created_at=now - timedelta(days=15)), now).priority == "high"
    # Aging alone never reaches urgent
    assert service.derive(make_issue(created_at=now - timedelta(days=100)), now).priority == "high"


def test_aging_ignores_terminal_issues(service):
    now = utcnow()
    issue = make_issue(created_at=now - timedelta(days=30), status="resolved")
    assert service.derive(issue, now).priority == "low"


def test_reported_priority_and_floor(service):
    assert service.derive(make_issue(reported_priority="urgent")).priority == "urgent"

    decision = service.derive(make_issue(priority_floor="high"))
    assert decision.priority == "high"
    assert decision.reasons == ["manual floor: high"]


def test_reasons_follow_signal_order(service):
    now = utcnow()
    issue = make_issue(
        category="Public Safety",
        reported_priority="medium",
        voters=[f"voter-{i}" for i in range(5)],
        created_at=now - timedelta(days=7, hours=1),
    )
    decision = service.derive(issue, now)
    assert decision.priority == "high"
    assert decision.reasons == [
        "category baseline: Public Safety (12h)",
        "reported as medium",
        "high engagement: 1 reporters, 5 votes",
        "aging: 7 days unresolved",
    ]


def test_derive_is_noop_when_auto_disabled(service):
    issue = make_issue(priority="medium", priority_auto=False, voters=[f"v{i}" for i in range(30)])
    decision = service.derive(issue)
    assert decision.priority == "medium"
    assert decision.reasons == []


def test_manual_priority_requires_government(service, store, citizen):
    issue = store.create(make_issue())
    with pytest.raises(PermissionDenied):
        service.set_manual_priority(issue.id, "urgent", citizen)
    assert store.find_by_id(issue.id).priority == "low"


def test_manual_priority_lock(service, store, official):
    issue = store.create(make_issue())
    updated = service.set_manual_priority(issue.id, "urgent", official, lock=True)
    assert updated.priority == "urgent"
    assert updated.priority_floor == "urgent"
    assert updated.priority_auto is False

    # Locked issues are not touched by automation
    assert service.rederive(issue.id).priority == "urgent"


def test_manual_priority_without_lock_keeps_automation(service, store, official):
    issue = store.create(make_issue(voters=[f"v{i}" for i in range(10)]))
    updated = service.set_manual_priority(issue.id, "medium", official, lock=False)
    assert updated.priority_auto is True
    assert updated.priority_floor == "medium"
    # Engagement still wins over the lower floor
    assert updated.priority == "high"


def test_manual_priority_rejects_unknown_tier(service, store, official):
    issue = store.create(make_issue())
    with pytest.raises(ValidationFailure):
        service.set_manual_priority(issue.id, "critical", official)


def test_manual_priority_on_duplicate_targets_canonical(service, store, official):
    canonical = store.create(make_issue())
    duplicate = store.create(make_issue(reported_by="citizen-2", merged_into=canonical.id))
    service.set_manual_priority(duplicate.id, "high", official)
    assert store.find_by_id(canonical.id).priority == "high"
    assert store.find_by_id(duplicate.id).priority == "low"


def test_refresh_priorities_applies_aging(service, store, official, citizen, days_ago):
    stale = store.create(make_issue())
    store.update_fields(stale.id, {"created_at": days_ago(8)})
    fresh = store.create(make_issue(title="Another pothole on MG Road"))

    with pytest.raises(PermissionDenied):
        service.refresh_priorities(citizen)

    assert service.refresh_priorities(official) == 1
    assert store.find_by_id(stale.id).priority == "medium"
    assert store.find_by_id(fresh.id).priority == "low"
