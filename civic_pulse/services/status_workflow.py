"""
Status Workflow Engine - issue status and assignment state machine.

DESIGN PRINCIPLES:
- Every transition appends exactly one status_history entry
- Every transition appends exactly one reporter notification
- History and notifications are append-only
- Reaching "resolved" records resolution time and details
- Transitions are pure: callers persist the returned issue in one write

Lifecycle:
pending → acknowledged → assigned → in-progress → resolved
with rejected / closed reachable from any open state.

By default any status may follow any other. With
STRICT_STATUS_TRANSITIONS=true the forward graph below is enforced.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from civic_pulse.core.enums import IssueStatus, NotificationType, enum_value
from civic_pulse.core.errors import ValidationFailure
from civic_pulse.core.settings import settings
from civic_pulse.models.issue import (
    AssignedTo,
    Issue,
    Notification,
    ResolutionDetails,
    ResolutionInput,
    StatusHistoryEntry,
)
from civic_pulse.utils.timeutils import hours_between, round_half_up, utcnow

logger = logging.getLogger(__name__)

REPORTED_COMMENT = "Issue reported by citizen"
REPORTED_NOTIFICATION = "Your issue has been successfully reported and is under review"
RESOLVED_NOTIFICATION = "Your issue has been resolved! Thank you for reporting."


class StatusWorkflowEngine:
    """
    Rules for which status may follow which.

    Only consulted when STRICT_STATUS_TRANSITIONS is enabled.
    """

    ALLOWED_TRANSITIONS: Dict[str, List[str]] = {
        IssueStatus.PENDING.value: [
            IssueStatus.ACKNOWLEDGED.value,
            IssueStatus.REJECTED.value,
            IssueStatus.CLOSED.value,
        ],
        IssueStatus.ACKNOWLEDGED.value: [
            IssueStatus.ASSIGNED.value,
            IssueStatus.REJECTED.value,
            IssueStatus.CLOSED.value,
        ],
        IssueStatus.ASSIGNED.value: [
            IssueStatus.IN_PROGRESS.value,
            IssueStatus.REJECTED.value,
            IssueStatus.CLOSED.value,
        ],
        IssueStatus.IN_PROGRESS.value: [
            IssueStatus.RESOLVED.value,
            IssueStatus.REJECTED.value,
            IssueStatus.CLOSED.value,
        ],
        IssueStatus.RESOLVED.value: [],  # Terminal: reopening is not modeled
        IssueStatus.REJECTED.value: [],
        IssueStatus.CLOSED.value: [],
    }

    @classmethod
    def is_valid_transition(cls, from_status: str, to_status: str) -> bool:
        # Same status is always valid (re-confirmation)
        if from_status == to_status:
            return True
        return to_status in cls.ALLOWED_TRANSITIONS.get(from_status, [])

    @classmethod
    def get_allowed_transitions(cls, current_status: str) -> List[str]:
        return list(cls.ALLOWED_TRANSITIONS.get(current_status, []))


def parse_status(value) -> str:
    """Normalize a status value, raising ValidationFailure when it is unknown."""
    status = (enum_value(value) or "").strip().lower()
    try:
        return IssueStatus(status).value
    except ValueError:
        allowed = ", ".join(s.value for s in IssueStatus)
        raise ValidationFailure(f"Invalid status '{value}'. Expected one of: {allowed}")


def seed_history(issue: Issue, now: Optional[datetime] = None) -> Issue:
    """Initial pending history entry and reporter notification for a new record."""
    now = now or utcnow()
    issue.status = IssueStatus.PENDING.value
    issue.status_history = [
        StatusHistoryEntry(
            status=IssueStatus.PENDING,
            updated_by=issue.reported_by,
            comment=REPORTED_COMMENT,
            timestamp=now,
        )
    ]
    issue.notifications = [
        Notification(
            message=REPORTED_NOTIFICATION,
            type=NotificationType.STATUS_CHANGE,
            timestamp=now,
        )
    ]
    return issue


def transition(
    issue: Issue,
    new_status,
    actor: str,
    comment: Optional[str] = None,
    resolution: Optional[ResolutionInput] = None,
    now: Optional[datetime] = None,
    strict: Optional[bool] = None,
) -> Issue:
    """
    Move an issue to a new status.

    Appends one history entry and one notification. Entering "resolved"
    from another status sets actual_resolution_time and resolution_details;
    a repeated "resolved" keeps the originals.

    Raises:
        ValidationFailure: unknown status, or a disallowed move in strict mode
    """
    new_status = parse_status(new_status)
    old_status = issue.status
    strict = settings.STRICT_STATUS_TRANSITIONS if strict is None else strict

    if strict and not StatusWorkflowEngine.is_valid_transition(old_status, new_status):
        allowed = StatusWorkflowEngine.get_allowed_transitions(old_status)
        raise ValidationFailure(
            f"Invalid status transition from {old_status} to {new_status}. "
            f"Allowed transitions: {allowed or 'none (terminal state)'}"
        )

    now = now or utcnow()
    updated = issue.model_copy(deep=True)
    updated.status = new_status
    updated.status_history.append(
        StatusHistoryEntry(
            status=new_status,
            updated_by=actor,
            comment=comment or f"Status changed from {old_status} to {new_status}",
            timestamp=now,
        )
    )

    if new_status == IssueStatus.RESOLVED.value:
        if old_status != IssueStatus.RESOLVED.value or updated.resolution_details is None:
            resolution = resolution or ResolutionInput()
            updated.actual_resolution_time = round_half_up(hours_between(updated.created_at, now))
            updated.resolution_details = ResolutionDetails(
                resolved_by=actor,
                resolution_date=now,
                resolution_description=resolution.description or "Issue has been resolved",
                resolution_images=list(resolution.images or []),
            )
        message, kind = RESOLVED_NOTIFICATION, NotificationType.RESOLUTION
    else:
        message, kind = f"Your issue status has been updated to: {new_status}", NotificationType.STATUS_CHANGE

    updated.notifications.append(Notification(message=message, type=kind, timestamp=now))
    logger.info(f"[WORKFLOW] Issue {issue.id}: {old_status} -> {new_status} by {actor}")
    return updated


def assign(
    issue: Issue,
    department: str,
    official: Optional[str],
    actor: str,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Issue:
    """
    Assign an issue to a department (and optionally an official).

    Always sets status to "assigned", regardless of the transition graph.
    """
    department = (department or "").strip()
    if not department:
        raise ValidationFailure("Department is required")
    official = (official or "").strip() or None

    now = now or utcnow()
    updated = issue.model_copy(deep=True)
    updated.assigned_to = AssignedTo(department=department, official=official)
    updated.status = IssueStatus.ASSIGNED.value

    default_comment = f"Issue assigned to {department} department"
    if official:
        default_comment += " and specific official"
    updated.status_history.append(
        StatusHistoryEntry(
            status=IssueStatus.ASSIGNED,
            updated_by=actor,
            comment=comment or default_comment,
            timestamp=now,
        )
    )
    updated.notifications.append(
        Notification(
            message=f"Your issue has been assigned to the {department} department",
            type=NotificationType.ASSIGNMENT,
            timestamp=now,
        )
    )
    logger.info(f"[WORKFLOW] Issue {issue.id} assigned to {department} by {actor}")
    return updated
