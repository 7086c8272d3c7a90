"""
Issue endpoints - reporting, listing, voting and the government workflow.

Routes only translate HTTP to service calls; CivicPulseError subclasses
raised by services are rendered by the handlers registered in main.py.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import ValidationError

from civic_pulse.core.errors import ValidationFailure
from civic_pulse.models.base import BaseResponse, PaginatedResponse
from civic_pulse.models.issue import (
    AssignRequest,
    IssueCreateRequest,
    IssueDraft,
    PriorityUpdateRequest,
    StatusUpdateRequest,
)
from civic_pulse.services.analytics_service import get_analytics_service
from civic_pulse.services.issue_service import get_issue_service
from civic_pulse.services.storage import IssuePage
from civic_pulse.utils.location_parser import parse_location
from civic_pulse.utils.query_parsing import build_issue_query
from civic_pulse.utils.security import Actor, get_current_actor, get_optional_actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/issues", tags=["Issues"])


def _page_response(page: IssuePage, page_number: int, limit: int) -> PaginatedResponse:
    total_pages = (page.total + limit - 1) // limit if limit else 0
    return PaginatedResponse(
        data=[issue.model_dump(mode="json") for issue in page.items],
        total_count=page.total,
        current_page=page_number,
        total_pages=total_pages,
        limit=limit,
    )


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid input")


@router.get("", response_model=PaginatedResponse)
def list_issues(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    assigned_to: Optional[str] = Query(None),
    reported_by: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    location: Optional[str] = Query(None, description="lng,lat[,radiusMeters]"),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
):
    """
    List canonical issues with filters, search, proximity and pagination.

    Merged duplicates never appear here.
    """
    query = build_issue_query(
        page=page,
        limit=limit,
        status=status_filter,
        category=category,
        priority=priority,
        official=assigned_to,
        reported_by=reported_by,
        search=search,
        location=location,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    result = get_issue_service().list_issues(query)
    return _page_response(result, query.page, query.limit)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=BaseResponse)
def report_issue(body: IssueCreateRequest, actor: Actor = Depends(get_current_actor)):
    """
    Report a new issue.

    A report close to an open issue of the same category is merged into it;
    the response then carries the existing issue with merged=true.
    """
    logger.info(f"POST /api/issues - category={body.category}, reporter={actor.user_id}")

    location = parse_location(body.location, body.model_extra)
    try:
        draft = IssueDraft(
            title=body.title,
            description=body.description,
            category=body.category,
            location=location,
            images=body.images,
            voice_note=body.voice_note,
            priority=(body.priority or "").strip().lower() or None,
            reported_by=actor.user_id,
        )
    except ValidationError as e:
        raise ValidationFailure(_validation_message(e))

    result = get_issue_service().report_issue(draft)
    data = result.issue.model_dump(mode="json")
    data["merged"] = result.merged
    data["duplicate_id"] = result.duplicate.id if result.duplicate else None
    message = "Report merged into an existing issue" if result.merged else "Issue reported successfully"
    return BaseResponse(message=message, data=data)


@router.get("/statistics", response_model=BaseResponse)
def issue_statistics(
    time_range: Optional[str] = Query("30d"),
    department: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
):
    stats = get_analytics_service().get_statistics(time_range=time_range, department=department, category=category)
    return BaseResponse(data=stats)


@router.get("/user/me", response_model=PaginatedResponse)
def my_issues(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    sort_by: Optional[str] = Query(None),
    sort_order: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
):
    """Issues reported by the caller, including reports merged into other issues."""
    query = build_issue_query(
        page=page,
        limit=limit,
        status=status_filter,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    result = get_issue_service().list_user_issues(actor, query)
    return _page_response(result, query.page, query.limit)


@router.post("/priority/refresh", response_model=BaseResponse)
def refresh_priorities(actor: Actor = Depends(get_current_actor)):
    """Re-derive priorities for all open issues (aging escalation)."""
    changed = get_issue_service().refresh_priorities(actor)
    return BaseResponse(message="Priorities refreshed", data={"changed": changed})


@router.get("/{issue_id}", response_model=BaseResponse)
def get_issue(issue_id: str, viewer: Optional[Actor] = Depends(get_optional_actor)):
    issue = get_issue_service().get_issue(issue_id, viewer)
    return BaseResponse(data=issue.model_dump(mode="json"))


@router.put("/{issue_id}/assign", response_model=BaseResponse)
def assign_issue(issue_id: str, body: AssignRequest, actor: Actor = Depends(get_current_actor)):
    issue = get_issue_service().assign_issue(
        issue_id,
        department=body.department,
        official=body.official_id,
        actor=actor,
        comment=body.comment,
    )
    return BaseResponse(message="Issue assigned successfully", data=issue.model_dump(mode="json"))


@router.put("/{issue_id}/status", response_model=BaseResponse)
def update_issue_status(issue_id: str, body: StatusUpdateRequest, actor: Actor = Depends(get_current_actor)):
    issue = get_issue_service().update_status(
        issue_id,
        body.status,
        actor,
        comment=body.comment,
        resolution=body.resolution_details,
    )
    return BaseResponse(message="Issue status updated successfully", data=issue.model_dump(mode="json"))


@router.put("/{issue_id}/priority", response_model=BaseResponse)
def update_issue_priority(issue_id: str, body: PriorityUpdateRequest, actor: Actor = Depends(get_current_actor)):
    issue = get_issue_service().set_priority(issue_id, body.priority, actor, lock=body.lock)
    return BaseResponse(message="Issue priority updated successfully", data=issue.model_dump(mode="json"))


@router.post("/{issue_id}/vote", response_model=BaseResponse)
def vote_on_issue(issue_id: str, actor: Actor = Depends(get_current_actor)):
    """Toggle the caller's vote. Voting twice removes the vote."""
    result = get_issue_service().toggle_vote(issue_id, actor)
    return BaseResponse(
        message="Vote added" if result.has_voted else "Vote removed",
        data=result.model_dump(),
    )
