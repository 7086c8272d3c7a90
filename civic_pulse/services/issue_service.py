"""
Issue Service - orchestrates reporting, listing, voting and workflow.

Mutations addressed to a merged duplicate are applied to its canonical
issue. Permission and input checks run before any write; real-time events
are published after the write commits.
"""

import logging
from typing import Optional

from civic_pulse.core.errors import ValidationFailure
from civic_pulse.models.issue import Issue, IssueDraft, ResolutionInput, VoteResult
from civic_pulse.services import realtime
from civic_pulse.services.duplicate_clustering import ClusterResult, DuplicateClusteringService
from civic_pulse.services.geocoding import enrich_location
from civic_pulse.services.priority_derivation import PriorityDerivationService
from civic_pulse.services.status_workflow import assign, parse_status, transition
from civic_pulse.services.storage import IssuePage, IssueQuery, IssueStore, get_issue_store
from civic_pulse.utils.security import Actor, require_government

logger = logging.getLogger(__name__)


class IssueService:

    def __init__(
        self,
        store: Optional[IssueStore] = None,
        publisher: Optional[realtime.EventPublisher] = None,
    ):
        self._store = store
        self._publisher = publisher
        self.priority = PriorityDerivationService(store=store)
        self.clustering = DuplicateClusteringService(store=store, priority_service=self.priority)

    @property
    def store(self) -> IssueStore:
        return self._store or get_issue_store()

    @property
    def publisher(self) -> realtime.EventPublisher:
        return self._publisher or realtime.get_publisher()

    def canonical_id(self, issue_id: str) -> str:
        issue = self.store.find_by_id(issue_id)
        return issue.merged_into or issue.id

    def report_issue(self, draft: IssueDraft) -> ClusterResult:
        """
        Create a new issue from a validated draft, merging it into a nearby
        open issue of the same category when one exists.
        """
        if not draft.reported_by:
            raise ValidationFailure("reported_by is required")

        draft = draft.model_copy(update={"location": enrich_location(draft.location)})
        result = self.clustering.resolve_or_create(draft)

        if result.merged:
            message = f"New report merged into issue: {result.issue.title}"
        else:
            message = f"New issue reported: {result.issue.title}"
        self.publisher.publish(
            realtime.NEW_ISSUE,
            issue_id=result.issue.id,
            user_id=draft.reported_by,
            message=message,
            data={
                "category": result.issue.category,
                "priority": result.issue.priority,
                "merged": result.merged,
                "duplicate_id": result.duplicate.id if result.duplicate else None,
                "coordinates": result.issue.location.coordinates,
            },
        )
        return result

    def list_issues(self, query: IssueQuery) -> IssuePage:
        return self.store.find(query)

    def list_user_issues(self, actor: Actor, query: IssueQuery) -> IssuePage:
        """Issues the actor reported, including their reports merged into other issues."""
        query.reported_by = actor.user_id
        query.include_duplicates = True
        return self.store.find(query)

    def get_issue(self, issue_id: str, viewer: Optional[Actor] = None) -> Issue:
        """
        Fetch one issue. When the reporter views it, their notifications are marked read.
        """
        issue = self.store.find_by_id(issue_id)
        if viewer is not None and viewer.user_id == issue.reported_by:
            if any(not notification.read for notification in issue.notifications):
                def _mark_read(current: Issue) -> Issue:
                    for notification in current.notifications:
                        notification.read = True
                    return current

                issue = self.store.mutate(issue.id, _mark_read)
        return issue

    def toggle_vote(self, issue_id: str, actor: Actor) -> VoteResult:
        """Add the actor's vote, or remove it when already present."""
        target_id = self.canonical_id(issue_id)
        issue, voted = self.store.toggle_voter(target_id, actor.user_id)
        issue = self.priority.rederive(issue.id)
        logger.info(f"Vote {'added' if voted else 'removed'} on {target_id} by {actor.user_id} (votes={issue.votes})")
        return VoteResult(issue_id=issue.id, votes=issue.votes, has_voted=voted)

    def update_status(
        self,
        issue_id: str,
        new_status: str,
        actor: Actor,
        comment: Optional[str] = None,
        resolution: Optional[ResolutionInput] = None,
    ) -> Issue:
        require_government(actor, "update issue status")
        new_status = parse_status(new_status)

        target_id = self.canonical_id(issue_id)
        # Status changes never re-derive priority
        updated = self.store.mutate(
            target_id,
            lambda current: transition(current, new_status, actor.user_id, comment=comment, resolution=resolution),
        )

        self.publisher.publish(
            realtime.ISSUE_STATUS_UPDATED,
            issue_id=updated.id,
            user_id=updated.reported_by,
            message=f"Issue status updated to {updated.status}",
            data={"status": updated.status, "updated_by": actor.user_id},
        )
        return updated

    def assign_issue(
        self,
        issue_id: str,
        department: str,
        official: Optional[str],
        actor: Actor,
        comment: Optional[str] = None,
    ) -> Issue:
        require_government(actor, "assign issues")
        if not department or not department.strip():
            raise ValidationFailure("Department is required")

        target_id = self.canonical_id(issue_id)
        updated = self.store.mutate(
            target_id,
            lambda current: assign(current, department, official, actor.user_id, comment=comment),
        )

        self.publisher.publish(
            realtime.ISSUE_ASSIGNED,
            issue_id=updated.id,
            user_id=updated.reported_by,
            message=f"Issue assigned to {updated.assigned_to.department} department",
            data={
                "department": updated.assigned_to.department,
                "official": updated.assigned_to.official,
                "assigned_by": actor.user_id,
            },
        )
        return updated

    def set_priority(self, issue_id: str, priority: str, actor: Actor, lock: bool = True) -> Issue:
        return self.priority.set_manual_priority(issue_id, priority, actor, lock=lock)

    def refresh_priorities(self, actor: Actor) -> int:
        return self.priority.refresh_priorities(actor)


# Global service instance
_issue_service = None


def get_issue_service() -> IssueService:
    """Get or create IssueService singleton."""
    global _issue_service
    if _issue_service is None:
        _issue_service = IssueService()
    return _issue_service
