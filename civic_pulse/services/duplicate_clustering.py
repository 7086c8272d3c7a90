"""
Duplicate Clustering Service - fold repeat reports into one canonical issue.

DESIGN PRINCIPLES:
- A report near an open issue of the same category joins that issue
- The nearest qualifying canonical issue wins
- The duplicate is still persisted (merged_into set) so it stays addressable
- Merging adds the reporter, never a vote
- Reporter and duplicate sets grow through atomic set-union only
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from civic_pulse.core.settings import settings
from civic_pulse.models.issue import Issue, IssueDraft
from civic_pulse.services.priority_derivation import (
    PriorityDerivationService,
    estimate_resolution_hours,
    get_priority_service,
)
from civic_pulse.services.status_workflow import seed_history
from civic_pulse.services.storage import IssueStore, get_issue_store
from civic_pulse.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ClusterResult:
    """
    issue: the canonical issue the report now belongs to
    merged: True when the report joined an existing issue
    duplicate: the persisted duplicate record (merges only)
    """
    issue: Issue
    merged: bool = False
    duplicate: Optional[Issue] = None


def text_similarity(text1: str, text2: str) -> float:
    """
    Simple text similarity using word overlap.

    Returns similarity score between 0.0 and 1.0.
    """
    if not text1 or not text2:
        return 0.0

    words1 = set(text1.lower().split())
    words2 = set(text2.lower().split())

    if not words1 or not words2:
        return 0.0

    return len(words1 & words2) / len(words1 | words2)


class DuplicateClusteringService:

    def __init__(
        self,
        store: Optional[IssueStore] = None,
        priority_service: Optional[PriorityDerivationService] = None,
    ):
        self._store = store
        self._priority_service = priority_service
        self.radius_meters = settings.DUPLICATE_RADIUS_METERS
        self.similarity_threshold = settings.DUPLICATE_TEXT_SIMILARITY_THRESHOLD
        self.excluded_statuses = {status.lower() for status in settings.CLUSTER_EXCLUDED_STATUSES}

    @property
    def store(self) -> IssueStore:
        return self._store or get_issue_store()

    @property
    def priority_service(self) -> PriorityDerivationService:
        if self._priority_service is None:
            self._priority_service = PriorityDerivationService(store=self._store) if self._store else get_priority_service()
        return self._priority_service

    def find_merge_target(self, draft: IssueDraft) -> Optional[Tuple[Issue, float]]:
        """
        Nearest open canonical issue of the same category within the radius.

        Returns (issue, distance_m) or None.
        """
        candidates = self.store.find_near(
            draft.location.longitude,
            draft.location.latitude,
            self.radius_meters,
            category=draft.category,
            canonical_only=True,
        )

        draft_text = f"{draft.title} {draft.description}"
        for candidate, distance in candidates:
            if candidate.status in self.excluded_statuses:
                continue
            if self.similarity_threshold > 0:
                similarity = text_similarity(draft_text, f"{candidate.title} {candidate.description}")
                if similarity < self.similarity_threshold:
                    logger.debug(
                        f"[CLUSTER] Skipping {candidate.id}: similarity {similarity:.2f} "
                        f"below {self.similarity_threshold}"
                    )
                    continue
            return candidate, distance
        return None

    def _build_record(self, draft: IssueDraft, now: datetime, merged_into: Optional[str] = None) -> Issue:
        issue = Issue(
            title=draft.title,
            description=draft.description,
            category=draft.category,
            location=draft.location,
            images=list(draft.images),
            voice_note=draft.voice_note,
            reported_by=draft.reported_by,
            reporters=[draft.reported_by],
            reported_priority=draft.priority,
            merged_into=merged_into,
            created_at=now,
            updated_at=now,
        )
        decision = self.priority_service.derive(issue, now)
        issue.priority = decision.priority
        issue.priority_reasons = decision.reasons
        issue.estimated_resolution_time = estimate_resolution_hours(issue.category, issue.priority)
        return seed_history(issue, now)

    def resolve_or_create(self, draft: IssueDraft) -> ClusterResult:
        """
        Merge the draft into a nearby open issue, or create a new canonical issue.
        """
        now = utcnow()
        target = self.find_merge_target(draft)

        if target is None:
            created = self.store.create(self._build_record(draft, now))
            logger.info(
                f"[CLUSTER] New canonical issue {created.id} ({created.category}, "
                f"priority={created.priority})"
            )
            return ClusterResult(issue=created, merged=False)

        canonical, distance = target
        duplicate = self.store.create(self._build_record(draft, now, merged_into=canonical.id))
        self.store.add_to_sets(canonical.id, reporters=[draft.reported_by], duplicates=[duplicate.id])
        canonical = self.priority_service.rederive(canonical.id)

        logger.info(
            f"[CLUSTER] Merged report {duplicate.id} into {canonical.id} "
            f"({distance:.1f}m away, {len(canonical.reporters)} reporters)"
        )
        return ClusterResult(issue=canonical, merged=True, duplicate=duplicate)


# Global service instance
_clustering_service = None


def get_clustering_service() -> DuplicateClusteringService:
    """Get or create DuplicateClusteringService singleton."""
    global _clustering_service
    if _clustering_service is None:
        _clustering_service = DuplicateClusteringService()
    return _clustering_service
