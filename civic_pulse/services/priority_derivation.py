"""
Priority Derivation Service - system-derived priority tiers for issues.

DESIGN PRINCIPLES:
- Priority is recomputed after merges, vote changes and on the aging refresh
- Every signal proposes a tier; the highest tier wins
- A human-pinned floor is never undercut by automation
- priority_auto=False freezes the current tier entirely
- Reasons are explanatory metadata, replaced on each recomputation

Signals (in reason order):
1. Category baseline (shorter base resolution time = more urgent)
2. Priority suggested by the reporter
3. Engagement: votes + reporters - 1
4. Aging: days open without reaching a terminal status
5. Manual floor set by a government user
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from civic_pulse.core.enums import (
    CATEGORY_BASE_HOURS,
    DEFAULT_BASE_HOURS,
    PRIORITY_BY_RANK,
    PRIORITY_MULTIPLIERS,
    PRIORITY_RANK,
    TERMINAL_STATUSES,
    IssuePriority,
    enum_value,
)
from civic_pulse.core.errors import ValidationFailure
from civic_pulse.core.settings import settings
from civic_pulse.models.issue import Issue
from civic_pulse.services.storage import IssueQuery, IssueStore, get_issue_store
from civic_pulse.utils.security import Actor, require_government
from civic_pulse.utils.timeutils import parse_timestamp, round_half_up, utcnow

logger = logging.getLogger(__name__)


@dataclass
class PriorityDecision:
    priority: str
    reasons: List[str] = field(default_factory=list)


def base_hours_for(category: Optional[str]) -> int:
    return CATEGORY_BASE_HOURS.get(enum_value(category), DEFAULT_BASE_HOURS)


def estimate_resolution_hours(category: Optional[str], priority: Optional[str]) -> int:
    """
    round(base hours for category * priority multiplier), rounding half up.

    Unknown categories use 48h; unknown priorities use the medium multiplier.
    """
    multiplier = PRIORITY_MULTIPLIERS.get(enum_value(priority), 1)
    return round_half_up(base_hours_for(category) * multiplier)


def category_baseline(category: Optional[str]) -> str:
    hours = base_hours_for(category)
    if hours <= 12:
        return IssuePriority.HIGH.value
    if hours <= 24:
        return IssuePriority.MEDIUM.value
    return IssuePriority.LOW.value


def parse_priority(value) -> str:
    priority = (enum_value(value) or "").strip().lower()
    if priority not in PRIORITY_RANK:
        raise ValidationFailure(f"Invalid priority '{value}'. Expected one of: {', '.join(PRIORITY_RANK)}")
    return priority


class PriorityDerivationService:
    """
    Derives an issue's priority tier and the reasons behind it.
    """

    def __init__(self, store: Optional[IssueStore] = None):
        self._store = store
        self.engagement_thresholds = [
            (settings.ENGAGEMENT_URGENT_THRESHOLD, IssuePriority.URGENT.value),
            (settings.ENGAGEMENT_HIGH_THRESHOLD, IssuePriority.HIGH.value),
            (settings.ENGAGEMENT_MEDIUM_THRESHOLD, IssuePriority.MEDIUM.value),
        ]
        self.aging_days = settings.AGING_ESCALATION_DAYS

    @property
    def store(self) -> IssueStore:
        return self._store or get_issue_store()

    def engagement_tier(self, issue: Issue) -> str:
        engagement = issue.votes + len(issue.reporters) - 1
        for threshold, tier in self.engagement_thresholds:
            if engagement >= threshold:
                return tier
        return IssuePriority.LOW.value

    def aging_tier(self, issue: Issue, now: datetime) -> Optional[str]:
        """Tier reached by age alone. Capped at high; None for terminal issues."""
        if issue.status in TERMINAL_STATUSES or self.aging_days <= 0:
            return None
        age_days = (now - parse_timestamp(issue.created_at)).total_seconds() / 86400
        steps = int(math.floor(age_days / self.aging_days))
        if steps <= 0:
            return None
        return PRIORITY_BY_RANK[min(steps, PRIORITY_RANK[IssuePriority.HIGH.value])]

    def derive(self, issue: Issue, now: Optional[datetime] = None) -> PriorityDecision:
        """
        Compute the tier for an issue without persisting anything.

        Returns the current priority with no reasons when priority_auto is off.
        """
        if not issue.priority_auto:
            return PriorityDecision(priority=issue.priority, reasons=[])

        now = now or utcnow()
        candidates = []

        baseline = category_baseline(issue.category)
        candidates.append((baseline, f"category baseline: {issue.category} ({base_hours_for(issue.category)}h)"))

        if issue.reported_priority:
            candidates.append((issue.reported_priority, f"reported as {issue.reported_priority}"))

        engagement = self.engagement_tier(issue)
        if PRIORITY_RANK[engagement] > 0:
            candidates.append((
                engagement,
                f"high engagement: {len(issue.reporters)} reporters, {issue.votes} votes",
            ))

        aging = self.aging_tier(issue, now)
        if aging:
            days = int((now - parse_timestamp(issue.created_at)).total_seconds() // 86400)
            candidates.append((aging, f"aging: {days} days unresolved"))

        if issue.priority_floor:
            candidates.append((issue.priority_floor, f"manual floor: {issue.priority_floor}"))

        priority = max((tier for tier, _ in candidates), key=lambda tier: PRIORITY_RANK[tier])
        reasons = [reason for tier, reason in candidates if PRIORITY_RANK[tier] > 0 or tier == priority]
        return PriorityDecision(priority=priority, reasons=reasons)

    def apply(self, issue: Issue, now: Optional[datetime] = None) -> Issue:
        """Write a fresh decision onto the issue (no-op when priority_auto is off)."""
        if not issue.priority_auto:
            return issue
        decision = self.derive(issue, now)
        if decision.priority != issue.priority:
            logger.info(f"[PRIORITY] Issue {issue.id}: {issue.priority} -> {decision.priority}")
        issue.priority = decision.priority
        issue.priority_reasons = decision.reasons
        return issue

    def rederive(self, issue_id: str) -> Issue:
        """Recompute and persist the priority of a stored issue."""
        return self.store.mutate(issue_id, self.apply)

    def set_manual_priority(self, issue_id: str, priority: str, actor: Actor, lock: bool = True) -> Issue:
        """
        Government override.

        The chosen tier becomes the floor. With lock=True automation is
        switched off; otherwise automation may still raise the tier.
        """
        require_government(actor, "change priority")
        priority = parse_priority(priority)

        issue = self.store.find_by_id(issue_id)
        target_id = issue.merged_into or issue.id

        def _pin(current: Issue) -> Issue:
            current.priority_floor = priority
            current.priority_auto = not lock
            if lock:
                current.priority = priority
                current.priority_reasons = [f"set manually by {actor.user_id}"]
                return current
            return self.apply(current)

        updated = self.store.mutate(target_id, _pin)
        logger.info(f"[PRIORITY] Issue {target_id} pinned to {priority} by {actor.user_id} (lock={lock})")
        return updated

    def refresh_priorities(self, actor: Actor, now: Optional[datetime] = None) -> int:
        """
        Re-derive every open canonical issue (the aging hook).

        Returns the number of issues whose tier changed.
        """
        require_government(actor, "refresh priorities")
        now = now or utcnow()
        changed = 0
        for issue in self.store.find_all(IssueQuery()):
            if issue.status in TERMINAL_STATUSES or not issue.priority_auto:
                continue
            decision = self.derive(issue, now)
            if decision.priority == issue.priority and decision.reasons == issue.priority_reasons:
                continue
            self.store.mutate(issue.id, lambda current: self.apply(current, now))
            if decision.priority != issue.priority:
                changed += 1
        logger.info(f"[PRIORITY] Refresh complete: {changed} issues changed tier")
        return changed


# Global service instance
_priority_service = None


def get_priority_service() -> PriorityDerivationService:
    """Get or create PriorityDerivationService singleton."""
    global _priority_service
    if _priority_service is None:
        _priority_service = PriorityDerivationService()
    return _priority_service
