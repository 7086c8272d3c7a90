"""
Analytics Service - aggregate statistics over canonical issues.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from civic_pulse.core.enums import IssueStatus
from civic_pulse.models.issue import Issue
from civic_pulse.services.storage import IssueQuery, IssueStore, get_issue_store
from civic_pulse.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

TIME_RANGES = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}
DEFAULT_TIME_RANGE = "30d"


def _average(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0


class AnalyticsService:
    """Service for generating issue statistics."""

    def __init__(self, store: Optional[IssueStore] = None):
        self._store = store

    @property
    def store(self) -> IssueStore:
        return self._store or get_issue_store()

    def get_statistics(
        self,
        time_range: Optional[str] = None,
        department: Optional[str] = None,
        category: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict:
        """
        Totals and breakdowns for issues created within the time range.

        Args:
            time_range: 7d, 30d, 90d or 1y (anything else means 30d)
            department: only issues assigned to this department
            category: only issues in this category

        Returns:
            Dict with total, by_status, by_category, by_priority,
            by_department and resolution_time sections
        """
        time_range = time_range if time_range in TIME_RANGES else DEFAULT_TIME_RANGE
        now = now or utcnow()
        query = IssueQuery(
            category=category or None,
            department=department or None,
            date_from=now - TIME_RANGES[time_range],
        )
        issues = self.store.find_all(query)
        logger.info(f"Computing statistics over {len(issues)} issues (range={time_range})")

        return {
            "time_range": time_range,
            "total": self._totals(issues),
            "by_status": self._count_by(issues, "status"),
            "by_category": self._category_breakdown(issues),
            "by_priority": self._count_by(issues, "priority"),
            "by_department": self._department_breakdown(issues),
            "resolution_time": self._resolution_time(issues),
        }

    def _totals(self, issues: List[Issue]) -> Dict:
        votes = [issue.votes for issue in issues]
        return {"total": len(issues), "total_votes": sum(votes), "avg_votes": _average(votes)}

    def _count_by(self, issues: List[Issue], attribute: str) -> List[Dict]:
        counts = defaultdict(int)
        for issue in issues:
            counts[getattr(issue, attribute)] += 1
        return [{attribute: key, "count": count} for key, count in sorted(counts.items(), key=lambda kv: -kv[1])]

    def _category_breakdown(self, issues: List[Issue]) -> List[Dict]:
        votes_by_category = defaultdict(list)
        for issue in issues:
            votes_by_category[issue.category].append(issue.votes)
        breakdown = [
            {"category": category, "count": len(votes), "avg_votes": _average(votes)}
            for category, votes in votes_by_category.items()
        ]
        breakdown.sort(key=lambda entry: entry["count"], reverse=True)
        return breakdown

    def _department_breakdown(self, issues: List[Issue]) -> List[Dict]:
        totals = defaultdict(lambda: {"count": 0, "resolved": 0})
        for issue in issues:
            department = issue.assigned_to.department if issue.assigned_to else None
            totals[department]["count"] += 1
            if issue.status == IssueStatus.RESOLVED.value:
                totals[department]["resolved"] += 1
        return [
            {
                "department": department,
                "count": entry["count"],
                "resolved": entry["resolved"],
                "resolution_rate": round(entry["resolved"] / entry["count"] * 100, 2),
            }
            for department, entry in totals.items()
        ]

    def _resolution_time(self, issues: List[Issue]) -> Dict:
        hours = [
            issue.actual_resolution_time
            for issue in issues
            if issue.status == IssueStatus.RESOLVED.value and issue.actual_resolution_time is not None
        ]
        if not hours:
            return {"avg_resolution_time": 0, "min_resolution_time": 0, "max_resolution_time": 0}
        return {
            "avg_resolution_time": _average(hours),
            "min_resolution_time": min(hours),
            "max_resolution_time": max(hours),
        }


# Global service instance
_analytics_service = None


def get_analytics_service() -> AnalyticsService:
    """Get or create AnalyticsService singleton."""
    global _analytics_service
    if _analytics_service is None:
        _analytics_service = AnalyticsService()
    return _analytics_service
