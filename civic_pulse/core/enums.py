"""
Shared enumerations and lookup tables for the issue domain.

Every component (validation, clustering, priority, workflow, statistics)
reads categories, statuses and priority tiers from here.
"""

from enum import Enum
from typing import Dict, FrozenSet, Union


class IssueCategory(str, Enum):
    ROADS = "Roads & Infrastructure"
    WASTE = "Waste Management"
    ELECTRICITY = "Electricity"
    WATER = "Water Supply"
    SEWAGE = "Sewage & Drainage"
    TRAFFIC = "Traffic & Transportation"
    PUBLIC_SAFETY = "Public Safety"
    PARKS = "Parks & Recreation"
    STREET_LIGHTING = "Street Lighting"
    NOISE = "Noise Pollution"
    OTHER = "Other"


class IssueStatus(str, Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    CLOSED = "closed"


class IssuePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationType(str, Enum):
    STATUS_CHANGE = "status_change"
    ASSIGNMENT = "assignment"
    COMMENT = "comment"
    RESOLUTION = "resolution"


class UserRole(str, Enum):
    CITIZEN = "citizen"
    GOVERNMENT = "government"


# Base hours-to-resolve per category. Shorter means more urgent.
CATEGORY_BASE_HOURS: Dict[str, int] = {
    IssueCategory.ROADS.value: 72,
    IssueCategory.WASTE.value: 24,
    IssueCategory.ELECTRICITY.value: 48,
    IssueCategory.WATER.value: 48,
    IssueCategory.SEWAGE.value: 48,
    IssueCategory.TRAFFIC.value: 24,
    IssueCategory.PUBLIC_SAFETY.value: 12,
    IssueCategory.PARKS.value: 72,
    IssueCategory.STREET_LIGHTING.value: 24,
    IssueCategory.NOISE.value: 48,
    IssueCategory.OTHER.value: 48,
}
DEFAULT_BASE_HOURS = 48

PRIORITY_MULTIPLIERS: Dict[str, float] = {
    IssuePriority.URGENT.value: 0.25,
    IssuePriority.HIGH.value: 0.5,
    IssuePriority.MEDIUM.value: 1,
    IssuePriority.LOW.value: 1.5,
}

# Ordering of priority tiers, lowest first
PRIORITY_RANK: Dict[str, int] = {
    IssuePriority.LOW.value: 0,
    IssuePriority.MEDIUM.value: 1,
    IssuePriority.HIGH.value: 2,
    IssuePriority.URGENT.value: 3,
}
PRIORITY_BY_RANK = {rank: name for name, rank in PRIORITY_RANK.items()}

TERMINAL_STATUSES: FrozenSet[str] = frozenset({
    IssueStatus.RESOLVED.value,
    IssueStatus.REJECTED.value,
    IssueStatus.CLOSED.value,
})


def enum_value(value: Union[Enum, str, None]) -> Union[str, None]:
    """Plain string value of an enum member (or the string itself)."""
    if isinstance(value, Enum):
        return value.value
    return value
