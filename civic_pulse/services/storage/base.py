"""
Storage contracts for issues and chat messages.

Both backends (Firestore and the in-process store) implement these
interfaces and share the filtering, sorting and pagination rules below,
so listing behaves the same whichever backend is active.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from civic_pulse.core.enums import PRIORITY_RANK, enum_value
from civic_pulse.models.chat import ChatMessage
from civic_pulse.models.issue import Issue
from civic_pulse.utils.geo import cell_key, haversine_meters
from civic_pulse.utils.timeutils import parse_timestamp

SORTABLE_FIELDS = (
    "created_at",
    "updated_at",
    "votes",
    "priority",
    "status",
    "category",
    "title",
    "estimated_resolution_time",
    "distance",
)
DEFAULT_SORT_FIELD = "created_at"


@dataclass
class GeoFilter:
    longitude: float
    latitude: float
    radius_meters: float


@dataclass
class IssueQuery:
    """
    Filter, sort and page parameters for issue listings.

    Equality filters are skipped when None. Date bounds are inclusive.
    Duplicates are hidden unless include_duplicates is set.
    """
    status: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    official: Optional[str] = None
    department: Optional[str] = None
    reported_by: Optional[str] = None
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    near: Optional[GeoFilter] = None
    include_duplicates: bool = False
    sort_by: str = DEFAULT_SORT_FIELD
    sort_order: str = "desc"
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class IssuePage:
    items: List[Issue] = field(default_factory=list)
    total: int = 0


def issue_distance(issue: Issue, geo: GeoFilter) -> float:
    return haversine_meters(geo.latitude, geo.longitude, issue.location.latitude, issue.location.longitude)


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


def matches(issue: Issue, query: IssueQuery) -> bool:
    """Whether an issue passes every filter in the query."""
    if not query.include_duplicates and not issue.is_canonical:
        return False
    if query.status and issue.status != enum_value(query.status):
        return False
    if query.category and issue.category != enum_value(query.category):
        return False
    if query.priority and issue.priority != enum_value(query.priority):
        return False
    if query.reported_by and issue.reported_by != query.reported_by:
        return False
    if query.official and (issue.assigned_to is None or issue.assigned_to.official != query.official):
        return False
    if query.department and (issue.assigned_to is None or issue.assigned_to.department != query.department):
        return False

    created_at = parse_timestamp(issue.created_at)
    if query.date_from and created_at < query.date_from:
        return False
    if query.date_to and created_at > query.date_to:
        return False

    if query.search:
        needle = query.search.lower()
        if not (
            _contains(issue.title, needle)
            or _contains(issue.description, needle)
            or _contains(issue.location.address, needle)
            or _contains(issue.category, needle)
        ):
            return False

    if query.near and issue_distance(issue, query.near) > query.near.radius_meters:
        return False

    return True


def _sort_key(sort_by: str, query: IssueQuery) -> Callable[[Issue], Any]:
    if sort_by == "priority":
        return lambda issue: PRIORITY_RANK.get(issue.priority, 0)
    if sort_by == "distance":
        return lambda issue: issue_distance(issue, query.near)
    if sort_by in ("created_at", "updated_at"):
        return lambda issue: parse_timestamp(getattr(issue, sort_by))
    if sort_by in ("title", "status", "category"):
        return lambda issue: (getattr(issue, sort_by) or "").lower()
    return lambda issue: getattr(issue, sort_by)


def sort_issues(issues: Iterable[Issue], query: IssueQuery) -> List[Issue]:
    sort_by = query.sort_by if query.sort_by in SORTABLE_FIELDS else DEFAULT_SORT_FIELD
    if sort_by == "distance" and query.near is None:
        sort_by = DEFAULT_SORT_FIELD
    reverse = query.sort_order != "asc"
    # Stable secondary order by creation time then id
    ordered = sorted(issues, key=lambda issue: (parse_timestamp(issue.created_at), issue.id or ""), reverse=reverse)
    return sorted(ordered, key=_sort_key(sort_by, query), reverse=reverse)


def select_page(issues: Iterable[Issue], query: IssueQuery) -> IssuePage:
    """Filter, sort and slice a candidate set."""
    matched = [issue for issue in issues if matches(issue, query)]
    ordered = sort_issues(matched, query)
    return IssuePage(items=ordered[query.offset:query.offset + query.limit], total=len(ordered))


def geo_cell_for(issue: Issue, cell_degrees: float) -> str:
    return cell_key(issue.location.longitude, issue.location.latitude, cell_degrees)


class IssueStore(ABC):
    """Persistent issue collection with a spatial index over location."""

    @abstractmethod
    def create(self, issue: Issue) -> Issue:
        """Assign an id, stamp timestamps and persist."""

    @abstractmethod
    def find_by_id(self, issue_id: str) -> Issue:
        """Raises NotFoundError when missing."""

    @abstractmethod
    def find(self, query: IssueQuery) -> IssuePage:
        pass

    @abstractmethod
    def find_all(self, query: IssueQuery) -> List[Issue]:
        """Every matching issue, sorted, without pagination."""

    @abstractmethod
    def save(self, issue: Issue) -> Issue:
        """Replace the stored document (last write wins)."""

    @abstractmethod
    def update_fields(self, issue_id: str, fields: Dict[str, Any]) -> Issue:
        pass

    @abstractmethod
    def add_to_sets(
        self,
        issue_id: str,
        reporters: Sequence[str] = (),
        duplicates: Sequence[str] = (),
    ) -> Issue:
        """Atomic set-union into reporters and duplicates."""

    @abstractmethod
    def toggle_voter(self, issue_id: str, user_id: str) -> Tuple[Issue, bool]:
        """Atomically add or remove a voter. Returns (issue, voted_now)."""

    @abstractmethod
    def mutate(self, issue_id: str, fn: Callable[[Issue], Issue]) -> Issue:
        """Transactional read-modify-write."""

    @abstractmethod
    def find_near(
        self,
        longitude: float,
        latitude: float,
        radius_meters: float,
        category: Optional[str] = None,
        canonical_only: bool = True,
    ) -> List[Tuple[Issue, float]]:
        """(issue, distance_m) pairs within the radius, nearest first."""

    def ping(self) -> bool:
        return True


class ChatStore(ABC):
    """Append-only chat messages keyed by canonical issue id."""

    @abstractmethod
    def add_message(self, message: ChatMessage) -> ChatMessage:
        pass

    @abstractmethod
    def list_messages(self, issue_id: str, offset: int, limit: int) -> Tuple[List[ChatMessage], int]:
        """Newest-first slice and the total count for the issue."""
