"""
In-process issue and chat stores.

Selected with USE_MOCK_DB=true (local development and tests). Documents are
kept as plain dicts and re-validated on every read, so callers never hold a
reference into the store. A single re-entrant lock stands in for Firestore
transactions and ArrayUnion.
"""

import itertools
import logging
import threading
import uuid
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from civic_pulse.core.enums import enum_value
from civic_pulse.core.errors import NotFoundError
from civic_pulse.models.chat import ChatMessage
from civic_pulse.models.issue import Issue
from civic_pulse.utils.geo import covering_cells, haversine_meters
from civic_pulse.utils.timeutils import parse_timestamp, utcnow

from civic_pulse.services.storage.base import ChatStore, IssuePage, IssueQuery, IssueStore, geo_cell_for, select_page, sort_issues, matches

logger = logging.getLogger(__name__)


class MemoryIssueStore(IssueStore):
    """Dict-backed issue store with a grid-cell spatial index."""

    def __init__(self, cell_degrees: float = 0.05):
        self.cell_degrees = cell_degrees
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._cells: Dict[str, Set[str]] = defaultdict(set)
        self._lock = threading.RLock()

    def _load(self, issue_id: str) -> Issue:
        doc = self._docs.get(issue_id)
        if doc is None:
            raise NotFoundError(f"Issue {issue_id} not found")
        return Issue.model_validate(doc)

    def _write(self, issue: Issue) -> Issue:
        issue.updated_at = utcnow()
        previous = self._docs.get(issue.id)
        if previous is not None:
            self._cells[previous["geo_cell"]].discard(issue.id)
        doc = issue.model_dump()
        doc["geo_cell"] = geo_cell_for(issue, self.cell_degrees)
        self._docs[issue.id] = doc
        self._cells[doc["geo_cell"]].add(issue.id)
        return Issue.model_validate(doc)

    def _all(self) -> List[Issue]:
        return [Issue.model_validate(doc) for doc in self._docs.values()]

    def create(self, issue: Issue) -> Issue:
        with self._lock:
            issue = issue.model_copy(deep=True)
            issue.id = uuid.uuid4().hex
            now = utcnow()
            issue.created_at = now
            saved = self._write(issue)
            logger.info(f"[STORE] Created issue {saved.id}")
            return saved

    def find_by_id(self, issue_id: str) -> Issue:
        with self._lock:
            return self._load(issue_id)

    def find(self, query: IssueQuery) -> IssuePage:
        with self._lock:
            return select_page(self._candidates(query), query)

    def find_all(self, query: IssueQuery) -> List[Issue]:
        with self._lock:
            return sort_issues([issue for issue in self._candidates(query) if matches(issue, query)], query)

    def _candidates(self, query: IssueQuery) -> List[Issue]:
        if query.near is None:
            return self._all()
        cells = covering_cells(
            query.near.longitude, query.near.latitude, query.near.radius_meters, self.cell_degrees
        )
        if cells is None:
            return self._all()
        ids = set()
        for cell in cells:
            ids.update(self._cells.get(cell, ()))
        return [Issue.model_validate(self._docs[issue_id]) for issue_id in ids]

    def save(self, issue: Issue) -> Issue:
        if not issue.id:
            raise NotFoundError("Issue has no id")
        with self._lock:
            if issue.id not in self._docs:
                raise NotFoundError(f"Issue {issue.id} not found")
            return self._write(issue.model_copy(deep=True))

    def update_fields(self, issue_id: str, fields: Dict[str, Any]) -> Issue:
        with self._lock:
            doc = self._load(issue_id).model_dump()
            doc.update(fields)
            return self._write(Issue.model_validate(doc))

    def add_to_sets(
        self,
        issue_id: str,
        reporters: Sequence[str] = (),
        duplicates: Sequence[str] = (),
    ) -> Issue:
        with self._lock:
            issue = self._load(issue_id)
            issue.reporters = issue.reporters + [r for r in reporters if r not in issue.reporters]
            issue.duplicates = issue.duplicates + [d for d in duplicates if d not in issue.duplicates]
            return self._write(issue)

    def toggle_voter(self, issue_id: str, user_id: str) -> Tuple[Issue, bool]:
        with self._lock:
            issue = self._load(issue_id)
            if user_id in issue.voters:
                issue.voters = [v for v in issue.voters if v != user_id]
                voted = False
            else:
                issue.voters = issue.voters + [user_id]
                voted = True
            issue.votes = len(issue.voters)
            return self._write(issue), voted

    def mutate(self, issue_id: str, fn: Callable[[Issue], Issue]) -> Issue:
        with self._lock:
            issue = self._load(issue_id)
            return self._write(fn(issue))

    def find_near(
        self,
        longitude: float,
        latitude: float,
        radius_meters: float,
        category: Optional[str] = None,
        canonical_only: bool = True,
    ) -> List[Tuple[Issue, float]]:
        with self._lock:
            cells = covering_cells(longitude, latitude, radius_meters, self.cell_degrees)
            if cells is None:
                ids = list(self._docs.keys())
            else:
                ids = set()
                for cell in cells:
                    ids.update(self._cells.get(cell, ()))

            category = enum_value(category)
            results = []
            for issue_id in ids:
                doc = self._docs[issue_id]
                if category and doc["category"] != category:
                    continue
                if canonical_only and doc.get("merged_into"):
                    continue
                lng, lat = doc["location"]["coordinates"]
                distance = haversine_meters(latitude, longitude, lat, lng)
                if distance <= radius_meters:
                    results.append((Issue.model_validate(doc), distance))

            results.sort(key=lambda pair: (pair[1], parse_timestamp(pair[0].created_at)))
            return results


class MemoryChatStore(ChatStore):

    def __init__(self):
        self._messages: Dict[str, List[Tuple[int, Dict[str, Any]]]] = defaultdict(list)
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def add_message(self, message: ChatMessage) -> ChatMessage:
        with self._lock:
            message = message.model_copy(update={"id": uuid.uuid4().hex})
            self._messages[message.issue_id].append((next(self._sequence), message.model_dump()))
            return message

    def list_messages(self, issue_id: str, offset: int, limit: int) -> Tuple[List[ChatMessage], int]:
        with self._lock:
            entries = self._messages.get(issue_id, [])
            newest_first = sorted(
                entries,
                key=lambda entry: (parse_timestamp(entry[1]["created_at"]), entry[0]),
                reverse=True,
            )
            page = [ChatMessage.model_validate(doc) for _, doc in newest_first[offset:offset + limit]]
            return page, len(entries)
