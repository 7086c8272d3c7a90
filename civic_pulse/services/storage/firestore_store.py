"""
Firestore-backed issue and chat stores.

Collections:
- issues: one document per issue (canonical or duplicate), plus a derived
  `geo_cell` field used as the spatial index
- issue_chats: one document per chat message

Equality filters and the geo_cell "in" filter are pushed to Firestore;
search, date range, distance and sorting run in Python over the candidates
so no composite indexes are required.
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

from civic_pulse.config.firebase import get_db
from civic_pulse.core.enums import enum_value
from civic_pulse.core.errors import CivicPulseError, NotFoundError, PersistenceFailure
from civic_pulse.models.chat import ChatMessage
from civic_pulse.models.issue import Issue
from civic_pulse.utils.firestore_helpers import where_filter
from civic_pulse.utils.geo import covering_cells, haversine_meters
from civic_pulse.utils.timeutils import parse_timestamp, utcnow

from civic_pulse.services.storage.base import (
    ChatStore,
    IssuePage,
    IssueQuery,
    IssueStore,
    geo_cell_for,
    matches,
    select_page,
    sort_issues,
)

logger = logging.getLogger(__name__)

ISSUES_COLLECTION = "issues"
CHATS_COLLECTION = "issue_chats"


@contextmanager
def _firestore_errors(operation: str, issue_id: Optional[str] = None):
    """Translate google.api_core failures into domain errors."""
    try:
        yield
    except CivicPulseError:
        raise
    except google_exceptions.NotFound:
        raise NotFoundError(f"Issue {issue_id} not found" if issue_id else "Document not found")
    except Exception as e:
        logger.error(f"[STORE] Firestore {operation} failed: {e}", exc_info=True)
        raise PersistenceFailure(f"Failed to {operation}", cause=e)


def _to_document(issue: Issue, cell_degrees: float) -> Dict[str, Any]:
    data = issue.model_dump(exclude={"id"})
    data["geo_cell"] = geo_cell_for(issue, cell_degrees)
    return data


def _from_snapshot(snapshot) -> Issue:
    data = snapshot.to_dict() or {}
    data["id"] = snapshot.id
    return Issue.model_validate(data)


class FirestoreIssueStore(IssueStore):

    def __init__(self, db=None, cell_degrees: float = 0.05):
        self.db = db or get_db()
        self.cell_degrees = cell_degrees
        self.collection = self.db.collection(ISSUES_COLLECTION)

    def _snapshot(self, issue_id: str, transaction=None):
        snapshot = self.collection.document(issue_id).get(transaction=transaction)
        if not snapshot.exists:
            raise NotFoundError(f"Issue {issue_id} not found")
        return snapshot

    def create(self, issue: Issue) -> Issue:
        with _firestore_errors("create issue"):
            doc_ref = self.collection.document()
            issue = issue.model_copy(deep=True)
            issue.id = doc_ref.id
            now = utcnow()
            issue.created_at = now
            issue.updated_at = now
            doc_ref.set(_to_document(issue, self.cell_degrees))
            logger.info(f"[STORE] Created issue {issue.id}")
            return issue

    def find_by_id(self, issue_id: str) -> Issue:
        with _firestore_errors("fetch issue", issue_id):
            return _from_snapshot(self._snapshot(issue_id))

    def _candidates(self, query: IssueQuery) -> List[Issue]:
        firestore_query = self.collection
        if query.status:
            firestore_query = where_filter(firestore_query, "status", "==", enum_value(query.status))
        if query.category:
            firestore_query = where_filter(firestore_query, "category", "==", enum_value(query.category))
        if query.priority:
            firestore_query = where_filter(firestore_query, "priority", "==", enum_value(query.priority))
        if query.reported_by:
            firestore_query = where_filter(firestore_query, "reported_by", "==", query.reported_by)
        if not query.include_duplicates:
            firestore_query = where_filter(firestore_query, "merged_into", "==", None)
        if query.near is not None:
            cells = covering_cells(
                query.near.longitude, query.near.latitude, query.near.radius_meters, self.cell_degrees
            )
            if cells:
                firestore_query = where_filter(firestore_query, "geo_cell", "in", cells)
            else:
                logger.info("[STORE] Search radius too wide for the cell index, scanning")
        return [_from_snapshot(doc) for doc in firestore_query.stream()]

    def find(self, query: IssueQuery) -> IssuePage:
        with _firestore_errors("list issues"):
            return select_page(self._candidates(query), query)

    def find_all(self, query: IssueQuery) -> List[Issue]:
        with _firestore_errors("list issues"):
            return sort_issues([issue for issue in self._candidates(query) if matches(issue, query)], query)

    def save(self, issue: Issue) -> Issue:
        if not issue.id:
            raise NotFoundError("Issue has no id")
        with _firestore_errors("save issue", issue.id):
            issue = issue.model_copy(deep=True)
            issue.updated_at = utcnow()
            self.collection.document(issue.id).set(_to_document(issue, self.cell_degrees))
            return issue

    def update_fields(self, issue_id: str, fields: Dict[str, Any]) -> Issue:
        with _firestore_errors("update issue", issue_id):
            payload = dict(fields)
            payload["updated_at"] = firestore.SERVER_TIMESTAMP
            self.collection.document(issue_id).update(payload)
            return _from_snapshot(self._snapshot(issue_id))

    def add_to_sets(
        self,
        issue_id: str,
        reporters: Sequence[str] = (),
        duplicates: Sequence[str] = (),
    ) -> Issue:
        payload: Dict[str, Any] = {"updated_at": firestore.SERVER_TIMESTAMP}
        if reporters:
            payload["reporters"] = firestore.ArrayUnion(list(reporters))
        if duplicates:
            payload["duplicates"] = firestore.ArrayUnion(list(duplicates))
        with _firestore_errors("merge into issue", issue_id):
            self.collection.document(issue_id).update(payload)
            return _from_snapshot(self._snapshot(issue_id))

    def toggle_voter(self, issue_id: str, user_id: str) -> Tuple[Issue, bool]:
        doc_ref = self.collection.document(issue_id)

        @firestore.transactional
        def _toggle(transaction):
            snapshot = self._snapshot(issue_id, transaction=transaction)
            data = snapshot.to_dict()
            voters = list(data.get("voters") or [])
            if user_id in voters:
                voters.remove(user_id)
                voted = False
            else:
                voters.append(user_id)
                voted = True
            changes = {"voters": voters, "votes": len(voters), "updated_at": utcnow()}
            transaction.update(doc_ref, changes)
            data.update(changes)
            data["id"] = issue_id
            return Issue.model_validate(data), voted

        with _firestore_errors("toggle vote", issue_id):
            return _toggle(self.db.transaction())

    def mutate(self, issue_id: str, fn: Callable[[Issue], Issue]) -> Issue:
        doc_ref = self.collection.document(issue_id)

        @firestore.transactional
        def _apply(transaction):
            issue = _from_snapshot(self._snapshot(issue_id, transaction=transaction))
            updated = fn(issue)
            updated.updated_at = utcnow()
            transaction.set(doc_ref, _to_document(updated, self.cell_degrees))
            return updated

        with _firestore_errors("update issue", issue_id):
            return _apply(self.db.transaction())

    def find_near(
        self,
        longitude: float,
        latitude: float,
        radius_meters: float,
        category: Optional[str] = None,
        canonical_only: bool = True,
    ) -> List[Tuple[Issue, float]]:
        with _firestore_errors("search nearby issues"):
            firestore_query = self.collection
            if category:
                firestore_query = where_filter(firestore_query, "category", "==", enum_value(category))
            if canonical_only:
                firestore_query = where_filter(firestore_query, "merged_into", "==", None)
            cells = covering_cells(longitude, latitude, radius_meters, self.cell_degrees)
            if cells:
                firestore_query = where_filter(firestore_query, "geo_cell", "in", cells)

            results = []
            for doc in firestore_query.stream():
                issue = _from_snapshot(doc)
                distance = haversine_meters(latitude, longitude, issue.location.latitude, issue.location.longitude)
                if distance <= radius_meters:
                    results.append((issue, distance))

            results.sort(key=lambda pair: (pair[1], parse_timestamp(pair[0].created_at)))
            return results

    def ping(self) -> bool:
        with _firestore_errors("reach Firestore"):
            list(self.collection.limit(1).stream())
            return True


class FirestoreChatStore(ChatStore):

    def __init__(self, db=None):
        self.db = db or get_db()
        self.collection = self.db.collection(CHATS_COLLECTION)

    def add_message(self, message: ChatMessage) -> ChatMessage:
        with _firestore_errors("save chat message"):
            doc_ref = self.collection.document()
            message = message.model_copy(update={"id": doc_ref.id})
            doc_ref.set(message.model_dump(exclude={"id"}))
            return message

    def list_messages(self, issue_id: str, offset: int, limit: int) -> Tuple[List[ChatMessage], int]:
        with _firestore_errors("load chat messages"):
            messages = []
            for doc in where_filter(self.collection, "issue_id", "==", issue_id).stream():
                data = doc.to_dict() or {}
                data["id"] = doc.id
                messages.append(ChatMessage.model_validate(data))
            messages.sort(key=lambda m: parse_timestamp(m.created_at), reverse=True)
            return messages[offset:offset + limit], len(messages)
