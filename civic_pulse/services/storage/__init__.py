"""
Storage package - persistence for issues and chat messages.

Backends:
- firestore_store: Firestore collections (production)
- memory_store: in-process dicts (USE_MOCK_DB=true)
"""

from civic_pulse.services.storage.base import ChatStore, GeoFilter, IssuePage, IssueQuery, IssueStore
from civic_pulse.services.storage.resolver import get_chat_store, get_issue_store, reset_storage

__all__ = [
    "ChatStore",
    "GeoFilter",
    "IssuePage",
    "IssueQuery",
    "IssueStore",
    "get_chat_store",
    "get_issue_store",
    "reset_storage",
]
