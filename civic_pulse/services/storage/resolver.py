import logging
from typing import Optional

from civic_pulse.core.settings import settings
from civic_pulse.services.storage.base import ChatStore, IssueStore

logger = logging.getLogger(__name__)

_issue_store: Optional[IssueStore] = None
_chat_store: Optional[ChatStore] = None


def get_issue_store() -> IssueStore:
    """
    Resolve the active issue store based on settings.

    - USE_MOCK_DB=true: in-process store (development, tests)
    - Otherwise: Firestore
    """
    global _issue_store
    if _issue_store is not None:
        return _issue_store

    if settings.USE_MOCK_DB:
        from civic_pulse.services.storage.memory_store import MemoryIssueStore

        _issue_store = MemoryIssueStore(cell_degrees=settings.GEO_CELL_DEGREES)
        logger.info("Issue store initialized: memory")
    else:
        from civic_pulse.services.storage.firestore_store import FirestoreIssueStore

        _issue_store = FirestoreIssueStore(cell_degrees=settings.GEO_CELL_DEGREES)
        logger.info("Issue store initialized: firestore")
    return _issue_store


def get_chat_store() -> ChatStore:
    global _chat_store
    if _chat_store is not None:
        return _chat_store

    if settings.USE_MOCK_DB:
        from civic_pulse.services.storage.memory_store import MemoryChatStore

        _chat_store = MemoryChatStore()
    else:
        from civic_pulse.services.storage.firestore_store import FirestoreChatStore

        _chat_store = FirestoreChatStore()
    return _chat_store


def reset_storage() -> None:
    """Drop the cached stores so the next call builds fresh ones."""
    global _issue_store, _chat_store
    _issue_store = None
    _chat_store = None
