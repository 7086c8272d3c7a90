"""
Chat Service - per-issue discussion threads.

Messages always live on the canonical issue: posting to (or reading from)
a merged duplicate goes to the issue it was merged into.
"""

import logging
from typing import Dict, List, Optional, Tuple

from civic_pulse.core.errors import ValidationFailure
from civic_pulse.models.base import Pagination
from civic_pulse.models.chat import ChatMessage
from civic_pulse.services import realtime
from civic_pulse.services.storage import ChatStore, IssueStore, get_chat_store, get_issue_store
from civic_pulse.utils.query_parsing import parse_positive_int
from civic_pulse.utils.security import Actor

logger = logging.getLogger(__name__)

DEFAULT_CHAT_PAGE_SIZE = 20
MAX_MESSAGE_LENGTH = 2000


class ChatService:

    def __init__(
        self,
        issue_store: Optional[IssueStore] = None,
        chat_store: Optional[ChatStore] = None,
        publisher: Optional[realtime.EventPublisher] = None,
    ):
        self._issue_store = issue_store
        self._chat_store = chat_store
        self._publisher = publisher

    @property
    def issue_store(self) -> IssueStore:
        return self._issue_store or get_issue_store()

    @property
    def chat_store(self) -> ChatStore:
        return self._chat_store or get_chat_store()

    @property
    def publisher(self) -> realtime.EventPublisher:
        return self._publisher or realtime.get_publisher()

    def post_message(self, issue_id: str, actor: Actor, message: Optional[str]) -> ChatMessage:
        """
        Post a chat message on an issue (redirected to the canonical issue).

        Raises:
            ValidationFailure: empty or oversized message
            NotFoundError: unknown issue
        """
        text = (message or "").strip()
        if not text:
            raise ValidationFailure("Message required")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationFailure(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

        issue = self.issue_store.find_by_id(issue_id)
        target_id = issue.merged_into or issue.id
        if target_id != issue.id:
            logger.info(f"Chat message for duplicate {issue.id} redirected to {target_id}")

        saved = self.chat_store.add_message(ChatMessage(issue_id=target_id, author_id=actor.user_id, message=text))

        self.publisher.publish(
            realtime.ISSUE_CHAT_MESSAGE,
            issue_id=target_id,
            user_id=actor.user_id,
            message=text,
            data={"message_id": saved.id},
        )
        return saved

    def get_messages(self, issue_id: str, page=1, limit=DEFAULT_CHAT_PAGE_SIZE) -> Tuple[List[ChatMessage], Dict]:
        """
        One page of messages, oldest to newest within the page.

        Page 1 holds the most recent messages.
        """
        page = parse_positive_int(page, 1)
        limit = parse_positive_int(limit, DEFAULT_CHAT_PAGE_SIZE)

        issue = self.issue_store.find_by_id(issue_id)
        target_id = issue.merged_into or issue.id

        newest_first, total = self.chat_store.list_messages(target_id, (page - 1) * limit, limit)
        messages = list(reversed(newest_first))
        return messages, Pagination.build(total, page, limit).model_dump()


# Global service instance
_chat_service = None


def get_chat_service() -> ChatService:
    """Get or create ChatService singleton."""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service
