"""
Chat endpoints - per-issue discussion threads.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from civic_pulse.models.base import BaseResponse
from civic_pulse.models.chat import ChatMessageCreate
from civic_pulse.services.chat_service import get_chat_service
from civic_pulse.utils.security import Actor, get_current_actor

router = APIRouter(prefix="/api/issues", tags=["Chat"])


@router.get("/{issue_id}/chat")
def get_chat_messages(
    issue_id: str,
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
):
    """
    One page of chat messages, oldest to newest.

    Page 1 is the most recent page. Reading a merged duplicate returns
    the canonical issue's thread.
    """
    messages, pagination = get_chat_service().get_messages(issue_id, page=page, limit=limit)
    return {
        "success": True,
        "data": [message.model_dump(mode="json") for message in messages],
        "pagination": pagination,
    }


@router.post("/{issue_id}/chat", status_code=status.HTTP_201_CREATED, response_model=BaseResponse)
def post_chat_message(issue_id: str, body: ChatMessageCreate, actor: Actor = Depends(get_current_actor)):
    message = get_chat_service().post_message(issue_id, actor, body.message)
    return BaseResponse(data=message.model_dump(mode="json"))
