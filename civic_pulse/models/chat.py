"""
Chat models for per-issue discussion threads.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from civic_pulse.utils.timeutils import utcnow


class ChatMessage(BaseModel):
    """Immutable chat message. issue_id always names a canonical issue."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    issue_id: str
    author_id: str
    message: str
    created_at: datetime = Field(default_factory=utcnow)


class ChatMessageCreate(BaseModel):
    message: Optional[str] = None
