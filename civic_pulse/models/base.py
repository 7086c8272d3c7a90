"""
Shared response envelopes.
"""

from math import ceil
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class BaseResponse(BaseModel):
    """
    Base response model for API responses.
    All API responses extend this for consistency.
    """
    success: bool = True
    message: Optional[str] = None
    data: Any = None


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        return cls(total=total, page=page, limit=limit, total_pages=ceil(total / limit) if limit else 0)


class PaginatedResponse(BaseResponse):
    data: List[Any] = Field(default_factory=list)
    total_count: int = 0
    current_page: int = 1
    total_pages: int = 0
    limit: int = 10

