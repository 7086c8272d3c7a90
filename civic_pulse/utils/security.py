"""
Request actor resolution.

Authentication happens upstream (gateway / auth service); this API trusts
the identity headers it forwards:
- X-User-ID: opaque user identifier
- X-User-Role: "citizen" (default) or "government"
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status

from civic_pulse.core.enums import UserRole
from civic_pulse.core.errors import PermissionDenied

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str = UserRole.CITIZEN.value

    @property
    def is_government(self) -> bool:
        return self.role == UserRole.GOVERNMENT.value


def _resolve_role(raw_role: Optional[str]) -> str:
    role = (raw_role or "").strip().lower()
    if role == UserRole.GOVERNMENT.value:
        return UserRole.GOVERNMENT.value
    if role and role != UserRole.CITIZEN.value:
        logger.info(f"Unknown X-User-Role '{raw_role}', treating as citizen")
    return UserRole.CITIZEN.value


def require_government(actor: Actor, action: str = "perform this action") -> None:
    if not actor.is_government:
        raise PermissionDenied(f"Only government users can {action}")


def get_optional_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Optional[Actor]:
    """FastAPI dependency: the calling actor, or None for anonymous requests."""
    if not x_user_id or not x_user_id.strip():
        return None
    return Actor(user_id=x_user_id.strip(), role=_resolve_role(x_user_role))


def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    """FastAPI dependency: the calling actor. Answers 401 when X-User-ID is missing."""
    actor = get_optional_actor(x_user_id, x_user_role)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return actor
