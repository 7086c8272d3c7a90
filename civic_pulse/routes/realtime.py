"""
WebSocket endpoint for real-time issue events.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from civic_pulse.services.realtime import manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws")
async def issue_events(
    websocket: WebSocket,
    user_id: Optional[str] = Query(None),
    role: str = Query("citizen"),
):
    """
    Push newIssue, issueAssigned, issueStatusUpdated and issueChatMessage
    events to the client. Incoming text is ignored apart from "ping".
    """
    await manager.connect(websocket, user_id=user_id, user_role=role)
    try:
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        manager.disconnect(websocket)
