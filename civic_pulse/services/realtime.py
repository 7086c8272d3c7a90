"""
Real-time issue events over WebSockets.

Events:
- newIssue: report created (or merged into an existing issue)
- issueAssigned: issue assigned to a department
- issueStatusUpdated: status transition
- issueChatMessage: chat message posted

Delivery is best effort and at most once. Publishing never raises and
never blocks the mutation that triggered it.
"""

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from fastapi import WebSocket
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

NEW_ISSUE = "newIssue"
ISSUE_ASSIGNED = "issueAssigned"
ISSUE_STATUS_UPDATED = "issueStatusUpdated"
ISSUE_CHAT_MESSAGE = "issueChatMessage"


class RealtimeEvent(BaseModel):
    """Payload pushed to connected clients."""
    event: str
    issue_id: str
    user_id: Optional[str] = None
    message: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Dict[str, Any] = Field(default_factory=dict)


class ConnectionManager:
    """Manages WebSocket connections and broadcasting."""

    def __init__(self):
        self.active_connections: Dict[WebSocket, Dict[str, Any]] = {}

    async def connect(self, websocket: WebSocket, user_id: Optional[str] = None, user_role: str = "citizen"):
        """Accept a WebSocket connection and store user info."""
        await websocket.accept()
        self.active_connections[websocket] = {
            "user_id": user_id,
            "user_role": user_role,
            "connected_at": datetime.now(timezone.utc),
        }
        logger.info(f"WebSocket connected: user_id={user_id}, role={user_role}")

    def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection."""
        user_info = self.active_connections.pop(websocket, None)
        if user_info is not None:
            logger.info(f"WebSocket disconnected: user_id={user_info.get('user_id')}")

    async def broadcast(self, event: RealtimeEvent):
        """Broadcast an event to every connected client."""
        connections = list(self.active_connections.keys())
        if not connections:
            return

        message = event.model_dump_json()
        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_text(message)
            except Exception as e:
                logger.error(f"Error broadcasting to connection: {e}")
                disconnected.append(websocket)

        # Clean up disconnected connections
        for websocket in disconnected:
            self.disconnect(websocket)

        logger.info(f"Broadcasted {event.event} to {len(connections) - len(disconnected)} connections")


class EventPublisher:
    """
    Fire-and-forget bridge from (synchronous) services to WebSocket clients.

    Services run in FastAPI's threadpool, so broadcasts are handed to the
    event loop captured at startup. In-process subscribers receive every
    event synchronously.
    """

    def __init__(self, manager: ConnectionManager):
        self.manager = manager
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscribers: List[Callable[[RealtimeEvent], None]] = []
        self._lock = threading.Lock()
        self._pending: Set[Any] = set()

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop]):
        self._loop = loop

    def _broadcast_done(self, pending):
        with self._lock:
            self._pending.discard(pending)
        if pending.cancelled():
            return
        error = pending.exception()
        if error is not None:
            logger.error(f"Realtime broadcast failed: {error}")

    def subscribe(self, callback: Callable[[RealtimeEvent], None]):
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[RealtimeEvent], None]):
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(
        self,
        event: str,
        issue_id: str,
        user_id: Optional[str] = None,
        message: str = "",
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[RealtimeEvent]:
        try:
            payload = RealtimeEvent(
                event=event,
                issue_id=issue_id,
                user_id=user_id,
                message=message,
                data=data or {},
            )
        except Exception as e:
            logger.warning(f"Dropping malformed {event} event for issue {issue_id}: {e}")
            return None

        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(payload)
            except Exception as e:
                logger.warning(f"Realtime subscriber failed on {event}: {e}")

        loop = self._loop
        if loop is None or loop.is_closed() or not loop.is_running():
            return payload

        try:
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                pending = loop.create_task(self.manager.broadcast(payload))
            else:
                pending = asyncio.run_coroutine_threadsafe(self.manager.broadcast(payload), loop)
            with self._lock:
                self._pending.add(pending)
            pending.add_done_callback(self._broadcast_done)
        except Exception as e:
            logger.warning(f"Failed to schedule {event} broadcast: {e}")
        return payload


# Global connection manager and publisher
manager = ConnectionManager()
publisher = EventPublisher(manager)


def get_publisher() -> EventPublisher:
    return publisher
