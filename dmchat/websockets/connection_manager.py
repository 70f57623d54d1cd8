# dmchat/websockets/connection_manager.py
import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Set

from fastapi import HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel

from dmchat.database import SessionLocal
from dmchat.schemas.events import PresenceEvent, SystemEvent
from dmchat.services.auth_service import AuthService

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Live sockets per user. One user may hold several sockets (tabs,
    devices); every one of them receives that user's events.

    Created at application startup and closed at shutdown; it is passed to
    whoever needs it rather than imported as a global.
    """

    def __init__(self):
        self.connections: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket):
        async with self._lock:
            self.connections[user_id].add(websocket)
        logger.info(f"User {user_id} connected ({len(self.connections[user_id])} socket(s))")

    async def disconnect(self, user_id: str, websocket: WebSocket) -> bool:
        """Forget a socket. Returns True when the user has no sockets left."""
        async with self._lock:
            sockets = self.connections.get(user_id)
            if sockets is None:
                return False
            sockets.discard(websocket)
            if sockets:
                return False
            del self.connections[user_id]
        logger.info(f"User {user_id} disconnected")
        return True

    def get_connections(self, user_id: str) -> List[WebSocket]:
        return list(self.connections.get(user_id, ()))

    def is_online(self, user_id: str) -> bool:
        return bool(self.connections.get(user_id))

    def online_users(self) -> List[str]:
        return sorted(user_id for user_id, sockets in self.connections.items() if sockets)

    async def send_event(self, websocket: WebSocket, event: BaseModel):
        await websocket.send_text(event.model_dump_json())

    async def broadcast(self, event: BaseModel):
        """Send to every connected socket; failures only drop that socket."""
        for user_id, sockets in list(self.connections.items()):
            for websocket in list(sockets):
                try:
                    await self.send_event(websocket, event)
                except Exception as e:
                    logger.warning(f"Broadcast to user {user_id} failed: {str(e)}")
                    await self.disconnect(user_id, websocket)

    async def close_all(self):
        async with self._lock:
            sockets = [ws for user_sockets in self.connections.values() for ws in user_sockets]
            self.connections.clear()
        for websocket in sockets:
            try:
                await websocket.close(code=status.WS_1001_GOING_AWAY)
            except Exception as e:
                logger.debug(f"Socket already closed during shutdown: {str(e)}")
        logger.info(f"Closed {len(sockets)} socket(s)")


async def _handle_ping(manager: ConnectionManager, websocket: WebSocket, frame: Dict[str, Any]):
    await manager.send_event(websocket, SystemEvent(type="pong"))


# Frames a client may send; everything else is answered with an error event
CLIENT_HANDLERS: Dict[str, Callable[..., Awaitable[None]]] = {
    "ping": _handle_ping,
}


def authenticate(access_token: str) -> str:
    """Resolve the user id behind a token, raising HTTPException if invalid."""
    db = SessionLocal()
    try:
        return AuthService(db).get_user_from_token(access_token).id
    finally:
        db.close()


async def handle_connection(websocket: WebSocket, access_token: str, manager: ConnectionManager):
    try:
        user_id = authenticate(access_token)
    except HTTPException as e:
        logger.warning(f"Rejected WebSocket connection: {e.detail}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        await websocket.accept()
    except Exception as e:
        logger.error(f"Failed to accept WebSocket connection: {str(e)}")
        return

    await manager.connect(user_id, websocket)
    await manager.broadcast(PresenceEvent(user_ids=manager.online_users()))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await manager.send_event(websocket, SystemEvent(type="error", content="Invalid JSON format"))
                continue

            event_type = frame.get("type") if isinstance(frame, dict) else None
            handler = CLIENT_HANDLERS.get(event_type)
            if handler is None:
                logger.warning(f"No handler registered for event type: {event_type}")
                await manager.send_event(
                    websocket,
                    SystemEvent(type="error", content=f"Unknown event type: {event_type}")
                )
                continue
            await handler(manager, websocket, frame)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: user {user_id}")
    finally:
        if await manager.disconnect(user_id, websocket):
            await manager.broadcast(PresenceEvent(user_ids=manager.online_users()))
