from fastapi import Query, WebSocket, WebSocketDisconnect, status
from typing import Dict, List, Optional, Set
from datetime import datetime
from loguru import logger
import json

from holy_travels.auth.utils import verify_token

class InvalidToken(Exception):
    pass

class ConnectionManager:
    """Manager for WebSocket connections and per-user notification delivery"""

    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self.user_subscriptions: Dict[int, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket):
        """Accept new WebSocket connection"""
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        """Remove WebSocket connection and its subscriptions"""
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

        for user_id in list(self.user_subscriptions):
            subscribers = self.user_subscriptions[user_id]
            subscribers.discard(websocket)
            if not subscribers:
                del self.user_subscriptions[user_id]

    async def subscribe_user(self, websocket: WebSocket, user_id: int):
        self.user_subscriptions.setdefault(user_id, set()).add(websocket)
        await self.send_personal_message(websocket, {
            "type": "subscription_confirmed",
            "user_id": user_id,
            "timestamp": datetime.now().isoformat()
        })

    async def send_personal_message(self, websocket: WebSocket, message: dict):
        """Send message to specific WebSocket"""
        try:
            await websocket.send_text(json.dumps(message, default=str))
        except (WebSocketDisconnect, RuntimeError):
            self.disconnect(websocket)

    async def send_to_user(self, user_id: int, message: dict) -> int:
        """Deliver to every socket subscribed for the user; returns how many received it"""
        message_text = json.dumps(message, default=str)
        delivered = 0
        disconnected = []

        for connection in self.user_subscriptions.get(user_id, set()).copy():
            try:
                await connection.send_text(message_text)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError):
                disconnected.append(connection)

        for connection in disconnected:
            self.disconnect(connection)
        return delivered

    async def broadcast(self, message: dict) -> int:
        """Broadcast message to all connected clients"""
        message_text = json.dumps(message, default=str)
        delivered = 0
        disconnected = []

        for connection in list(self.active_connections):
            try:
                await connection.send_text(message_text)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError):
                disconnected.append(connection)

        for connection in disconnected:
            self.disconnect(connection)
        return delivered

# Global connection manager instance
manager = ConnectionManager()

async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = Query(None)):
    """Notification socket.

    A valid bearer token in the ``token`` query parameter subscribes the socket
    to that user's notifications; anonymous sockets only receive broadcasts.
    Clients may send {"type": "ping"} to keep the connection alive.
    """
    user_id = None
    if token:
        try:
            user_id = verify_token(token, InvalidToken())["user_id"]
        except InvalidToken:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await manager.connect(websocket)
    if user_id is not None:
        await manager.subscribe_user(websocket, user_id)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.bind(event="ws_bad_message").debug("Ignoring non-JSON websocket message")
                continue

            if isinstance(message, dict) and message.get("type") == "ping":
                await manager.send_personal_message(websocket, {
                    "type": "pong",
                    "timestamp": datetime.now().isoformat()
                })

    except WebSocketDisconnect:
        manager.disconnect(websocket)
