"""
# WebSocket Connection Manager

Real-time delivery for notifications and conversation rooms.

## Model

- **Per-user connections**: a user may be connected from several devices; `send_json_to_user`
  reaches all of them. The notification service uses this to push new notifications.
- **Rooms**: conversation participants join `conversation_{id}`; `broadcast_to_room` delivers
  new-message, typing and read-receipt events to every connection in the room.

```python
manager = ConnectionManager()
await manager.connect("user123", websocket)
manager.join_room(room_name("c42"), websocket)
await manager.broadcast_to_room(room_name("c42"), {"event": "new_message", "data": {...}})
manager.disconnect("user123", websocket)
```

Authentication is done by the endpoint before `connect()` is called. A connection that fails on
send is dropped from the registry.
"""

from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from gym_management.managers.logging_manager import get_logger

logger = get_logger(prefix="[WebSocket]")


def room_name(conversation_id: str) -> str:
    return f"conversation_{conversation_id}"


class ConnectionManager:
    """
    Registry of live WebSocket connections grouped by user and by room.

    Attributes:
        active_connections (`Dict[str, List[WebSocket]]`): user id to that user's open sockets.
        rooms (`Dict[str, Set[WebSocket]]`): room name to the sockets that joined it.
    """

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}
        self.rooms: Dict[str, Set[WebSocket]] = {}

    async def connect(self, user_id: str, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.setdefault(user_id, []).append(websocket)
        logger.info(f"User {user_id} connected ({len(self.active_connections[user_id])} devices)")

    def disconnect(self, user_id: str, websocket: WebSocket):
        connections = self.active_connections.get(user_id)
        if connections and websocket in connections:
            connections.remove(websocket)
            if not connections:
                del self.active_connections[user_id]
        for name in list(self.rooms):
            self.leave_room(name, websocket)
        logger.info(f"User {user_id} disconnected")

    def join_room(self, name: str, websocket: WebSocket):
        self.rooms.setdefault(name, set()).add(websocket)

    def leave_room(self, name: str, websocket: WebSocket):
        members = self.rooms.get(name)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[name]

    def _drop(self, websocket: WebSocket):
        for user_id, connections in list(self.active_connections.items()):
            if websocket in connections:
                self.disconnect(user_id, websocket)
                return
        for name in list(self.rooms):
            self.leave_room(name, websocket)

    async def _send(self, websocket: WebSocket, payload: Dict[str, Any]) -> bool:
        try:
            await websocket.send_json(payload)
            return True
        except (RuntimeError, ConnectionError) as e:
            logger.warning(f"Dropping dead connection: {e}")
            self._drop(websocket)
            return False

    async def send_personal_message(self, message: str, user_id: str):
        await self.send_json_to_user(user_id, {"event": "message", "data": message})

    async def send_json_to_user(self, user_id: str, payload: Dict[str, Any]) -> int:
        """Send to every device of `user_id`; returns how many deliveries succeeded."""
        delivered = 0
        for websocket in list(self.active_connections.get(user_id, [])):
            if await self._send(websocket, payload):
                delivered += 1
        return delivered

    async def broadcast_to_room(
        self, name: str, payload: Dict[str, Any], exclude: Optional[WebSocket] = None
    ) -> int:
        delivered = 0
        for websocket in list(self.rooms.get(name, set())):
            if websocket is exclude:
                continue
            if await self._send(websocket, payload):
                delivered += 1
        return delivered
