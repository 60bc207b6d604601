"""
# Realtime WebSocket Route

One socket per device at `/ws?token=<access token>`. The token's subject becomes the user id the
connection is registered under; notifications created for that user are pushed to it.

Client events (JSON objects with `event` and `data`):

| event                | data                              | effect                                    |
|----------------------|-----------------------------------|-------------------------------------------|
| `join_conversation`  | `{"conversation_id": ...}`        | join room `conversation_{id}`             |
| `leave_conversation` | `{"conversation_id": ...}`        | leave the room                            |
| `typing`             | `{"conversation_id": ..., ...}`   | `user_typing` to the rest of the room     |
| `message`            | `{"conversation_id": ..., ...}`   | `new_message` to everyone in the room     |
"""

import json
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from gym_management.managers.logging_manager import get_logger
from gym_management.utils.security import decode_access_token
from gym_management.websocket_manager import ConnectionManager, room_name

router = APIRouter(tags=["Realtime"])
logger = get_logger(prefix="[WS_ROUTES]")


async def handle_event(manager: ConnectionManager, user_id: str, websocket: WebSocket, message: Dict[str, Any]):
    event = message.get("event")
    data = message.get("data") or {}
    conversation_id = data.get("conversation_id")
    if not conversation_id:
        await websocket.send_json({"event": "error", "data": "conversation_id is required"})
        return
    room = room_name(str(conversation_id))

    if event == "join_conversation":
        manager.join_room(room, websocket)
    elif event == "leave_conversation":
        manager.leave_room(room, websocket)
    elif event == "typing":
        await manager.broadcast_to_room(room, {"event": "user_typing", "data": {**data, "user_id": user_id}}, exclude=websocket)
    elif event == "message":
        await manager.broadcast_to_room(room, {"event": "new_message", "data": {**data, "sender_id": user_id}})
    else:
        await websocket.send_json({"event": "error", "data": f"Unknown event: {event}"})


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str = ""):
    container = websocket.app.state.container
    try:
        user_id = decode_access_token(token, container.settings)
    except ValueError as e:
        logger.warning(f"Rejected websocket connection: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager: ConnectionManager = container.connection_manager
    await manager.connect(user_id, websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Non-JSON frame from user {user_id}")
                await websocket.send_json({"event": "error", "data": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"event": "error", "data": "Expected a JSON object"})
                continue
            await handle_event(manager, user_id, websocket, message)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(user_id, websocket)
