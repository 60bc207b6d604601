from unittest.mock import AsyncMock, MagicMock

import pytest

from gym_management.websocket_manager import ConnectionManager, room_name


def socket():
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.send_json = AsyncMock()
    return ws


@pytest.mark.asyncio
async def test_send_to_every_device_of_user():
    manager = ConnectionManager()
    phone, laptop = socket(), socket()
    await manager.connect("user-1", phone)
    await manager.connect("user-1", laptop)

    delivered = await manager.send_json_to_user("user-1", {"event": "notification"})

    assert delivered == 2
    phone.send_json.assert_awaited_once_with({"event": "notification"})
    assert await manager.send_json_to_user("nobody", {}) == 0


@pytest.mark.asyncio
async def test_dead_connection_is_dropped():
    manager = ConnectionManager()
    dead = socket()
    dead.send_json.side_effect = RuntimeError("closed")
    await manager.connect("user-1", dead)
    manager.join_room(room_name("c1"), dead)

    assert await manager.send_json_to_user("user-1", {"event": "x"}) == 0
    assert "user-1" not in manager.active_connections
    assert room_name("c1") not in manager.rooms


@pytest.mark.asyncio
async def test_room_broadcast_excludes_sender():
    manager = ConnectionManager()
    alice, bob = socket(), socket()
    await manager.connect("alice", alice)
    await manager.connect("bob", bob)
    manager.join_room("conversation_c1", alice)
    manager.join_room("conversation_c1", bob)

    delivered = await manager.broadcast_to_room("conversation_c1", {"event": "user_typing"}, exclude=alice)

    assert delivered == 1
    alice.send_json.assert_not_awaited()

    manager.disconnect("bob", bob)
    assert manager.rooms == {"conversation_c1": {alice}}
