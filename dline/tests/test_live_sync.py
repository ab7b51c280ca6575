"""
Tests for client message handling on the live game socket.
"""

import json

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, patch

from dline.services.game_room_manager import GameRoomManager
from dline.services.live_sync_service import announce_departure, handle_client_message


def _socket():
    ws = AsyncMock()
    ws.send_text = AsyncMock()
    return ws


def _sent(ws):
    return [json.loads(call.args[0]) for call in ws.send_text.call_args_list]


async def _allow(user_id, game_id):
    return True


async def _deny(user_id, game_id):
    return False


@pytest_asyncio.fixture
async def manager():
    return GameRoomManager()


async def _connected(manager, user_id):
    ws = _socket()
    await manager.connect(user_id, ws)
    return ws


async def _send(ws, user_id, manager, payload, check_access=_allow):
    raw = payload if isinstance(payload, str) else json.dumps(payload)
    await handle_client_message(ws, user_id, raw, check_access, manager)


@pytest.mark.asyncio
async def test_plain_text_ping(manager):
    ws = await _connected(manager, 1)

    await _send(ws, 1, manager, "ping")

    ws.send_text.assert_called_once_with("pong")


@pytest.mark.asyncio
async def test_json_ping(manager):
    ws = await _connected(manager, 1)

    await _send(ws, 1, manager, {"type": "ping"})

    assert _sent(ws)[0]["type"] == "pong"


@pytest.mark.asyncio
async def test_invalid_json_is_an_error(manager):
    ws = await _connected(manager, 1)

    await _send(ws, 1, manager, "{not json")
    await _send(ws, 1, manager, {"game_id": 3})

    assert [m["type"] for m in _sent(ws)] == ["error", "error"]


@pytest.mark.asyncio
@patch("dline.services.live_sync_service.redis_service.get_draft", new_callable=AsyncMock)
async def test_join_sends_state_and_announces(mock_get_draft, manager):
    mock_get_draft.return_value = {"got_break": True}
    first = await _connected(manager, 1)
    second = await _connected(manager, 2)
    await _send(first, 1, manager, {"type": "join-game", "game_id": 7})

    await _send(second, 2, manager, {"type": "join-game", "game_id": 7})

    state = _sent(second)[-1]
    assert state["type"] == "game-state"
    assert state["data"]["active_users"] == [1, 2]
    assert state["data"]["draft"] == {"got_break": True}
    assert state["seq"] == await manager.get_sequence(7)
    assert _sent(first)[-1]["type"] == "user-joined"
    assert _sent(first)[-1]["data"] == {"user_id": 2}


@pytest.mark.asyncio
async def test_join_denied(manager):
    ws = await _connected(manager, 1)

    await _send(ws, 1, manager, {"type": "join-game", "game_id": 7}, check_access=_deny)

    assert _sent(ws)[0]["type"] == "error"
    assert await manager.get_room_size(7) == 0


@pytest.mark.asyncio
async def test_join_requires_integer_game_id(manager):
    ws = await _connected(manager, 1)

    await _send(ws, 1, manager, {"type": "join-game", "game_id": "7"})

    assert _sent(ws)[0]["type"] == "error"


@pytest.mark.asyncio
async def test_leave_game_announces_departure(manager):
    leaver = await _connected(manager, 1)
    stayer = await _connected(manager, 2)
    for user_id, ws in ((1, leaver), (2, stayer)):
        await _send(ws, user_id, manager, {"type": "join-game", "game_id": 7})

    await _send(leaver, 1, manager, {"type": "leave-game"})

    assert _sent(stayer)[-1]["type"] == "user-left"
    assert await manager.get_active_users(7) == [2]


@pytest.mark.asyncio
async def test_events_before_join_are_rejected(manager):
    ws = await _connected(manager, 1)

    await _send(ws, 1, manager, {"type": "resync", "last_seq": 0})

    assert _sent(ws)[0]["type"] == "error"


@pytest.mark.asyncio
async def test_resync_reports_missed_events(manager):
    ws = await _connected(manager, 1)
    await _send(ws, 1, manager, {"type": "join-game", "game_id": 7})
    await manager.broadcast(7, "point-created", {})
    await manager.broadcast(7, "point-updated", {})
    current = await manager.get_sequence(7)

    await _send(ws, 1, manager, {"type": "resync", "last_seq": current - 1})
    behind = _sent(ws)[-1]
    await _send(ws, 1, manager, {"type": "resync", "last_seq": current})
    caught_up = _sent(ws)[-1]

    assert behind["type"] == "resync"
    assert behind["data"]["resync_required"] is True
    assert behind["seq"] == current
    assert caught_up["data"]["resync_required"] is False


@pytest.mark.asyncio
@patch("dline.services.live_sync_service.redis_service.save_draft", new_callable=AsyncMock)
async def test_draft_update_relayed_and_cached(mock_save_draft, manager):
    sender = await _connected(manager, 1)
    listener = await _connected(manager, 2)
    for user_id, ws in ((1, sender), (2, listener)):
        await _send(ws, user_id, manager, {"type": "join-game", "game_id": 7})
    sender.send_text.reset_mock()

    await _send(sender, 1, manager, {"type": "point-update", "data": {"got_break": False}})

    mock_save_draft.assert_awaited_once_with(7, {"got_break": False})
    relayed = _sent(listener)[-1]
    assert relayed["type"] == "point-update"
    assert relayed["data"] == {"got_break": False}
    assert relayed["user_id"] == 1
    sender.send_text.assert_not_called()


@pytest.mark.asyncio
async def test_typing_is_relayed_without_caching(manager):
    sender = await _connected(manager, 1)
    listener = await _connected(manager, 2)
    for user_id, ws in ((1, sender), (2, listener)):
        await _send(ws, user_id, manager, {"type": "join-game", "game_id": 7})

    with patch(
        "dline.services.live_sync_service.redis_service.save_draft", new_callable=AsyncMock
    ) as mock_save_draft:
        await _send(sender, 1, manager, {"type": "typing-start"})

    mock_save_draft.assert_not_called()
    assert _sent(listener)[-1]["type"] == "typing-start"


@pytest.mark.asyncio
async def test_unknown_type_is_an_error(manager):
    ws = await _connected(manager, 1)
    await _send(ws, 1, manager, {"type": "join-game", "game_id": 7})

    await _send(ws, 1, manager, {"type": "teleport"})

    assert _sent(ws)[-1]["type"] == "error"


@pytest.mark.asyncio
async def test_announce_departure_without_game_is_noop(manager):
    await announce_departure(manager, None, 1)

    assert manager.sequences == {}
