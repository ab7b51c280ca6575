"""
Client message handling for the live game socket.

Room membership, heartbeat, resync and draft relays are processed here so the
WebSocket route only has to authenticate and loop over incoming frames.
"""

import json
import logging
from typing import Awaitable, Callable, Optional

from fastapi import WebSocket

from dline.services import redis_service
from dline.services.game_room_manager import GameRoomManager, get_game_room_manager

logger = logging.getLogger(__name__)

# Unsaved edits relayed to other viewers without touching the database
DRAFT_EVENTS = {
    "point-update",
    "matchup-update",
    "player-position-update",
    "typing-start",
    "typing-stop",
}

AccessCheck = Callable[[int, int], Awaitable[bool]]


async def _send_error(manager: GameRoomManager, websocket: WebSocket, message: str, game_id=None):
    await manager.send_to_socket(
        websocket, manager.build_message("error", game_id, {"message": message}, None)
    )


async def announce_departure(
    manager: GameRoomManager, game_id: Optional[int], user_id: int
) -> None:
    """Tell a room that a user left it."""
    if game_id is not None:
        await manager.broadcast(game_id, "user-left", {"user_id": user_id}, user_id=user_id)


async def handle_client_message(
    websocket: WebSocket,
    user_id: int,
    raw: str,
    check_access: AccessCheck,
    manager: Optional[GameRoomManager] = None,
) -> None:
    """
    Process one frame received from a client.

    Args:
        websocket: Sender
        user_id: Authenticated user behind the socket
        raw: Frame text (JSON object, or the bare string "ping")
        check_access: Coroutine deciding whether the user may view a game
        manager: Room manager (defaults to the global one)
    """
    manager = manager or get_game_room_manager()
    await manager.update_activity(websocket)

    # Heartbeat (client sends "ping", server responds "pong")
    if raw.strip() == "ping":
        await websocket.send_text("pong")
        return

    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        await _send_error(manager, websocket, "Message must be valid JSON")
        return
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        await _send_error(manager, websocket, "Message must be an object with a type")
        return

    event = message["type"]

    if event == "ping":
        await manager.send_to_socket(websocket, manager.build_message("pong", None, None, None))
        return

    if event == "join-game":
        game_id = message.get("game_id")
        if not isinstance(game_id, int) or isinstance(game_id, bool):
            await _send_error(manager, websocket, "join-game requires an integer game_id")
            return
        if not await check_access(user_id, game_id):
            await _send_error(manager, websocket, "Access denied to this game", game_id)
            return

        previous = await manager.join_game(websocket, game_id)
        await announce_departure(manager, previous, user_id)
        await manager.broadcast(
            game_id, "user-joined", {"user_id": user_id}, user_id=user_id, exclude=websocket
        )
        state = {
            "active_users": await manager.get_active_users(game_id),
            "draft": await redis_service.get_draft(game_id),
        }
        seq = await manager.get_sequence(game_id)
        await manager.send_to_socket(
            websocket, manager.build_message("game-state", game_id, state, seq, user_id)
        )
        logger.info(f"User {user_id} joined game {game_id}")
        return

    if event == "leave-game":
        game_id = await manager.leave_game(websocket)
        await announce_departure(manager, game_id, user_id)
        return

    game_id = await manager.get_joined_game(websocket)
    if game_id is None:
        await _send_error(manager, websocket, f"Join a game before sending {event}")
        return

    if event == "resync":
        last_seq = message.get("last_seq", 0)
        if not isinstance(last_seq, int) or isinstance(last_seq, bool):
            await _send_error(manager, websocket, "resync requires an integer last_seq", game_id)
            return
        seq = await manager.get_sequence(game_id)
        data = {"resync_required": last_seq < seq, "last_seq": last_seq}
        await manager.send_to_socket(
            websocket, manager.build_message("resync", game_id, data, seq, user_id)
        )
        return

    if event in DRAFT_EVENTS:
        data = message.get("data")
        if event == "point-update" and isinstance(data, dict):
            await redis_service.save_draft(game_id, data)
        await manager.broadcast(game_id, event, data, user_id=user_id, exclude=websocket)
        return

    await _send_error(manager, websocket, f"Unknown message type: {event}", game_id)
