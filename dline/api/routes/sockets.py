"""Live game WebSocket route."""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from dline.database import db
from dline.services import access_service, auth_service
from dline.services.game_room_manager import get_game_room_manager, WEBSOCKET_TIMEOUT_SECONDS
from dline.services.live_sync_service import announce_departure, handle_client_message
from dline.utils.exceptions import NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)
router = APIRouter()


async def can_view_game(user_id: int, game_id: int) -> bool:
    """Team members of any role, or anyone for a public game."""
    async with db.AsyncSessionLocal() as session:
        try:
            await access_service.require_game_access(session, user_id, game_id, allow_public=True)
        except (NotFoundError, PermissionDeniedError):
            return False
    return True


@router.websocket("/api/ws/games")
async def websocket_games(websocket: WebSocket):
    """
    WebSocket endpoint for live game collaboration.

    Requires JWT token in query parameter: ?token=<jwt_token>
    """
    await websocket.accept()

    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=1008, reason="Missing authentication token")
        return

    payload = auth_service.verify_token(token)
    if payload is None:
        await websocket.close(code=1008, reason="Invalid authentication token")
        return

    user_id = payload.get("user_id")
    if user_id is None:
        await websocket.close(code=1008, reason="Invalid token payload")
        return

    manager = get_game_room_manager()
    await manager.connect(user_id, websocket)

    try:
        while True:
            try:
                raw = await asyncio.wait_for(
                    websocket.receive_text(), timeout=WEBSOCKET_TIMEOUT_SECONDS / 2
                )
            except asyncio.TimeoutError:
                # Probe an idle connection; a failed send means the peer is gone
                try:
                    await websocket.send_text("ping")
                except Exception:
                    break
                continue
            await handle_client_message(websocket, user_id, raw, can_view_game, manager)
    except WebSocketDisconnect:
        logger.info(f"Game socket disconnected for user {user_id}")
    except Exception as e:
        logger.error(f"Game socket error for user {user_id}: {e}", exc_info=True)
    finally:
        game_id = await manager.disconnect(websocket)
        await announce_departure(manager, game_id, user_id)
