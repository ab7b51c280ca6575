"""Call-your-line route handlers."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.db import get_db_session
from dline.database.models import TeamRole
from dline.services import access_service, selected_defender_service
from dline.services.game_room_manager import emit_game_event
from dline.api.auth_dependencies import require_user
from dline.models.schemas import SelectedDefendersUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/selected-defenders/game/{game_id}")
async def get_selected_defenders(
    game_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    await access_service.require_game_access(session, user["id"], game_id, allow_public=True)
    return await selected_defender_service.get_selected_defenders(session, game_id)


@router.put("/api/selected-defenders/game/{game_id}")
async def replace_selected_defenders(
    game_id: int,
    payload: SelectedDefendersUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Replace the called line (at most seven defenders).

    Offensive players whose current-point defender dropped out of the
    selection are cleared first and announced before the new selection.
    """
    game = await access_service.require_game_access(
        session, user["id"], game_id, TeamRole.MEMBER, lock=True
    )
    selected, cleared = await selected_defender_service.replace_selected_defenders(
        session, game, payload.defender_ids
    )
    await session.commit()

    for player_id in cleared:
        await emit_game_event(
            game_id,
            "current-point-defender-updated",
            {"offensive_player_id": player_id, "defender_id": None},
            user["id"],
        )
    await emit_game_event(
        game_id,
        "selected-defenders-updated",
        {"defender_ids": [d["id"] for d in selected], "defenders": selected},
        user["id"],
    )
    return selected
