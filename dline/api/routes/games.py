"""Game and offensive player route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.db import get_db_session
from dline.database.models import GameStatus, TeamRole
from dline.services import access_service, activity_service, game_service
from dline.services.game_room_manager import emit_game_event
from dline.api.auth_dependencies import require_user, get_current_user_optional
from dline.models.schemas import (
    GameCreate,
    GameUpdate,
    OffensivePlayerCreate,
    OffensivePlayerUpdate,
    ReorderPlayersRequest,
    DefenderAssignment,
    CurrentPointDefenderRequest,
)
from dline.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)
router = APIRouter()


async def _game_player(session: AsyncSession, game_id: int, player_id: int):
    player = await game_service.get_offensive_player_or_raise(session, player_id)
    if player.game_id != game_id:
        raise NotFoundError("Offensive player not found in this game")
    return player


@router.get("/api/games")
async def list_my_games(
    team_id: Optional[int] = None,
    status: Optional[GameStatus] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Games of the caller's teams, optionally filtered by team and status."""
    return await game_service.list_user_games(session, user["id"], team_id=team_id, status=status)


@router.post("/api/games", status_code=201)
async def create_game(
    payload: GameCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a game for a team (MEMBER or higher)."""
    await access_service.require_team_role(session, user["id"], payload.team_id, TeamRole.MEMBER)
    return await game_service.create_game(session, user["id"], payload.model_dump())


@router.get("/api/games/slug/{slug}")
async def get_game_by_slug(
    slug: str,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    game_id = await game_service.get_game_id_by_slug(session, slug)
    game = await access_service.require_game_access(
        session, user["id"] if user else None, game_id, allow_public=True
    )
    return await game_service.get_game_detail(session, game)


@router.get("/api/games/share/{share_code}")
async def get_game_by_share_code(
    share_code: str,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Share links open public games for anyone; private games need membership."""
    game_id = await game_service.get_game_id_by_share_code(session, share_code)
    game = await access_service.require_game_access(
        session, user["id"] if user else None, game_id, allow_public=True
    )
    return await game_service.get_game_detail(session, game)


@router.get("/api/games/{game_id}")
async def get_game(
    game_id: int,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Full game payload (team members, or anyone for a public game)."""
    game = await access_service.require_game_access(
        session, user["id"] if user else None, game_id, allow_public=True
    )
    return await game_service.get_game_detail(session, game)


@router.put("/api/games/{game_id}")
async def update_game(
    game_id: int,
    payload: GameUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update game fields; status may be set to any value directly."""
    game = await access_service.require_game_access(session, user["id"], game_id, TeamRole.MEMBER)
    return await game_service.update_game(session, game, user["id"], payload.model_dump(exclude_unset=True))


@router.delete("/api/games/{game_id}", status_code=204)
async def delete_game(
    game_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a game (ADMIN or OWNER)."""
    game = await access_service.require_game_access(session, user["id"], game_id, TeamRole.ADMIN)
    await game_service.delete_game(session, game)
    return Response(status_code=204)


@router.get("/api/games/{game_id}/activities")
async def get_game_activities(
    game_id: int,
    limit: int = 50,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    await access_service.require_game_access(session, user["id"], game_id, allow_public=True)
    return await activity_service.get_game_activities(session, game_id, limit=min(limit, 200))


# ---------------------------------------------------------------------------
# Offensive players
# ---------------------------------------------------------------------------

@router.post("/api/games/{game_id}/offensive-players", status_code=201)
async def add_offensive_player(
    game_id: int,
    payload: OffensivePlayerCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    await access_service.require_game_access(session, user["id"], game_id, TeamRole.MEMBER)
    player = await game_service.add_offensive_player(session, game_id, user["id"], payload.model_dump())
    await session.commit()
    await emit_game_event(game_id, "player-added", player, user["id"])
    return player


@router.put("/api/games/{game_id}/offensive-players/reorder")
async def reorder_offensive_players(
    game_id: int,
    payload: ReorderPlayersRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Rewrite player order to 0..n-1 following the given ids."""
    await access_service.require_game_access(session, user["id"], game_id, TeamRole.MEMBER)
    players = await game_service.reorder_offensive_players(session, game_id, payload.player_ids)
    await session.commit()
    await emit_game_event(game_id, "player-updated", {"reordered": payload.player_ids}, user["id"])
    return players


@router.put("/api/games/{game_id}/offensive-players/{player_id}")
async def update_offensive_player(
    game_id: int,
    player_id: int,
    payload: OffensivePlayerUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    await access_service.require_game_access(session, user["id"], game_id, TeamRole.MEMBER)
    player = await _game_player(session, game_id, player_id)
    updated = await game_service.update_offensive_player(
        session, player, payload.model_dump(exclude_unset=True)
    )
    await session.commit()
    await emit_game_event(game_id, "player-updated", updated, user["id"])
    return updated


@router.delete("/api/games/{game_id}/offensive-players/{player_id}", status_code=204)
async def delete_offensive_player(
    game_id: int,
    player_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    await access_service.require_game_access(session, user["id"], game_id, TeamRole.MEMBER)
    player = await _game_player(session, game_id, player_id)
    await game_service.delete_offensive_player(session, player, user["id"])
    await session.commit()
    await emit_game_event(game_id, "player-removed", {"offensive_player_id": player_id}, user["id"])
    return Response(status_code=204)


@router.post("/api/games/{game_id}/offensive-players/{player_id}/available-defenders", status_code=201)
async def add_available_defender(
    game_id: int,
    player_id: int,
    payload: DefenderAssignment,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a defender to the candidate pool for an offensive player."""
    await access_service.require_game_access(session, user["id"], game_id, TeamRole.MEMBER)
    player = await _game_player(session, game_id, player_id)
    result = await game_service.add_available_defender(session, player, payload.defender_id)
    await session.commit()
    await emit_game_event(game_id, "available-defender-added", result, user["id"])
    return result


@router.delete(
    "/api/games/{game_id}/offensive-players/{player_id}/available-defenders/{defender_id}",
    status_code=204,
)
async def remove_available_defender(
    game_id: int,
    player_id: int,
    defender_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    await access_service.require_game_access(session, user["id"], game_id, TeamRole.MEMBER)
    player = await _game_player(session, game_id, player_id)
    await game_service.remove_available_defender(session, player, defender_id)
    await session.commit()
    await emit_game_event(
        game_id,
        "available-defender-removed",
        {"offensive_player_id": player_id, "defender_id": defender_id},
        user["id"],
    )
    return Response(status_code=204)


@router.put("/api/games/{game_id}/offensive-players/{player_id}/current-defender")
async def set_current_point_defender(
    game_id: int,
    player_id: int,
    payload: CurrentPointDefenderRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Assign (or clear with null) the defender for the point being built."""
    await access_service.require_game_access(session, user["id"], game_id, TeamRole.MEMBER)
    player = await _game_player(session, game_id, player_id)
    result = await game_service.set_current_point_defender(session, player, payload.defender_id)
    await session.commit()
    await emit_game_event(game_id, "current-point-defender-updated", result, user["id"])
    return result


@router.delete("/api/games/{game_id}/current-defenders")
async def clear_current_point_defenders(
    game_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Clear every current-point assignment (e.g. after a point is saved)."""
    await access_service.require_game_access(session, user["id"], game_id, TeamRole.MEMBER)
    cleared = await game_service.clear_current_point_defenders(session, game_id)
    await session.commit()
    for player_id in cleared:
        await emit_game_event(
            game_id,
            "current-point-defender-updated",
            {"offensive_player_id": player_id, "defender_id": None},
            user["id"],
        )
    return {"cleared": cleared}
