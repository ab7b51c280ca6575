"""Point and matchup route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.db import get_db_session
from dline.database.models import TeamRole
from dline.services import access_service, point_service, redis_service
from dline.services.game_room_manager import emit_game_event
from dline.api.auth_dependencies import require_user, get_current_user_optional
from dline.models.schemas import PointCreate, PointUpdate, MatchupUpdate
from dline.utils.datetime_utils import isoformat, utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/points/game/{game_id}")
async def list_game_points(
    game_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Points of a game in point_number order, with matchups."""
    await access_service.require_game_access(session, user["id"], game_id, allow_public=True)
    return await point_service.list_points(session, game_id)


@router.post("/api/points", status_code=201)
async def create_point(
    payload: PointCreate,
    response: Response,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Record a point. Resubmitting the same client_request_id returns the
    stored point with 200 instead of creating a second one.
    """
    game = await access_service.require_game_access(
        session, user["id"], payload.game_id, TeamRole.MEMBER, lock=True
    )
    point, created = await point_service.create_point(
        session, game, user["id"], payload.model_dump(exclude={"game_id"})
    )
    await session.commit()

    if not created:
        response.status_code = 200
        return point

    await redis_service.clear_draft(payload.game_id)
    await emit_game_event(
        payload.game_id,
        "point-created",
        {"point": point, "user_id": user["id"], "timestamp": isoformat(utcnow())},
        user["id"],
    )
    return point


@router.get("/api/points/{point_id}")
async def get_point(
    point_id: int,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Point with matchups; points the caller cannot see answer 404."""
    await access_service.require_point_read_access(session, user["id"] if user else None, point_id)
    return await point_service.get_point(session, point_id)


@router.put("/api/points/{point_id}")
async def update_point(
    point_id: int,
    payload: PointUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Edit a point; flipping got_break moves credit between breaks and no_breaks."""
    point = await access_service.require_point_access(session, user["id"], point_id)
    updated = await point_service.update_point(
        session, point, user["id"], payload.model_dump(exclude_unset=True)
    )
    await session.commit()
    await emit_game_event(updated["game_id"], "point-updated", updated, user["id"])
    return updated


@router.delete("/api/points/{point_id}", status_code=204)
async def delete_point(
    point_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a point and renumber the later points of its game."""
    point = await access_service.require_point_access(session, user["id"], point_id)
    deleted = await point_service.delete_point(session, point, user["id"])
    await session.commit()
    await emit_game_event(
        deleted["game_id"],
        "point-deleted",
        {"point_id": deleted["point_id"], "point_number": deleted["point_number"]},
        user["id"],
    )
    return Response(status_code=204)


@router.put("/api/points/{point_id}/matchups/{matchup_id}")
async def update_matchup(
    point_id: int,
    matchup_id: int,
    payload: MatchupUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    point = await access_service.require_point_access(session, user["id"], point_id)
    game_id = point.game_id
    matchup = await point_service.update_matchup(
        session, point, matchup_id, user["id"], payload.model_dump(exclude_unset=True)
    )
    await session.commit()
    await emit_game_event(game_id, "matchup-updated", matchup, user["id"])
    return matchup
