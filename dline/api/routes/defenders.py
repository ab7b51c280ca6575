"""Defender route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.db import get_db_session
from dline.database.models import TeamRole
from dline.services import access_service, defender_service, stats_service
from dline.api.auth_dependencies import require_user, require_team_viewer
from dline.models.schemas import DefenderCreate, DefenderBulkCreate, DefenderUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/defenders/team/{team_id}")
async def list_team_defenders(
    team_id: int,
    user: dict = Depends(require_team_viewer),
    session: AsyncSession = Depends(get_db_session),
):
    """Team roster with per-game statistics rows."""
    return await defender_service.list_defenders(session, team_id)


@router.post("/api/defenders", status_code=201)
async def create_defender(
    payload: DefenderCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a defender (MEMBER or higher)."""
    await access_service.require_team_role(session, user["id"], payload.team_id, TeamRole.MEMBER)
    return await defender_service.create_defender(
        session, payload.team_id, payload.model_dump(exclude={"team_id"})
    )


@router.post("/api/defenders/bulk", status_code=201)
async def bulk_create_defenders(
    payload: DefenderBulkCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Add several defenders at once (MEMBER or higher)."""
    await access_service.require_team_role(session, user["id"], payload.team_id, TeamRole.MEMBER)
    return await defender_service.bulk_create_defenders(
        session, payload.team_id, [d.model_dump() for d in payload.defenders]
    )


@router.put("/api/defenders/{defender_id}")
async def update_defender(
    defender_id: int,
    payload: DefenderUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    defender = await defender_service.get_defender_or_raise(session, defender_id)
    await access_service.require_team_role(session, user["id"], defender.team_id, TeamRole.MEMBER)
    return await defender_service.update_defender(
        session, defender_id, payload.model_dump(exclude_unset=True)
    )


@router.delete("/api/defenders/{defender_id}", status_code=204)
async def delete_defender(
    defender_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Hard delete a defender (ADMIN or OWNER)."""
    defender = await defender_service.get_defender_or_raise(session, defender_id)
    await access_service.require_team_role(session, user["id"], defender.team_id, TeamRole.ADMIN)
    await defender_service.delete_defender(session, defender_id)
    return Response(status_code=204)


@router.get("/api/defenders/{defender_id}/stats")
async def get_defender_stats(
    defender_id: int,
    game_id: Optional[int] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Totals and per-game breakdown, optionally for a single game."""
    defender = await defender_service.get_defender_or_raise(session, defender_id)
    await access_service.require_team_role(session, user["id"], defender.team_id, TeamRole.VIEWER)
    stats = await stats_service.get_defender_stats(session, defender_id, game_id=game_id)
    return {**stats, "name": defender.name}
