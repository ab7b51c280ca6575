"""Defensive line route handlers."""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.db import get_db_session
from dline.database.models import TeamRole
from dline.services import access_service, line_service
from dline.api.auth_dependencies import require_user, require_team_viewer
from dline.models.schemas import LineCreate, LineUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/lines/team/{team_id}")
async def list_team_lines(
    team_id: int,
    user: dict = Depends(require_team_viewer),
    session: AsyncSession = Depends(get_db_session),
):
    return await line_service.list_lines(session, team_id)


@router.post("/api/lines", status_code=201)
async def create_line(
    payload: LineCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a named line of up to seven team defenders (MEMBER or higher)."""
    await access_service.require_team_role(session, user["id"], payload.team_id, TeamRole.MEMBER)
    return await line_service.create_line(session, payload.team_id, payload.name, payload.defender_ids)


@router.put("/api/lines/{line_id}")
async def update_line(
    line_id: int,
    payload: LineUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Rename a line and/or replace its defenders."""
    line = await line_service.get_line_or_raise(session, line_id)
    await access_service.require_team_role(session, user["id"], line.team_id, TeamRole.MEMBER)
    return await line_service.update_line(
        session, line_id, name=payload.name, defender_ids=payload.defender_ids
    )


@router.delete("/api/lines/{line_id}", status_code=204)
async def delete_line(
    line_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a line (ADMIN or OWNER)."""
    line = await line_service.get_line_or_raise(session, line_id)
    await access_service.require_team_role(session, user["id"], line.team_id, TeamRole.ADMIN)
    await line_service.delete_line(session, line_id)
    return Response(status_code=204)
