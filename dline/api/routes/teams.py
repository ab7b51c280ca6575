"""Team and membership route handlers."""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.db import get_db_session
from dline.services import team_service
from dline.api.auth_dependencies import (
    require_user,
    require_team_viewer,
    require_team_admin,
    require_team_owner,
)
from dline.models.schemas import TeamCreate, TeamUpdate, TeamMemberAdd

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/teams")
async def list_my_teams(
    user: dict = Depends(require_user), session: AsyncSession = Depends(get_db_session)
):
    """Teams the caller belongs to, with their role in each."""
    return await team_service.list_user_teams(session, user["id"])


@router.post("/api/teams", status_code=201)
async def create_team(
    payload: TeamCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a team; the caller becomes its owner."""
    return await team_service.create_team(session, user["id"], payload.name, payload.description)


@router.get("/api/teams/{team_id}")
async def get_team(
    team_id: int,
    user: dict = Depends(require_team_viewer),
    session: AsyncSession = Depends(get_db_session),
):
    return await team_service.get_team(session, team_id)


@router.put("/api/teams/{team_id}")
async def update_team(
    team_id: int,
    payload: TeamUpdate,
    user: dict = Depends(require_team_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Rename or re-describe a team (ADMIN or OWNER)."""
    return await team_service.update_team(
        session, team_id, name=payload.name, description=payload.description
    )


@router.delete("/api/teams/{team_id}", status_code=204)
async def delete_team(
    team_id: int,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a team and everything it owns (OWNER only)."""
    await team_service.delete_team(session, team_id)
    return Response(status_code=204)


@router.post("/api/teams/{team_id}/members", status_code=201)
async def add_team_member(
    team_id: int,
    payload: TeamMemberAdd,
    user: dict = Depends(require_team_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Add an existing user to the team by email or username."""
    member = await team_service.add_member(session, team_id, payload.email_or_username, payload.role)
    logger.info(f"User {user['id']} added user {member['user_id']} to team {team_id}")
    return member


@router.delete("/api/teams/{team_id}/members/{member_user_id}", status_code=204)
async def remove_team_member(
    team_id: int,
    member_user_id: int,
    user: dict = Depends(require_team_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a member (the owner cannot be removed)."""
    await team_service.remove_member(session, team_id, member_user_id)
    return Response(status_code=204)
