"""Export route handlers (JSON, CSV and aggregated statistics)."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.db import get_db_session
from dline.services import access_service, export_service, stats_service
from dline.api.auth_dependencies import get_current_user_optional, require_team_viewer
from dline.utils.datetime_utils import isoformat, utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


def _attachment(filename: str) -> dict:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


@router.get("/api/export/game/{game_id}/json")
async def export_game_json(
    game_id: int,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Full game payload with computed statistics, as a downloadable file."""
    game = await access_service.require_game_access(
        session, user["id"] if user else None, game_id, allow_public=True
    )
    payload = await export_service.export_game_json(session, game)
    return JSONResponse(
        content=payload, headers=_attachment(export_service.export_filename("game", game.slug, "json"))
    )


@router.get("/api/export/game/{game_id}/csv")
async def export_game_csv(
    game_id: int,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """One row per matchup."""
    game = await access_service.require_game_access(
        session, user["id"] if user else None, game_id, allow_public=True
    )
    content = await export_service.export_game_csv(session, game)
    return Response(
        content=content,
        media_type="text/csv",
        headers=_attachment(export_service.export_filename("game", game.slug, "csv")),
    )


@router.get("/api/export/team/{team_id}/roster/csv")
async def export_team_roster(
    team_id: int,
    user: dict = Depends(require_team_viewer),
    session: AsyncSession = Depends(get_db_session),
):
    content = await export_service.export_team_roster_csv(session, team_id)
    slug = await export_service.get_team_slug(session, team_id)
    return Response(
        content=content,
        media_type="text/csv",
        headers=_attachment(export_service.export_filename("roster", slug, "csv")),
    )


@router.get("/api/export/team/{team_id}/stats")
async def export_team_stats(
    team_id: int,
    user: dict = Depends(require_team_viewer),
    session: AsyncSession = Depends(get_db_session),
):
    """Per-defender totals across all games of the team."""
    stats = await stats_service.get_team_stats(session, team_id)
    slug = await export_service.get_team_slug(session, team_id)
    return JSONResponse(
        content={**stats, "exported_at": isoformat(utcnow())},
        headers=_attachment(export_service.export_filename("team-stats", slug, "json")),
    )
