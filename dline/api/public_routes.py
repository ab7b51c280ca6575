"""
Public API routes - no authentication required.

Read-only access to games marked public, addressed by share code.
All routes are prefixed with /api/public.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.db import get_db_session
from dline.database.models import Game
from dline.services import game_service
from dline.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


async def _cache_public(response: Response):
    """Set Cache-Control headers on all public API responses (1min TTL)."""
    response.headers["Cache-Control"] = "public, max-age=60"


public_router = APIRouter(
    prefix="/api/public", tags=["public"], dependencies=[Depends(_cache_public)]
)


@public_router.get("/games/{share_code}")
async def get_public_game(share_code: str, session: AsyncSession = Depends(get_db_session)):
    """
    Full game payload for a public game.

    Private games answer 404 so share codes of private games are not confirmed.
    """
    result = await session.execute(select(Game).where(Game.share_code == share_code))
    game = result.scalar_one_or_none()
    if game is None or not game.is_public:
        raise NotFoundError("Game not found")
    return await game_service.get_game_detail(session, game)
