"""
Call-Your-Line: the set of up to seven defenders called for the next point.
"""

import logging
from typing import Dict, List, Tuple

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.models import (
    CurrentPointDefender,
    Defender,
    Game,
    OffensivePlayer,
    SelectedDefender,
)
from dline.services.defender_service import defender_to_dict
from dline.services.point_service import validate_selected_defenders

logger = logging.getLogger(__name__)


async def get_selected_defenders(session: AsyncSession, game_id: int) -> List[Dict]:
    """Currently called defenders, in the order they were selected."""
    result = await session.execute(
        select(Defender)
        .join(SelectedDefender, SelectedDefender.defender_id == Defender.id)
        .where(SelectedDefender.game_id == game_id)
        .order_by(SelectedDefender.id)
    )
    return [defender_to_dict(d) for d in result.scalars().all()]


async def replace_selected_defenders(
    session: AsyncSession, game: Game, defender_ids: List[int]
) -> Tuple[List[Dict], List[int]]:
    """
    Replace the whole selection for a game.

    Every check runs before the first write, so a rejected request leaves the
    previous selection untouched. Current-point assignments whose defender is
    no longer selected are cleared.

    Returns:
        (selected defender dicts, offensive player ids whose current-point
        defender was cleared)

    Raises:
        ValueError: More than seven defenders, or an id not on the team
    """
    defender_ids = await validate_selected_defenders(session, game.team_id, defender_ids)

    stale = await session.execute(
        select(CurrentPointDefender.id, CurrentPointDefender.offensive_player_id)
        .join(OffensivePlayer, OffensivePlayer.id == CurrentPointDefender.offensive_player_id)
        .where(
            OffensivePlayer.game_id == game.id,
            CurrentPointDefender.defender_id.not_in(defender_ids),
        )
        .order_by(CurrentPointDefender.offensive_player_id)
    )
    stale_rows = stale.all()
    if stale_rows:
        await session.execute(
            delete(CurrentPointDefender).where(
                CurrentPointDefender.id.in_([row.id for row in stale_rows])
            )
        )

    await session.execute(delete(SelectedDefender).where(SelectedDefender.game_id == game.id))
    session.add_all(
        SelectedDefender(game_id=game.id, defender_id=defender_id) for defender_id in defender_ids
    )
    await session.flush()

    cleared = [row.offensive_player_id for row in stale_rows]
    logger.info(
        f"Replaced selected defenders for game {game.id} ({len(defender_ids)} selected, "
        f"{len(cleared)} assignments cleared)"
    )
    return await get_selected_defenders(session, game.id), cleared
