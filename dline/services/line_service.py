"""
Defensive line templates: named, ordered sets of up to seven defenders.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from dline.database.models import DefensiveLine, DefensiveLineDefender
from dline.services.defender_service import defender_to_dict, get_team_defender_ids
from dline.utils.constants import MAX_LINE_SIZE
from dline.utils.datetime_utils import isoformat
from dline.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def _line_query():
    return select(DefensiveLine).options(
        selectinload(DefensiveLine.defenders).selectinload(DefensiveLineDefender.defender)
    )


async def get_line_or_raise(session: AsyncSession, line_id: int) -> DefensiveLine:
    result = await session.execute(_line_query().where(DefensiveLine.id == line_id))
    line = result.scalar_one_or_none()
    if line is None:
        raise NotFoundError("Defensive line not found")
    return line


async def validate_line_defenders(session: AsyncSession, team_id: int, defender_ids: List[int]) -> List[int]:
    """
    Deduplicate (keeping first occurrence) and check size and team ownership.

    Raises:
        ValueError: More than seven defenders, or an id not on the team
    """
    unique_ids = list(dict.fromkeys(defender_ids))
    if len(unique_ids) > MAX_LINE_SIZE:
        raise ValueError(f"A line can have at most {MAX_LINE_SIZE} defenders")
    team_ids = await get_team_defender_ids(session, team_id)
    unknown = [d for d in unique_ids if d not in team_ids]
    if unknown:
        raise ValueError(f"Defenders {unknown} do not belong to this team")
    return unique_ids


async def list_lines(session: AsyncSession, team_id: int) -> List[Dict]:
    result = await session.execute(
        _line_query().where(DefensiveLine.team_id == team_id).order_by(DefensiveLine.name)
    )
    return [line_to_dict(line) for line in result.scalars().all()]


async def _replace_defenders(session: AsyncSession, line_id: int, defender_ids: List[int]) -> None:
    await session.execute(
        delete(DefensiveLineDefender).where(DefensiveLineDefender.line_id == line_id)
    )
    session.add_all(
        DefensiveLineDefender(line_id=line_id, defender_id=defender_id, order=index)
        for index, defender_id in enumerate(defender_ids)
    )
    await session.flush()


async def create_line(session: AsyncSession, team_id: int, name: str, defender_ids: List[int]) -> Dict:
    """Create a line; defender order is the order given."""
    defender_ids = await validate_line_defenders(session, team_id, defender_ids)
    line = DefensiveLine(team_id=team_id, name=name.strip())
    session.add(line)
    await session.flush()
    await _replace_defenders(session, line.id, defender_ids)
    return await get_line(session, line.id)


async def get_line(session: AsyncSession, line_id: int) -> Dict:
    # Bypass the identity map so freshly written slots are loaded
    result = await session.execute(
        _line_query().where(DefensiveLine.id == line_id).execution_options(populate_existing=True)
    )
    line = result.scalar_one_or_none()
    if line is None:
        raise NotFoundError("Defensive line not found")
    return line_to_dict(line)


async def update_line(
    session: AsyncSession,
    line_id: int,
    name: Optional[str] = None,
    defender_ids: Optional[List[int]] = None,
) -> Dict:
    """Rename and/or replace the defenders of a line."""
    line = await get_line_or_raise(session, line_id)
    if defender_ids is not None:
        defender_ids = await validate_line_defenders(session, line.team_id, defender_ids)
    if name is not None:
        line.name = name.strip()
    if defender_ids is not None:
        await _replace_defenders(session, line.id, defender_ids)
    await session.flush()
    return await get_line(session, line_id)


async def delete_line(session: AsyncSession, line_id: int) -> None:
    result = await session.execute(select(DefensiveLine.id).where(DefensiveLine.id == line_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Defensive line not found")
    await session.execute(delete(DefensiveLine).where(DefensiveLine.id == line_id))
    await session.flush()


def line_to_dict(line: DefensiveLine) -> Dict:
    return {
        "id": line.id,
        "team_id": line.team_id,
        "name": line.name,
        "defenders": [
            {**defender_to_dict(slot.defender), "order": slot.order}
            for slot in sorted(line.defenders, key=lambda s: s.order)
        ],
        "created_at": isoformat(line.created_at),
        "updated_at": isoformat(line.updated_at),
    }
