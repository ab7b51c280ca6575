"""
Defender (own-team player) service layer.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.models import Defender, DefenderStats
from dline.services.stats_service import stats_row_to_dict
from dline.utils.datetime_utils import isoformat
from dline.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


async def get_defender_or_raise(session: AsyncSession, defender_id: int) -> Defender:
    result = await session.execute(select(Defender).where(Defender.id == defender_id))
    defender = result.scalar_one_or_none()
    if defender is None:
        raise NotFoundError("Defender not found")
    return defender


async def list_defenders(session: AsyncSession, team_id: int) -> List[Dict]:
    """Team roster ordered by name, each with its per-game stats rows."""
    result = await session.execute(
        select(Defender).where(Defender.team_id == team_id).order_by(Defender.name, Defender.id)
    )
    defenders = result.scalars().all()
    if not defenders:
        return []

    stats_result = await session.execute(
        select(DefenderStats).where(DefenderStats.defender_id.in_([d.id for d in defenders]))
    )
    stats_by_defender: Dict[int, List[Dict]] = {}
    for row in stats_result.scalars().all():
        stats_by_defender.setdefault(row.defender_id, []).append(stats_row_to_dict(row))

    return [
        {**defender_to_dict(d), "statistics": stats_by_defender.get(d.id, [])}
        for d in defenders
    ]


async def get_team_defender_ids(session: AsyncSession, team_id: int) -> set:
    result = await session.execute(select(Defender.id).where(Defender.team_id == team_id))
    return set(result.scalars().all())


async def create_defender(session: AsyncSession, team_id: int, fields: Dict) -> Dict:
    """
    Add a defender to a team.

    Args:
        fields: name, jersey_number, position, notes, active
    """
    defender = Defender(team_id=team_id, **fields)
    session.add(defender)
    await session.flush()
    await session.refresh(defender)
    logger.info(f"Created defender {defender.id} on team {team_id}")
    return defender_to_dict(defender)


async def bulk_create_defenders(session: AsyncSession, team_id: int, items: List[Dict]) -> List[Dict]:
    """Create several defenders in one transaction."""
    defenders = [Defender(team_id=team_id, **fields) for fields in items]
    session.add_all(defenders)
    await session.flush()
    for defender in defenders:
        await session.refresh(defender)
    logger.info(f"Created {len(defenders)} defenders on team {team_id}")
    return [defender_to_dict(d) for d in defenders]


async def update_defender(session: AsyncSession, defender_id: int, fields: Dict) -> Dict:
    """Apply the provided fields only."""
    defender = await get_defender_or_raise(session, defender_id)
    for key, value in fields.items():
        setattr(defender, key, value)
    await session.flush()
    await session.refresh(defender)
    return defender_to_dict(defender)


async def delete_defender(session: AsyncSession, defender_id: int) -> Optional[int]:
    """
    Hard delete a defender. Stats, selections and line slots cascade; past
    matchups keep their row with the defender unset.

    Returns:
        The team id the defender belonged to
    """
    defender = await get_defender_or_raise(session, defender_id)
    team_id = defender.team_id
    await session.delete(defender)
    await session.flush()
    logger.info(f"Deleted defender {defender_id} from team {team_id}")
    return team_id


def defender_to_dict(defender: Defender) -> Dict:
    return {
        "id": defender.id,
        "team_id": defender.team_id,
        "name": defender.name,
        "jersey_number": defender.jersey_number,
        "position": defender.position,
        "notes": defender.notes,
        "active": defender.active,
        "created_at": isoformat(defender.created_at),
        "updated_at": isoformat(defender.updated_at),
    }
