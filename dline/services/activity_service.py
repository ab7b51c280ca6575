"""
Append-only audit trail of changes made to a game.
"""

import logging
from typing import Optional, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.models import Activity, ActivityType, User
from dline.utils.datetime_utils import isoformat

logger = logging.getLogger(__name__)


async def log_activity(
    session: AsyncSession,
    game_id: int,
    user_id: int,
    activity_type: ActivityType,
    description: str,
    details: Optional[Dict] = None,
) -> None:
    """Add an activity row to the current transaction."""
    session.add(
        Activity(
            game_id=game_id,
            user_id=user_id,
            type=activity_type,
            description=description,
            details=details,
        )
    )
    await session.flush()


async def get_game_activities(session: AsyncSession, game_id: int, limit: int = 50) -> List[Dict]:
    """Most recent activity first."""
    result = await session.execute(
        select(Activity, User.username)
        .join(User, User.id == Activity.user_id)
        .where(Activity.game_id == game_id)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
        .limit(limit)
    )
    return [
        {
            "id": activity.id,
            "type": activity.type.value,
            "description": activity.description,
            "details": activity.details,
            "user_id": activity.user_id,
            "username": username,
            "created_at": isoformat(activity.created_at),
        }
        for activity, username in result.all()
    ]
