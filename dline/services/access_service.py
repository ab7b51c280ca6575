"""
Access gate for teams and games.

Every route resolves authorization through this module, parameterized by the
minimum team role the operation needs (VIEWER < MEMBER < ADMIN < OWNER).
Public games bypass membership for read-only access.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.models import Game, Point, Team, TeamMember, TeamRole
from dline.utils.constants import ROLE_HIERARCHY
from dline.utils.exceptions import NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)


def role_satisfies(role: Optional[TeamRole], min_role: TeamRole) -> bool:
    """True if ``role`` is at least as privileged as ``min_role``."""
    if role is None:
        return False
    return ROLE_HIERARCHY[role] >= ROLE_HIERARCHY[min_role]


async def get_team_role(session: AsyncSession, user_id: int, team_id: int) -> Optional[TeamRole]:
    """Return the user's role in a team, or None if not a member."""
    result = await session.execute(
        select(TeamMember.role).where(
            TeamMember.user_id == user_id, TeamMember.team_id == team_id
        )
    )
    return result.scalar_one_or_none()


async def require_team_role(
    session: AsyncSession, user_id: int, team_id: int, min_role: TeamRole = TeamRole.VIEWER
) -> TeamRole:
    """
    Ensure the user holds at least ``min_role`` in the team.

    Returns:
        The user's actual role

    Raises:
        NotFoundError: Team does not exist
        PermissionDeniedError: Not a member, or role too low
    """
    team_exists = await session.execute(select(Team.id).where(Team.id == team_id))
    if team_exists.scalar_one_or_none() is None:
        raise NotFoundError("Team not found")

    role = await get_team_role(session, user_id, team_id)
    if role is None:
        raise PermissionDeniedError("You are not a member of this team")
    if not role_satisfies(role, min_role):
        raise PermissionDeniedError(f"{min_role.value} role or higher required")
    return role


async def require_game_access(
    session: AsyncSession,
    user_id: Optional[int],
    game_id: int,
    min_role: TeamRole = TeamRole.VIEWER,
    allow_public: bool = False,
    lock: bool = False,
) -> Game:
    """
    Load a game and check the caller may act on it.

    Args:
        user_id: Caller, or None for anonymous reads
        min_role: Minimum team role for members
        allow_public: Read-only path; public games skip the membership check
        lock: Take a row lock on the game (serializes point numbering)

    Returns:
        The Game ORM instance

    Raises:
        NotFoundError: Game does not exist
        PermissionDeniedError: Caller lacks access
    """
    query = select(Game).where(Game.id == game_id)
    if lock:
        query = query.with_for_update()
    result = await session.execute(query)
    game = result.scalar_one_or_none()
    if game is None:
        raise NotFoundError("Game not found")

    if allow_public and game.is_public:
        return game
    if user_id is None:
        raise PermissionDeniedError("Authentication required for this game")

    role = await get_team_role(session, user_id, game.team_id)
    if role is None:
        raise PermissionDeniedError("You do not have access to this game")
    if not role_satisfies(role, min_role):
        raise PermissionDeniedError(f"{min_role.value} role or higher required")
    return game


async def require_point_access(
    session: AsyncSession,
    user_id: int,
    point_id: int,
    min_role: TeamRole = TeamRole.MEMBER,
) -> Point:
    """Load a point and check access to its game (game row is locked)."""
    result = await session.execute(select(Point.game_id).where(Point.id == point_id))
    game_id = result.scalar_one_or_none()
    if game_id is None:
        raise NotFoundError("Point not found")
    await require_game_access(session, user_id, game_id, min_role=min_role, lock=True)
    result = await session.execute(select(Point).where(Point.id == point_id))
    return result.scalar_one()


async def require_point_read_access(
    session: AsyncSession, user_id: Optional[int], point_id: int
) -> int:
    """
    Check a caller may read a point (VIEWER, or anyone for a public game).

    A point the caller cannot see answers exactly like a missing one.

    Returns:
        The point's game id

    Raises:
        NotFoundError: Point does not exist or is not visible to the caller
    """
    result = await session.execute(select(Point.game_id).where(Point.id == point_id))
    game_id = result.scalar_one_or_none()
    if game_id is None:
        raise NotFoundError("Point not found")
    try:
        await require_game_access(session, user_id, game_id, allow_public=True)
    except PermissionDeniedError:
        raise NotFoundError("Point not found")
    return game_id
