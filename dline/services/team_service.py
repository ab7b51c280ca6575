"""
Team and membership service layer.
"""

import logging
from typing import Optional, Dict, List

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.models import Team, TeamMember, TeamRole, User, Defender, Game
from dline.utils.datetime_utils import isoformat
from dline.utils.exceptions import ConflictError, NotFoundError
from dline.utils.slugify import slugify, slug_with_suffix, generate_invite_code

logger = logging.getLogger(__name__)


async def unique_slug(session: AsyncSession, slug_column, text: str) -> str:
    """
    Slugify ``text`` and add a random suffix while it collides with an
    existing value of ``slug_column``.
    """
    base = slugify(text)
    slug = base
    while True:
        result = await session.execute(select(slug_column).where(slug_column == slug))
        if result.scalar_one_or_none() is None:
            return slug
        slug = slug_with_suffix(base)


async def _unique_invite_code(session: AsyncSession) -> str:
    while True:
        code = generate_invite_code()
        result = await session.execute(select(Team.id).where(Team.invite_code == code))
        if result.scalar_one_or_none() is None:
            return code


async def _get_team_or_raise(session: AsyncSession, team_id: int) -> Team:
    result = await session.execute(select(Team).where(Team.id == team_id))
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFoundError("Team not found")
    return team


async def create_team(
    session: AsyncSession, user_id: int, name: str, description: Optional[str] = None
) -> Dict:
    """
    Create a team; the creator becomes its OWNER.

    Returns:
        Team dictionary including the caller's role
    """
    team = Team(
        name=name.strip(),
        slug=await unique_slug(session, Team.slug, name),
        invite_code=await _unique_invite_code(session),
        description=description,
    )
    session.add(team)
    await session.flush()
    session.add(TeamMember(user_id=user_id, team_id=team.id, role=TeamRole.OWNER))
    await session.flush()
    await session.refresh(team)
    logger.info(f"User {user_id} created team {team.id} ({team.slug})")
    return {**team_to_dict(team), "role": TeamRole.OWNER.value}


async def list_user_teams(session: AsyncSession, user_id: int) -> List[Dict]:
    """Teams the user belongs to, with role and defender/game counts."""
    defender_count = (
        select(func.count(Defender.id)).where(Defender.team_id == Team.id).scalar_subquery()
    )
    game_count = select(func.count(Game.id)).where(Game.team_id == Team.id).scalar_subquery()
    result = await session.execute(
        select(Team, TeamMember.role, defender_count, game_count)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user_id)
        .order_by(Team.created_at.desc(), Team.id.desc())
    )
    return [
        {
            **team_to_dict(team),
            "role": role.value,
            "defender_count": defenders or 0,
            "game_count": games or 0,
        }
        for team, role, defenders, games in result.all()
    ]


async def get_team(session: AsyncSession, team_id: int) -> Dict:
    """Team details with its members."""
    team = await _get_team_or_raise(session, team_id)
    return {**team_to_dict(team), "members": await get_team_members(session, team_id)}


async def get_team_members(session: AsyncSession, team_id: int) -> List[Dict]:
    result = await session.execute(
        select(TeamMember, User)
        .join(User, User.id == TeamMember.user_id)
        .where(TeamMember.team_id == team_id)
        .order_by(TeamMember.joined_at, TeamMember.id)
    )
    return [
        {
            "user_id": user.id,
            "username": user.username,
            "email": user.email,
            "role": member.role.value,
            "joined_at": isoformat(member.joined_at),
        }
        for member, user in result.all()
    ]


async def update_team(
    session: AsyncSession,
    team_id: int,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict:
    """Rename or re-describe a team; the slug follows the new name."""
    team = await _get_team_or_raise(session, team_id)
    if name is not None and name.strip() != team.name:
        team.name = name.strip()
        team.slug = await unique_slug(session, Team.slug, name)
    if description is not None:
        team.description = description
    await session.flush()
    await session.refresh(team)
    return team_to_dict(team)


async def delete_team(session: AsyncSession, team_id: int) -> None:
    """Hard delete; defenders, games, lines and memberships cascade."""
    team = await _get_team_or_raise(session, team_id)
    await session.delete(team)
    await session.flush()
    logger.info(f"Deleted team {team_id}")


async def add_member(
    session: AsyncSession, team_id: int, email_or_username: str, role: TeamRole
) -> Dict:
    """
    Add an existing user to a team.

    Raises:
        NotFoundError: No user matches the email/username
        ConflictError: User is already a member
    """
    await _get_team_or_raise(session, team_id)
    value = email_or_username.strip().lower()
    result = await session.execute(
        select(User).where((func.lower(User.email) == value) | (func.lower(User.username) == value))
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")

    existing = await session.execute(
        select(TeamMember.id).where(TeamMember.team_id == team_id, TeamMember.user_id == user.id)
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("User is already a member of this team")

    member = TeamMember(user_id=user.id, team_id=team_id, role=role)
    session.add(member)
    await session.flush()
    await session.refresh(member)
    return {
        "user_id": user.id,
        "username": user.username,
        "email": user.email,
        "role": member.role.value,
        "joined_at": isoformat(member.joined_at),
    }


async def remove_member(session: AsyncSession, team_id: int, user_id: int) -> None:
    """
    Remove a member from a team.

    Raises:
        NotFoundError: User is not a member
        ValueError: The member is the team owner
    """
    result = await session.execute(
        select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise NotFoundError("Member not found")
    if member.role == TeamRole.OWNER:
        raise ValueError("The team owner cannot be removed")
    await session.execute(delete(TeamMember).where(TeamMember.id == member.id))
    await session.flush()


def team_to_dict(team: Team) -> Dict:
    return {
        "id": team.id,
        "name": team.name,
        "slug": team.slug,
        "invite_code": team.invite_code,
        "description": team.description,
        "created_at": isoformat(team.created_at),
        "updated_at": isoformat(team.updated_at),
    }
