"""
User service layer for account database operations.
"""

from typing import Optional, Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from dline.database.models import User, TeamMember, Team
from dline.utils.exceptions import ConflictError
from dline.utils.datetime_utils import isoformat
import logging

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def create_user(
    session: AsyncSession, email: str, username: str, password_hash: str
) -> Dict:
    """
    Create a new user account.

    Args:
        session: Database session
        email: Email address (normalized to lowercase)
        username: Unique username
        password_hash: bcrypt hash of the password

    Returns:
        User dictionary

    Raises:
        ConflictError: If the email or username is already registered
    """
    email = normalize_email(email)
    result = await session.execute(
        select(User.email, User.username).where(
            or_(
                func.lower(User.email) == email,
                func.lower(User.username) == username.lower(),
            )
        )
    )
    existing = result.first()
    if existing is not None:
        if existing.email.lower() == email:
            raise ConflictError("Email is already registered")
        raise ConflictError("Username is already taken")

    user = User(email=email, username=username, password_hash=password_hash)
    session.add(user)
    await session.flush()
    await session.refresh(user)
    logger.info(f"Created user {user.id} ({username})")
    return _user_to_dict(user)


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_user_by_login(session: AsyncSession, email_or_username: str) -> Optional[Dict]:
    """
    Get user by email address or username (both case-insensitive).

    Returns:
        User dictionary (including password_hash) or None if not found
    """
    value = email_or_username.strip().lower()
    if not value:
        return None
    query = select(User).where(
        or_(func.lower(User.email) == value, func.lower(User.username) == value)
    ).limit(1)
    result = await session.execute(query)
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_user_memberships(session: AsyncSession, user_id: int) -> List[Dict]:
    """Teams the user belongs to, with their role in each."""
    result = await session.execute(
        select(TeamMember, Team)
        .join(Team, Team.id == TeamMember.team_id)
        .where(TeamMember.user_id == user_id)
        .order_by(Team.name)
    )
    return [
        {
            "team_id": team.id,
            "team_name": team.name,
            "team_slug": team.slug,
            "role": member.role.value,
            "joined_at": isoformat(member.joined_at),
        }
        for member, team in result.all()
    ]


def public_user(user: Dict) -> Dict:
    """Strip private fields before returning a user to a client."""
    return {k: v for k, v in user.items() if k != "password_hash"}


def _user_to_dict(user: User) -> Dict:
    """
    Convert a User ORM instance to a dictionary.
    """
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "password_hash": user.password_hash,
        "created_at": isoformat(user.created_at),
    }
