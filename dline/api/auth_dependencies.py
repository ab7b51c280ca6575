"""
Authentication dependencies for FastAPI routes.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from dline.services import auth_service, user_service, access_service
from dline.database.db import get_db_session
from dline.database.models import TeamRole
from dline.utils.exceptions import NotFoundError, PermissionDeniedError

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from JWT token.

    Args:
        session: Database session
        credentials: HTTP Bearer token credentials

    Returns:
        User dictionary

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired,
            or the user no longer exists
    """
    if credentials is None:
        raise _unauthorized("Authentication token required")

    # Verify token
    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid authentication token")

    # Get user_id from token
    user_id = payload.get("user_id")
    if user_id is None:
        raise _unauthorized("Invalid token payload")

    # Get user from database
    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise _unauthorized("User not found")

    return user


async def get_current_user_optional(
    session: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[dict]:
    """
    Optional dependency to get the current authenticated user.
    Returns None if no token is provided or token is invalid.
    """
    if credentials is None:
        return None

    try:
        return await get_current_user(session, credentials)
    except HTTPException:
        return None


async def require_user(user: dict = Depends(get_current_user)) -> dict:
    """Require any authenticated user."""
    return user


def make_require_team_role(min_role: TeamRole):
    """
    Build a dependency that requires ``min_role`` or higher in the team named
    by the ``team_id`` path parameter.
    """
    async def _dep(
        team_id: int,
        user: dict = Depends(get_current_user),
        session: AsyncSession = Depends(get_db_session),
    ) -> dict:
        try:
            await access_service.require_team_role(session, user["id"], team_id, min_role)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except PermissionDeniedError as e:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
        return user

    return _dep


require_team_viewer = make_require_team_role(TeamRole.VIEWER)
require_team_member = make_require_team_role(TeamRole.MEMBER)
require_team_admin = make_require_team_role(TeamRole.ADMIN)
require_team_owner = make_require_team_role(TeamRole.OWNER)
