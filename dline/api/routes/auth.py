"""Authentication route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from dline.api.routes import limiter, RATE_LIMIT_AUTH, INVALID_CREDENTIALS_RESPONSE
from dline.database.db import get_db_session
from dline.services import auth_service, user_service
from dline.api.auth_dependencies import get_current_user
from dline.models.schemas import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    AuthResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/auth/register", response_model=AuthResponse, status_code=201)
@limiter.limit(RATE_LIMIT_AUTH)
async def register(
    request: Request, payload: RegisterRequest, session: AsyncSession = Depends(get_db_session)
):
    """Create an account and sign the new user in."""
    user = await user_service.create_user(
        session,
        email=payload.email,
        username=payload.username,
        password_hash=auth_service.hash_password(payload.password),
    )
    tokens = auth_service.create_token_pair(user["id"])
    return {**tokens, "user": user_service.public_user(user)}


@router.post("/api/auth/login", response_model=AuthResponse)
@limiter.limit(RATE_LIMIT_AUTH)
async def login(
    request: Request, payload: LoginRequest, session: AsyncSession = Depends(get_db_session)
):
    """Login with email or username and password."""
    user = await user_service.get_user_by_login(session, payload.email_or_username)
    if not user or not auth_service.verify_password(payload.password, user["password_hash"]):
        raise INVALID_CREDENTIALS_RESPONSE

    logger.info(f"User {user['id']} logged in")
    tokens = auth_service.create_token_pair(user["id"])
    return {**tokens, "user": user_service.public_user(user)}


@router.post("/api/auth/refresh", response_model=AuthResponse)
async def refresh_token(
    payload: RefreshTokenRequest, session: AsyncSession = Depends(get_db_session)
):
    """Exchange a refresh token for a new token pair."""
    claims = auth_service.verify_token(payload.refresh_token, token_type="refresh")
    if claims is None or claims.get("user_id") is None:
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

    user = await user_service.get_user_by_id(session, claims["user_id"])
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")

    tokens = auth_service.create_token_pair(user["id"])
    return {**tokens, "user": user_service.public_user(user)}


@router.get("/api/auth/me")
async def get_me(
    user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_db_session)
):
    """Current user with their team memberships."""
    return {
        **user_service.public_user(user),
        "teams": await user_service.get_user_memberships(session, user["id"]),
    }
