"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator

from dline.database.models import (
    GameStatus,
    MatchupResult,
    OffensivePosition,
    TeamRole,
)


def _reject_null(value, info: ValidationInfo):
    """Fields that map to NOT NULL columns may be omitted but not set to null."""
    if value is None:
        raise ValueError(f"{info.field_name} cannot be null")
    return value


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    """Request to create an account."""

    email: EmailStr
    username: str = Field(min_length=3, max_length=20, pattern=r"^[A-Za-z0-9_]+$")
    password: str = Field(min_length=8)


class LoginRequest(BaseModel):
    """Login with email or username and password."""

    email_or_username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RefreshTokenRequest(BaseModel):
    """Request to exchange a refresh token for a new token pair."""

    refresh_token: str


class UserResponse(BaseModel):
    """Public user fields."""

    id: int
    email: str
    username: str
    created_at: Optional[str] = None


class AuthResponse(BaseModel):
    """Token pair plus the authenticated user."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

class TeamCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None


class TeamUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None

    check_not_null = field_validator("name")(_reject_null)


class TeamMemberAdd(BaseModel):
    """Add an existing user to a team."""

    email_or_username: str = Field(min_length=1)
    role: TeamRole = TeamRole.MEMBER

    @field_validator("role")
    @classmethod
    def role_not_owner(cls, v: TeamRole) -> TeamRole:
        if v == TeamRole.OWNER:
            raise ValueError("A team has exactly one owner; choose ADMIN, MEMBER or VIEWER")
        return v


# ---------------------------------------------------------------------------
# Defenders and lines
# ---------------------------------------------------------------------------

class DefenderFields(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    jersey_number: Optional[str] = None
    position: Optional[str] = None
    notes: Optional[str] = None
    active: bool = True


class DefenderCreate(DefenderFields):
    team_id: int


class DefenderBulkCreate(BaseModel):
    """Create several defenders for one team at once."""

    team_id: int
    defenders: List[DefenderFields] = Field(min_length=1)


class DefenderUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    jersey_number: Optional[str] = None
    position: Optional[str] = None
    notes: Optional[str] = None
    active: Optional[bool] = None

    check_not_null = field_validator("name", "active")(_reject_null)


class LineCreate(BaseModel):
    """Named template of up to seven defenders."""

    team_id: int
    name: str = Field(min_length=1, max_length=100)
    defender_ids: List[int] = Field(default_factory=list)


class LineUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    defender_ids: Optional[List[int]] = None

    check_not_null = field_validator("name", "defender_ids")(_reject_null)


# ---------------------------------------------------------------------------
# Games and offensive players
# ---------------------------------------------------------------------------

class GameCreate(BaseModel):
    team_id: int
    name: str = Field(min_length=1, max_length=100)
    opponent: Optional[str] = None
    location: Optional[str] = None
    game_date: Optional[datetime] = None
    is_public: bool = False


class GameUpdate(BaseModel):
    """Any field may be changed; status is set directly with no transition table."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    opponent: Optional[str] = None
    location: Optional[str] = None
    game_date: Optional[datetime] = None
    is_public: Optional[bool] = None
    status: Optional[GameStatus] = None

    check_not_null = field_validator("name", "is_public", "status")(_reject_null)


class OffensivePlayerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    position: OffensivePosition = OffensivePosition.CUTTER
    jersey_number: Optional[str] = None
    is_bench: bool = False


class OffensivePlayerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    position: Optional[OffensivePosition] = None
    jersey_number: Optional[str] = None
    is_bench: Optional[bool] = None

    check_not_null = field_validator("name", "position", "is_bench")(_reject_null)


class ReorderPlayersRequest(BaseModel):
    """Offensive player ids in their new display order."""

    player_ids: List[int] = Field(min_length=1)


class DefenderAssignment(BaseModel):
    defender_id: int


class CurrentPointDefenderRequest(BaseModel):
    """Assign (or clear, with null) the defender for the point being built."""

    defender_id: Optional[int] = None


# ---------------------------------------------------------------------------
# Points and matchups
# ---------------------------------------------------------------------------

class MatchupInput(BaseModel):
    offensive_player_id: int
    defender_id: Optional[int] = None
    result: Optional[MatchupResult] = None
    notes: Optional[str] = None
    is_active: bool = True


class PointCreate(BaseModel):
    """
    Record one point.

    selected_defender_ids is the list of defenders credited with playing the
    point; matchups are display assignments only.
    """

    game_id: int
    got_break: bool
    notes: Optional[str] = None
    wind_speed: Optional[float] = Field(default=None, ge=0)
    wind_direction: Optional[str] = None
    selected_defender_ids: List[int] = Field(default_factory=list)
    matchups: List[MatchupInput] = Field(default_factory=list)
    client_request_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class PointUpdate(BaseModel):
    got_break: Optional[bool] = None
    notes: Optional[str] = None
    wind_speed: Optional[float] = Field(default=None, ge=0)
    wind_direction: Optional[str] = None

    check_not_null = field_validator("got_break")(_reject_null)


class MatchupUpdate(BaseModel):
    """Only fields present in the request body are changed."""

    defender_id: Optional[int] = None
    result: Optional[MatchupResult] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    check_not_null = field_validator("is_active")(_reject_null)


class SelectedDefendersUpdate(BaseModel):
    """Full replacement of the called line for a game."""

    defender_ids: List[int] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    timestamp: str
