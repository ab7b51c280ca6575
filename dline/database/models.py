"""
SQLAlchemy ORM models for the defensive matchup tracker.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    Enum,
    ForeignKey,
    JSON,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from dline.database.db import Base


class TeamRole(str, enum.Enum):
    """Team membership role, listed from most to least privileged."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


class GameStatus(str, enum.Enum):
    """Game lifecycle status."""

    SETUP = "SETUP"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class OffensivePosition(str, enum.Enum):
    """Position of an opposing (offensive) player."""

    HANDLER = "HANDLER"
    CENTER_HANDLER = "CENTER_HANDLER"
    RESET_HANDLER = "RESET_HANDLER"
    CUTTER = "CUTTER"
    FRONT_OF_STACK = "FRONT_OF_STACK"
    INITIATING_CUTTER = "INITIATING_CUTTER"
    FILL_CUTTER = "FILL_CUTTER"
    DEEP_CUTTER = "DEEP_CUTTER"


class MatchupResult(str, enum.Enum):
    """How a single defender fared against their assignment."""

    SHUTDOWN = "SHUTDOWN"
    CONTAINED = "CONTAINED"
    SCORED_ON = "SCORED_ON"
    NEUTRAL = "NEUTRAL"


class ActivityType(str, enum.Enum):
    """Audit trail entry type."""

    GAME_CREATED = "GAME_CREATED"
    GAME_STARTED = "GAME_STARTED"
    GAME_COMPLETED = "GAME_COMPLETED"
    POINT_ADDED = "POINT_ADDED"
    POINT_EDITED = "POINT_EDITED"
    POINT_DELETED = "POINT_DELETED"
    MATCHUP_CHANGED = "MATCHUP_CHANGED"
    PLAYER_ADDED = "PLAYER_ADDED"
    PLAYER_REMOVED = "PLAYER_REMOVED"


class User(Base):
    """User accounts with email/username + password authentication."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)
    username = Column(String(20), nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    memberships = relationship(
        "TeamMember", back_populates="user", cascade="all, delete", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_users_email", "email"),
        Index("idx_users_username", "username"),
    )


class Team(Base):
    """A club or squad whose defenders are being tracked."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    slug = Column(String, nullable=False, unique=True)
    invite_code = Column(String(6), nullable=False, unique=True)  # Stored uppercase
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    members = relationship(
        "TeamMember", back_populates="team", cascade="all, delete", passive_deletes=True
    )
    defenders = relationship(
        "Defender", back_populates="team", cascade="all, delete", passive_deletes=True
    )
    games = relationship(
        "Game", back_populates="team", cascade="all, delete", passive_deletes=True
    )
    lines = relationship(
        "DefensiveLine", back_populates="team", cascade="all, delete", passive_deletes=True
    )


class TeamMember(Base):
    """Membership of a user in a team."""

    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    role = Column(Enum(TeamRole), default=TeamRole.MEMBER, nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="memberships")
    team = relationship("Team", back_populates="members")

    __table_args__ = (
        UniqueConstraint("user_id", "team_id", name="uq_team_members_user_team"),
        Index("idx_team_members_team", "team_id"),
    )


class Defender(Base):
    """A player on our own team who can be put on the defensive line."""

    __tablename__ = "defenders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    jersey_number = Column(String, nullable=True)
    position = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    team = relationship("Team", back_populates="defenders")
    statistics = relationship(
        "DefenderStats", back_populates="defender", cascade="all, delete", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_defenders_team", "team_id"),
        Index("idx_defenders_name", "name"),
    )


class Game(Base):
    """A single game played by a team against an opponent."""

    __tablename__ = "games"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String(100), nullable=False)
    slug = Column(String, nullable=False, unique=True)
    share_code = Column(String(10), nullable=False, unique=True)
    opponent = Column(String, nullable=True)
    location = Column(String, nullable=True)
    game_date = Column(DateTime(timezone=True), nullable=True)
    is_public = Column(Boolean, default=False, nullable=False)
    status = Column(Enum(GameStatus), default=GameStatus.SETUP, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    team = relationship("Team", back_populates="games")
    created_by = relationship("User")
    offensive_players = relationship(
        "OffensivePlayer", back_populates="game", cascade="all, delete", passive_deletes=True
    )
    points = relationship(
        "Point", back_populates="game", cascade="all, delete", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_games_team", "team_id"),
        Index("idx_games_created_by", "created_by_id"),
    )


class OffensivePlayer(Base):
    """An opposing player that our defenders are matched against."""

    __tablename__ = "offensive_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    position = Column(Enum(OffensivePosition), default=OffensivePosition.CUTTER, nullable=False)
    jersey_number = Column(String, nullable=True)
    order = Column(Integer, default=0, nullable=False)
    is_bench = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    game = relationship("Game", back_populates="offensive_players")

    __table_args__ = (Index("idx_offensive_players_game", "game_id"),)


class Point(Base):
    """One recorded possession: break or no break, plus who played it."""

    __tablename__ = "points"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    point_number = Column(Integer, nullable=False)  # 1-based, contiguous within a game
    got_break = Column(Boolean, nullable=False)
    notes = Column(Text, nullable=True)
    wind_speed = Column(Float, nullable=True)
    wind_direction = Column(String, nullable=True)
    # Defenders credited with playing this point (Call-Your-Line selection)
    selected_defender_ids = Column(JSON, nullable=False, default=list)
    client_request_id = Column(String(64), nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    game = relationship("Game", back_populates="points")
    matchups = relationship(
        "Matchup", back_populates="point", cascade="all, delete", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("game_id", "point_number", name="uq_points_game_number"),
        UniqueConstraint("game_id", "client_request_id", name="uq_points_game_request"),
        Index("idx_points_game", "game_id"),
    )


class Matchup(Base):
    """Assignment of a defender to an offensive player during a point."""

    __tablename__ = "matchups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    point_id = Column(Integer, ForeignKey("points.id", ondelete="CASCADE"), nullable=False)
    offensive_player_id = Column(
        Integer, ForeignKey("offensive_players.id", ondelete="CASCADE"), nullable=False
    )
    defender_id = Column(Integer, ForeignKey("defenders.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    result = Column(Enum(MatchupResult), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    point = relationship("Point", back_populates="matchups")
    offensive_player = relationship("OffensivePlayer")
    defender = relationship("Defender")

    __table_args__ = (
        Index("idx_matchups_point", "point_id"),
        Index("idx_matchups_offensive_player", "offensive_player_id"),
        Index("idx_matchups_defender", "defender_id"),
    )


class DefenderStats(Base):
    """Per-defender, per-game counters maintained by the point recorder."""

    __tablename__ = "defender_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    defender_id = Column(Integer, ForeignKey("defenders.id", ondelete="CASCADE"), nullable=False)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    points_played = Column(Integer, default=0, nullable=False)
    breaks = Column(Integer, default=0, nullable=False)
    no_breaks = Column(Integer, default=0, nullable=False)

    # Relationships
    defender = relationship("Defender", back_populates="statistics")

    __table_args__ = (
        UniqueConstraint("defender_id", "game_id", name="uq_defender_stats_defender_game"),
        CheckConstraint("points_played >= 0", name="ck_defender_stats_points_played"),
        Index("idx_defender_stats_game", "game_id"),
    )


class SelectedDefender(Base):
    """The called line for the next point of a game (at most 7 rows per game)."""

    __tablename__ = "selected_defenders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    defender_id = Column(Integer, ForeignKey("defenders.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    defender = relationship("Defender")

    __table_args__ = (
        UniqueConstraint("game_id", "defender_id", name="uq_selected_defenders_game_defender"),
    )


class AvailableDefender(Base):
    """Candidate defender for guarding a given offensive player."""

    __tablename__ = "available_defenders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    offensive_player_id = Column(
        Integer, ForeignKey("offensive_players.id", ondelete="CASCADE"), nullable=False
    )
    defender_id = Column(Integer, ForeignKey("defenders.id", ondelete="CASCADE"), nullable=False)

    defender = relationship("Defender")

    __table_args__ = (
        UniqueConstraint(
            "offensive_player_id", "defender_id", name="uq_available_defenders_player_defender"
        ),
    )


class CurrentPointDefender(Base):
    """Defender assigned to an offensive player for the point being built."""

    __tablename__ = "current_point_defenders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    offensive_player_id = Column(
        Integer, ForeignKey("offensive_players.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    defender_id = Column(Integer, ForeignKey("defenders.id", ondelete="CASCADE"), nullable=False)

    defender = relationship("Defender")


class DefensiveLine(Base):
    """Named, reusable template of up to 7 defenders."""

    __tablename__ = "defensive_lines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    team = relationship("Team", back_populates="lines")
    defenders = relationship(
        "DefensiveLineDefender",
        back_populates="line",
        cascade="all, delete",
        passive_deletes=True,
        order_by="DefensiveLineDefender.order",
    )

    __table_args__ = (Index("idx_defensive_lines_team", "team_id"),)


class DefensiveLineDefender(Base):
    """Ordered membership of a defender in a defensive line."""

    __tablename__ = "defensive_line_defenders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    line_id = Column(Integer, ForeignKey("defensive_lines.id", ondelete="CASCADE"), nullable=False)
    defender_id = Column(Integer, ForeignKey("defenders.id", ondelete="CASCADE"), nullable=False)
    order = Column(Integer, default=0, nullable=False)

    line = relationship("DefensiveLine", back_populates="defenders")
    defender = relationship("Defender")

    __table_args__ = (
        UniqueConstraint("line_id", "defender_id", name="uq_line_defenders_line_defender"),
    )


class Activity(Base):
    """Append-only audit trail of changes made to a game."""

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(Enum(ActivityType), nullable=False)
    description = Column(String, nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_activities_game", "game_id"),
        Index("idx_activities_created_at", "created_at"),
    )
