"""
Game service layer: games, offensive players and per-player defender pools.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select, func, delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from dline.database.models import (
    ActivityType,
    AvailableDefender,
    CurrentPointDefender,
    Defender,
    Game,
    GameStatus,
    OffensivePlayer,
    Point,
    Team,
    TeamMember,
)
from dline.services import activity_service, point_service, selected_defender_service, stats_service
from dline.services.defender_service import defender_to_dict
from dline.services.team_service import unique_slug
from dline.utils.datetime_utils import isoformat
from dline.utils.exceptions import NotFoundError
from dline.utils.slugify import generate_share_code

logger = logging.getLogger(__name__)


async def _unique_share_code(session: AsyncSession) -> str:
    while True:
        code = generate_share_code()
        result = await session.execute(select(Game.id).where(Game.share_code == code))
        if result.scalar_one_or_none() is None:
            return code


async def get_game_id_by_slug(session: AsyncSession, slug: str) -> int:
    result = await session.execute(select(Game.id).where(Game.slug == slug))
    game_id = result.scalar_one_or_none()
    if game_id is None:
        raise NotFoundError("Game not found")
    return game_id


async def get_game_id_by_share_code(session: AsyncSession, share_code: str) -> int:
    result = await session.execute(select(Game.id).where(Game.share_code == share_code))
    game_id = result.scalar_one_or_none()
    if game_id is None:
        raise NotFoundError("Game not found")
    return game_id


async def list_user_games(
    session: AsyncSession,
    user_id: int,
    team_id: Optional[int] = None,
    status: Optional[GameStatus] = None,
) -> List[Dict]:
    """
    Games of every team the user belongs to, newest first.

    Args:
        team_id: Only this team
        status: Only games in this status
    """
    point_count = select(func.count(Point.id)).where(Point.game_id == Game.id).scalar_subquery()
    query = (
        select(Game, Team.name, point_count)
        .join(Team, Team.id == Game.team_id)
        .join(TeamMember, TeamMember.team_id == Game.team_id)
        .where(TeamMember.user_id == user_id)
        .order_by(Game.game_date.desc(), Game.created_at.desc(), Game.id.desc())
    )
    if team_id is not None:
        query = query.where(Game.team_id == team_id)
    if status is not None:
        query = query.where(Game.status == status)

    result = await session.execute(query)
    return [
        {**game_to_dict(game), "team_name": team_name, "point_count": points or 0}
        for game, team_name, points in result.all()
    ]


async def create_game(session: AsyncSession, user_id: int, fields: Dict) -> Dict:
    """
    Create a game in SETUP status with a unique slug and share code.

    Args:
        fields: team_id, name, opponent, location, game_date, is_public
    """
    game = Game(
        created_by_id=user_id,
        slug=await unique_slug(session, Game.slug, fields["name"]),
        share_code=await _unique_share_code(session),
        status=GameStatus.SETUP,
        **fields,
    )
    session.add(game)
    await session.flush()
    await activity_service.log_activity(
        session, game.id, user_id, ActivityType.GAME_CREATED, f"Created game {game.name}"
    )
    await session.refresh(game)
    logger.info(f"User {user_id} created game {game.id} for team {game.team_id}")
    return game_to_dict(game)


async def update_game(session: AsyncSession, game: Game, user_id: int, fields: Dict) -> Dict:
    """
    Apply the provided fields. Any status may be set directly; starting and
    completing a game are written to the activity log.
    """
    new_status = fields.get("status")
    if new_status is not None and new_status != game.status:
        if new_status == GameStatus.IN_PROGRESS:
            await activity_service.log_activity(
                session, game.id, user_id, ActivityType.GAME_STARTED, "Started game"
            )
        elif new_status == GameStatus.COMPLETED:
            await activity_service.log_activity(
                session, game.id, user_id, ActivityType.GAME_COMPLETED, "Completed game"
            )
    if "name" in fields and fields["name"] != game.name:
        game.slug = await unique_slug(session, Game.slug, fields["name"])
    for key, value in fields.items():
        setattr(game, key, value)
    await session.flush()
    await session.refresh(game)
    return game_to_dict(game)


async def delete_game(session: AsyncSession, game: Game) -> None:
    """Hard delete; points, matchups, players, stats and activity cascade."""
    game_id = game.id
    await session.execute(delete(Game).where(Game.id == game_id))
    await session.flush()
    logger.info(f"Deleted game {game_id}")


async def get_game_detail(session: AsyncSession, game: Game) -> Dict:
    """
    Full nested game payload: team, offensive players (with candidate and
    current-point defenders), points with matchups, the called line and the
    maintained defender statistics.
    """
    team_result = await session.execute(select(Team).where(Team.id == game.team_id))
    team = team_result.scalar_one()

    players_result = await session.execute(
        select(OffensivePlayer)
        .where(OffensivePlayer.game_id == game.id)
        .order_by(OffensivePlayer.is_bench, OffensivePlayer.order, OffensivePlayer.id)
    )
    players = players_result.scalars().all()
    player_ids = [p.id for p in players]

    available: Dict[int, List[Dict]] = {}
    current: Dict[int, Dict] = {}
    if player_ids:
        available_result = await session.execute(
            select(AvailableDefender)
            .options(selectinload(AvailableDefender.defender))
            .where(AvailableDefender.offensive_player_id.in_(player_ids))
        )
        for row in available_result.scalars().all():
            available.setdefault(row.offensive_player_id, []).append(defender_to_dict(row.defender))
        current_result = await session.execute(
            select(CurrentPointDefender)
            .options(selectinload(CurrentPointDefender.defender))
            .where(CurrentPointDefender.offensive_player_id.in_(player_ids))
        )
        for row in current_result.scalars().all():
            current[row.offensive_player_id] = defender_to_dict(row.defender)

    return {
        **game_to_dict(game),
        "team": {"id": team.id, "name": team.name, "slug": team.slug},
        "offensive_players": [
            {
                **offensive_player_to_dict(p),
                "available_defenders": available.get(p.id, []),
                "current_point_defender": current.get(p.id),
            }
            for p in players
        ],
        "points": await point_service.list_points(session, game.id),
        "selected_defenders": await selected_defender_service.get_selected_defenders(session, game.id),
        "defender_stats": await stats_service.get_game_defender_stats(session, game.id),
    }


# ---------------------------------------------------------------------------
# Offensive players
# ---------------------------------------------------------------------------

async def get_offensive_player_or_raise(session: AsyncSession, player_id: int) -> OffensivePlayer:
    result = await session.execute(select(OffensivePlayer).where(OffensivePlayer.id == player_id))
    player = result.scalar_one_or_none()
    if player is None:
        raise NotFoundError("Offensive player not found")
    return player


async def add_offensive_player(session: AsyncSession, game_id: int, user_id: int, fields: Dict) -> Dict:
    """Append a player; its order is the current player count."""
    count_result = await session.execute(
        select(func.count(OffensivePlayer.id)).where(OffensivePlayer.game_id == game_id)
    )
    player = OffensivePlayer(game_id=game_id, order=count_result.scalar_one(), **fields)
    session.add(player)
    await session.flush()
    await activity_service.log_activity(
        session, game_id, user_id, ActivityType.PLAYER_ADDED, f"Added offensive player {player.name}"
    )
    await session.refresh(player)
    return offensive_player_to_dict(player)


async def update_offensive_player(session: AsyncSession, player: OffensivePlayer, fields: Dict) -> Dict:
    for key, value in fields.items():
        setattr(player, key, value)
    await session.flush()
    await session.refresh(player)
    return offensive_player_to_dict(player)


async def delete_offensive_player(session: AsyncSession, player: OffensivePlayer, user_id: int) -> None:
    """Remove a player; its matchups and defender pools cascade."""
    await activity_service.log_activity(
        session,
        player.game_id,
        user_id,
        ActivityType.PLAYER_REMOVED,
        f"Removed offensive player {player.name}",
    )
    await session.execute(delete(OffensivePlayer).where(OffensivePlayer.id == player.id))
    await session.flush()


async def reorder_offensive_players(session: AsyncSession, game_id: int, player_ids: List[int]) -> List[Dict]:
    """
    Rewrite display order to 0..n-1 following ``player_ids``, which must list
    every player of the game exactly once.

    Raises:
        ValueError: Duplicate ids, an id that is not a player of this game, or
            a player left out
    """
    if len(set(player_ids)) != len(player_ids):
        raise ValueError("Player ids must be unique")
    result = await session.execute(
        select(OffensivePlayer.id).where(OffensivePlayer.game_id == game_id)
    )
    game_player_ids = set(result.scalars().all())
    unknown = [pid for pid in player_ids if pid not in game_player_ids]
    if unknown:
        raise ValueError(f"Players {unknown} do not belong to this game")
    missing = sorted(game_player_ids - set(player_ids))
    if missing:
        raise ValueError(f"Players {missing} are missing from the new order")

    for index, player_id in enumerate(player_ids):
        await session.execute(
            update(OffensivePlayer).where(OffensivePlayer.id == player_id).values(order=index)
        )
    await session.flush()

    ordered = await session.execute(
        select(OffensivePlayer)
        .where(OffensivePlayer.game_id == game_id)
        .order_by(OffensivePlayer.is_bench, OffensivePlayer.order, OffensivePlayer.id)
        .execution_options(populate_existing=True)
    )
    return [offensive_player_to_dict(p) for p in ordered.scalars().all()]


async def _require_team_defender(session: AsyncSession, game_id: int, defender_id: int) -> Defender:
    result = await session.execute(
        select(Defender).join(Game, Game.team_id == Defender.team_id).where(
            Game.id == game_id, Defender.id == defender_id
        )
    )
    defender = result.scalar_one_or_none()
    if defender is None:
        raise ValueError("Defender does not belong to this game's team")
    return defender


async def add_available_defender(session: AsyncSession, player: OffensivePlayer, defender_id: int) -> Dict:
    """Add a defender to a player's candidate pool (no-op if already there)."""
    defender = await _require_team_defender(session, player.game_id, defender_id)
    existing = await session.execute(
        select(AvailableDefender.id).where(
            AvailableDefender.offensive_player_id == player.id,
            AvailableDefender.defender_id == defender_id,
        )
    )
    if existing.scalar_one_or_none() is None:
        session.add(AvailableDefender(offensive_player_id=player.id, defender_id=defender_id))
        await session.flush()
    return {"offensive_player_id": player.id, "defender": defender_to_dict(defender)}


async def remove_available_defender(session: AsyncSession, player: OffensivePlayer, defender_id: int) -> None:
    result = await session.execute(
        delete(AvailableDefender).where(
            AvailableDefender.offensive_player_id == player.id,
            AvailableDefender.defender_id == defender_id,
        )
    )
    if result.rowcount == 0:
        raise NotFoundError("Defender is not in this player's pool")
    await session.flush()


async def set_current_point_defender(
    session: AsyncSession, player: OffensivePlayer, defender_id: Optional[int]
) -> Dict:
    """
    Assign the defender guarding ``player`` on the point being built;
    ``defender_id=None`` clears the assignment.
    """
    await session.execute(
        delete(CurrentPointDefender).where(CurrentPointDefender.offensive_player_id == player.id)
    )
    if defender_id is not None:
        await _require_team_defender(session, player.game_id, defender_id)
        session.add(CurrentPointDefender(offensive_player_id=player.id, defender_id=defender_id))
    await session.flush()
    return {"offensive_player_id": player.id, "defender_id": defender_id}


async def clear_current_point_defenders(session: AsyncSession, game_id: int) -> List[int]:
    """
    Clear every current-point assignment of a game.

    Returns:
        Offensive player ids whose assignment was cleared
    """
    result = await session.execute(
        select(CurrentPointDefender.offensive_player_id)
        .join(OffensivePlayer, OffensivePlayer.id == CurrentPointDefender.offensive_player_id)
        .where(OffensivePlayer.game_id == game_id)
    )
    player_ids = list(result.scalars().all())
    if player_ids:
        await session.execute(
            delete(CurrentPointDefender).where(
                CurrentPointDefender.offensive_player_id.in_(player_ids)
            )
        )
        await session.flush()
    return player_ids


def game_to_dict(game: Game) -> Dict:
    return {
        "id": game.id,
        "team_id": game.team_id,
        "created_by_id": game.created_by_id,
        "name": game.name,
        "slug": game.slug,
        "share_code": game.share_code,
        "opponent": game.opponent,
        "location": game.location,
        "game_date": isoformat(game.game_date),
        "is_public": game.is_public,
        "status": game.status.value,
        "created_at": isoformat(game.created_at),
        "updated_at": isoformat(game.updated_at),
    }


def offensive_player_to_dict(player: OffensivePlayer) -> Dict:
    return {
        "id": player.id,
        "game_id": player.game_id,
        "name": player.name,
        "position": player.position.value,
        "jersey_number": player.jersey_number,
        "order": player.order,
        "is_bench": player.is_bench,
    }
