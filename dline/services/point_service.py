"""
Point and matchup recorder.

Each point mutation runs inside the request transaction together with every
DefenderStats adjustment it causes, so for every (defender, game) pair
points_played == breaks + no_breaks holds after any committed request.

Crediting rule: the defenders listed in a point's selected_defender_ids are
the ones who played it. Matchups record who guarded whom and never change
DefenderStats.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, update, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from dline.database.models import (
    ActivityType,
    DefenderStats,
    Game,
    GameStatus,
    Matchup,
    OffensivePlayer,
    Point,
)
from dline.services import activity_service
from dline.services.defender_service import get_team_defender_ids
from dline.utils.constants import MAX_LINE_SIZE
from dline.utils.datetime_utils import isoformat, utcnow
from dline.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def _outcome(got_break: bool) -> str:
    return "Break" if got_break else "No Break"


async def validate_selected_defenders(
    session: AsyncSession, team_id: int, defender_ids: List[int]
) -> List[int]:
    """
    Collapse duplicates (first occurrence wins) and check the called line.

    Raises:
        ValueError: More than seven defenders, or an id not on the team
    """
    unique_ids = list(dict.fromkeys(defender_ids))
    if len(unique_ids) > MAX_LINE_SIZE:
        raise ValueError(f"At most {MAX_LINE_SIZE} defenders can be selected for a point")
    if unique_ids:
        team_ids = await get_team_defender_ids(session, team_id)
        unknown = [d for d in unique_ids if d not in team_ids]
        if unknown:
            raise ValueError(f"Defenders {unknown} do not belong to this team")
    return unique_ids


async def _validate_matchups(session: AsyncSession, game: Game, matchups: List[Dict]) -> None:
    player_ids = {m["offensive_player_id"] for m in matchups}
    if player_ids:
        result = await session.execute(
            select(OffensivePlayer.id).where(
                OffensivePlayer.game_id == game.id, OffensivePlayer.id.in_(sorted(player_ids))
            )
        )
        unknown = player_ids - set(result.scalars().all())
        if unknown:
            raise ValueError(f"Offensive players {sorted(unknown)} do not belong to this game")

    defender_ids = {m["defender_id"] for m in matchups if m.get("defender_id") is not None}
    if defender_ids:
        team_ids = await get_team_defender_ids(session, game.team_id)
        unknown = defender_ids - team_ids
        if unknown:
            raise ValueError(f"Defenders {sorted(unknown)} do not belong to this team")


async def _credit_point(session: AsyncSession, game_id: int, defender_ids: List[int], got_break: bool) -> None:
    """Add one played point (and its outcome) to each defender's stats row."""
    if not defender_ids:
        return
    result = await session.execute(
        select(DefenderStats.defender_id).where(
            DefenderStats.game_id == game_id, DefenderStats.defender_id.in_(defender_ids)
        )
    )
    existing = set(result.scalars().all())

    if existing:
        await session.execute(
            update(DefenderStats)
            .where(DefenderStats.game_id == game_id, DefenderStats.defender_id.in_(sorted(existing)))
            .values(
                points_played=DefenderStats.points_played + 1,
                breaks=DefenderStats.breaks + (1 if got_break else 0),
                no_breaks=DefenderStats.no_breaks + (0 if got_break else 1),
            )
            .execution_options(synchronize_session=False)
        )
    session.add_all(
        DefenderStats(
            defender_id=defender_id,
            game_id=game_id,
            points_played=1,
            breaks=1 if got_break else 0,
            no_breaks=0 if got_break else 1,
        )
        for defender_id in defender_ids
        if defender_id not in existing
    )
    await session.flush()


async def _uncredit_point(session: AsyncSession, game_id: int, defender_ids: List[int], got_break: bool) -> None:
    """Remove exactly the credit a point added (rows that no longer exist are skipped)."""
    if not defender_ids:
        return
    await session.execute(
        update(DefenderStats)
        .where(DefenderStats.game_id == game_id, DefenderStats.defender_id.in_(defender_ids))
        .values(
            points_played=DefenderStats.points_played - 1,
            breaks=DefenderStats.breaks - (1 if got_break else 0),
            no_breaks=DefenderStats.no_breaks - (0 if got_break else 1),
        )
        .execution_options(synchronize_session=False)
    )
    await session.flush()


async def _flip_outcome(session: AsyncSession, game_id: int, defender_ids: List[int], got_break: bool) -> None:
    """Move one count between breaks and no_breaks; points_played is unchanged."""
    if not defender_ids:
        return
    delta = 1 if got_break else -1
    await session.execute(
        update(DefenderStats)
        .where(DefenderStats.game_id == game_id, DefenderStats.defender_id.in_(defender_ids))
        .values(
            breaks=DefenderStats.breaks + delta,
            no_breaks=DefenderStats.no_breaks - delta,
        )
        .execution_options(synchronize_session=False)
    )
    await session.flush()


async def get_point_or_raise(session: AsyncSession, point_id: int) -> Point:
    result = await session.execute(select(Point).where(Point.id == point_id))
    point = result.scalar_one_or_none()
    if point is None:
        raise NotFoundError("Point not found")
    return point


def _points_query():
    return select(Point).options(
        selectinload(Point.matchups).selectinload(Matchup.offensive_player),
        selectinload(Point.matchups).selectinload(Matchup.defender),
    )


async def get_point(session: AsyncSession, point_id: int) -> Dict:
    """Point with its matchups, read fresh from the database."""
    result = await session.execute(
        _points_query().where(Point.id == point_id).execution_options(populate_existing=True)
    )
    point = result.scalar_one_or_none()
    if point is None:
        raise NotFoundError("Point not found")
    return point_to_dict(point)


async def list_points(session: AsyncSession, game_id: int) -> List[Dict]:
    """All points of a game in point-number order, with matchups."""
    result = await session.execute(
        _points_query()
        .where(Point.game_id == game_id)
        .order_by(Point.point_number)
        .execution_options(populate_existing=True)
    )
    return [point_to_dict(p) for p in result.scalars().all()]


async def create_point(session: AsyncSession, game: Game, user_id: int, data: Dict) -> Tuple[Dict, bool]:
    """
    Record a point with its matchups and credit every selected defender.

    The caller must hold the game row lock so numbering is serial.

    Args:
        game: Locked game the point belongs to
        data: got_break, notes, wind_speed, wind_direction,
              selected_defender_ids, matchups, client_request_id

    Returns:
        (point dict, created) where created is False when client_request_id
        matched an already-recorded point and nothing was written

    Raises:
        ValueError: Invalid defenders or offensive players
    """
    request_id = data.get("client_request_id")
    if request_id:
        existing = await session.execute(
            select(Point.id).where(Point.game_id == game.id, Point.client_request_id == request_id)
        )
        existing_id = existing.scalar_one_or_none()
        if existing_id is not None:
            logger.info(f"Duplicate point submission {request_id} for game {game.id}")
            return await get_point(session, existing_id), False

    selected_ids = await validate_selected_defenders(
        session, game.team_id, data.get("selected_defender_ids") or []
    )
    matchups = data.get("matchups") or []
    await _validate_matchups(session, game, matchups)

    max_result = await session.execute(
        select(func.coalesce(func.max(Point.point_number), 0)).where(Point.game_id == game.id)
    )
    point_number = max_result.scalar_one() + 1

    got_break = data["got_break"]
    point = Point(
        game_id=game.id,
        point_number=point_number,
        got_break=got_break,
        notes=data.get("notes"),
        wind_speed=data.get("wind_speed"),
        wind_direction=data.get("wind_direction"),
        selected_defender_ids=selected_ids,
        client_request_id=request_id,
        completed_at=utcnow(),
    )
    session.add(point)
    await session.flush()

    session.add_all(
        Matchup(
            point_id=point.id,
            offensive_player_id=m["offensive_player_id"],
            defender_id=m.get("defender_id"),
            result=m.get("result"),
            notes=m.get("notes"),
            is_active=m.get("is_active", True),
        )
        for m in matchups
    )
    await session.flush()

    await _credit_point(session, game.id, selected_ids, got_break)

    if game.status == GameStatus.SETUP:
        game.status = GameStatus.IN_PROGRESS
        await activity_service.log_activity(
            session, game.id, user_id, ActivityType.GAME_STARTED, "Started game"
        )

    await activity_service.log_activity(
        session,
        game.id,
        user_id,
        ActivityType.POINT_ADDED,
        f"Added point #{point_number} ({_outcome(got_break)})",
        {"point_id": point.id, "selected_defender_ids": selected_ids},
    )
    logger.info(f"Recorded point #{point_number} for game {game.id} ({_outcome(got_break)})")
    return await get_point(session, point.id), True


async def update_point(session: AsyncSession, point: Point, user_id: int, fields: Dict) -> Dict:
    """
    Edit a point. Flipping got_break moves each credited defender's count
    between breaks and no_breaks; points_played never changes here.
    """
    new_break = fields.get("got_break")
    if new_break is not None and new_break != point.got_break:
        await _flip_outcome(session, point.game_id, list(point.selected_defender_ids or []), new_break)
    for key, value in fields.items():
        if key == "got_break" and value is None:
            continue
        setattr(point, key, value)
    await session.flush()

    await activity_service.log_activity(
        session,
        point.game_id,
        user_id,
        ActivityType.POINT_EDITED,
        f"Edited point #{point.point_number} ({_outcome(point.got_break)})",
        {"point_id": point.id},
    )
    return await get_point(session, point.id)


async def delete_point(session: AsyncSession, point: Point, user_id: int) -> Dict:
    """
    Delete a point, remove its statistical credit and close the numbering gap.

    Returns:
        {"point_id", "point_number", "game_id"} of the deleted point
    """
    game_id = point.game_id
    point_id = point.id
    point_number = point.point_number

    await _uncredit_point(session, game_id, list(point.selected_defender_ids or []), point.got_break)
    await session.execute(delete(Point).where(Point.id == point_id))
    await session.flush()

    # Shift later points down one at a time, lowest first, so the
    # (game_id, point_number) unique constraint is never violated
    later = await session.execute(
        select(Point.id, Point.point_number)
        .where(Point.game_id == game_id, Point.point_number > point_number)
        .order_by(Point.point_number)
    )
    for later_id, later_number in later.all():
        await session.execute(
            update(Point)
            .where(Point.id == later_id)
            .values(point_number=later_number - 1)
            .execution_options(synchronize_session=False)
        )
    await session.flush()

    await activity_service.log_activity(
        session,
        game_id,
        user_id,
        ActivityType.POINT_DELETED,
        f"Deleted point #{point_number}",
        {"point_id": point_id},
    )
    logger.info(f"Deleted point #{point_number} from game {game_id}")
    return {"point_id": point_id, "point_number": point_number, "game_id": game_id}


async def update_matchup(
    session: AsyncSession, point: Point, matchup_id: int, user_id: int, fields: Dict
) -> Dict:
    """
    Change a matchup's display assignment. Statistics are not recomputed.

    Args:
        fields: Only the keys present are applied (defender_id may be None)

    Raises:
        NotFoundError: Matchup does not belong to the point
        ValueError: Defender is not on the game's team
    """
    result = await session.execute(
        select(Matchup).where(Matchup.id == matchup_id, Matchup.point_id == point.id)
    )
    matchup = result.scalar_one_or_none()
    if matchup is None:
        raise NotFoundError("Matchup not found for this point")

    defender_id: Optional[int] = fields.get("defender_id")
    if defender_id is not None:
        game_result = await session.execute(select(Game.team_id).where(Game.id == point.game_id))
        if defender_id not in await get_team_defender_ids(session, game_result.scalar_one()):
            raise ValueError("Defender does not belong to this team")

    for key, value in fields.items():
        setattr(matchup, key, value)
    await session.flush()

    await activity_service.log_activity(
        session,
        point.game_id,
        user_id,
        ActivityType.MATCHUP_CHANGED,
        f"Updated matchup on point #{point.point_number}",
        {"point_id": point.id, "matchup_id": matchup.id},
    )
    updated = await session.execute(
        select(Matchup)
        .options(selectinload(Matchup.offensive_player), selectinload(Matchup.defender))
        .where(Matchup.id == matchup.id)
        .execution_options(populate_existing=True)
    )
    return matchup_to_dict(updated.scalar_one())


def matchup_to_dict(matchup: Matchup) -> Dict:
    return {
        "id": matchup.id,
        "point_id": matchup.point_id,
        "offensive_player_id": matchup.offensive_player_id,
        "offensive_player_name": matchup.offensive_player.name if matchup.offensive_player else None,
        "offensive_player_position": (
            matchup.offensive_player.position.value if matchup.offensive_player else None
        ),
        "defender_id": matchup.defender_id,
        "defender_name": matchup.defender.name if matchup.defender else None,
        "result": matchup.result.value if matchup.result else None,
        "notes": matchup.notes,
        "is_active": matchup.is_active,
    }


def point_to_dict(point: Point) -> Dict:
    return {
        "id": point.id,
        "game_id": point.game_id,
        "point_number": point.point_number,
        "got_break": point.got_break,
        "notes": point.notes,
        "wind_speed": point.wind_speed,
        "wind_direction": point.wind_direction,
        "selected_defender_ids": list(point.selected_defender_ids or []),
        "client_request_id": point.client_request_id,
        "started_at": isoformat(point.started_at),
        "completed_at": isoformat(point.completed_at),
        "matchups": [matchup_to_dict(m) for m in sorted(point.matchups, key=lambda m: m.id)],
    }
