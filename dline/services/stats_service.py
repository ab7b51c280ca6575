"""
Read-side statistics: break percentages and per-defender / per-game aggregates.

Defenders are credited from each point's selected_defender_ids only;
matchup assignments never count toward playing time.
"""

import math
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.models import Defender, DefenderStats, Game, Point


def break_percentage(breaks: int, points_played: int) -> int:
    """
    Whole-number percentage of points that ended in a break.

    Halves round up. Returns 0 when no points were played.
    """
    if not points_played:
        return 0
    return int(math.floor(breaks * 100 / points_played + 0.5))


def stats_row_to_dict(row: DefenderStats) -> Dict:
    return {
        "defender_id": row.defender_id,
        "game_id": row.game_id,
        "points_played": row.points_played,
        "breaks": row.breaks,
        "no_breaks": row.no_breaks,
        "break_percentage": break_percentage(row.breaks, row.points_played),
    }


def compute_point_statistics(points: Iterable[Dict], defender_names: Dict[int, str]) -> Dict:
    """
    Aggregate a game's points into totals and per-defender figures.

    Args:
        points: Point dicts carrying got_break and selected_defender_ids
        defender_names: defender_id -> name for labelling

    Returns:
        {"total_points", "total_breaks", "break_percentage", "defenders": [...]}
    """
    total_points = 0
    total_breaks = 0
    per_defender: Dict[int, Dict] = {}

    for point in points:
        total_points += 1
        if point["got_break"]:
            total_breaks += 1
        for defender_id in point.get("selected_defender_ids") or []:
            entry = per_defender.setdefault(
                defender_id,
                {
                    "defender_id": defender_id,
                    "name": defender_names.get(defender_id, "Unknown"),
                    "points_played": 0,
                    "breaks": 0,
                    "no_breaks": 0,
                },
            )
            entry["points_played"] += 1
            if point["got_break"]:
                entry["breaks"] += 1
            else:
                entry["no_breaks"] += 1

    defenders = sorted(per_defender.values(), key=lambda d: (-d["points_played"], d["name"]))
    for entry in defenders:
        entry["break_percentage"] = break_percentage(entry["breaks"], entry["points_played"])

    return {
        "total_points": total_points,
        "total_breaks": total_breaks,
        "break_percentage": break_percentage(total_breaks, total_points),
        "defenders": defenders,
    }


async def get_game_defender_stats(session: AsyncSession, game_id: int) -> List[Dict]:
    """Maintained DefenderStats rows for a game, most points played first."""
    result = await session.execute(
        select(DefenderStats, Defender.name)
        .join(Defender, Defender.id == DefenderStats.defender_id)
        .where(DefenderStats.game_id == game_id)
        .order_by(DefenderStats.points_played.desc(), Defender.name)
        .execution_options(populate_existing=True)
    )
    return [{**stats_row_to_dict(row), "name": name} for row, name in result.all()]


async def get_defender_stats(
    session: AsyncSession, defender_id: int, game_id: Optional[int] = None
) -> Dict:
    """
    Totals and per-game breakdown for one defender.

    Args:
        game_id: Restrict to a single game
    """
    query = (
        select(DefenderStats, Game.name, Game.opponent)
        .join(Game, Game.id == DefenderStats.game_id)
        .where(DefenderStats.defender_id == defender_id)
        .order_by(Game.game_date.desc(), Game.id.desc())
        .execution_options(populate_existing=True)
    )
    if game_id is not None:
        query = query.where(DefenderStats.game_id == game_id)
    result = await session.execute(query)

    games = []
    totals = {"points_played": 0, "breaks": 0, "no_breaks": 0}
    for row, game_name, opponent in result.all():
        games.append({**stats_row_to_dict(row), "game_name": game_name, "opponent": opponent})
        totals["points_played"] += row.points_played
        totals["breaks"] += row.breaks
        totals["no_breaks"] += row.no_breaks

    return {
        "defender_id": defender_id,
        "total_games": sum(1 for g in games if g["points_played"] > 0),
        **totals,
        "break_percentage": break_percentage(totals["breaks"], totals["points_played"]),
        "games": games,
    }


async def get_team_stats(session: AsyncSession, team_id: int) -> Dict:
    """
    Season view of a team: every defender's totals across games plus
    game-level totals.
    """
    result = await session.execute(
        select(
            Defender.id,
            Defender.name,
            Defender.jersey_number,
            func.coalesce(func.sum(case((DefenderStats.points_played > 0, 1), else_=0)), 0),
            func.coalesce(func.sum(DefenderStats.points_played), 0),
            func.coalesce(func.sum(DefenderStats.breaks), 0),
            func.coalesce(func.sum(DefenderStats.no_breaks), 0),
        )
        .outerjoin(DefenderStats, DefenderStats.defender_id == Defender.id)
        .where(Defender.team_id == team_id)
        .group_by(Defender.id, Defender.name, Defender.jersey_number)
    )
    defenders = [
        {
            "defender_id": defender_id,
            "name": name,
            "jersey_number": jersey_number,
            "total_games": total_games or 0,
            "total_points": int(points),
            "total_breaks": int(breaks),
            "total_no_breaks": int(no_breaks),
            "break_percentage": break_percentage(int(breaks), int(points)),
        }
        for defender_id, name, jersey_number, total_games, points, breaks, no_breaks in result.all()
    ]
    defenders.sort(key=lambda d: (-d["total_points"], d["name"]))

    game_totals = await session.execute(
        select(
            func.count(func.distinct(Game.id)),
            func.count(Point.id),
            func.coalesce(func.sum(case((Point.got_break.is_(True), 1), else_=0)), 0),
        )
        .select_from(Game)
        .outerjoin(Point, Point.game_id == Game.id)
        .where(Game.team_id == team_id)
    )
    total_games, total_points, total_breaks = game_totals.one()
    total_breaks = int(total_breaks)

    return {
        "team_id": team_id,
        "defenders": defenders,
        "game_stats": {
            "total_games": total_games,
            "total_points": total_points,
            "total_breaks": total_breaks,
            "break_percentage": break_percentage(total_breaks, total_points),
            "average_points_per_game": round(total_points / total_games, 1) if total_games else 0,
        },
    }
