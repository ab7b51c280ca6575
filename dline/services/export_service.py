"""
Game and roster exports (JSON and CSV).

Exports are read-only projections. Statistics use the same crediting rule as
the point recorder: a defender played a point if listed in its
selected_defender_ids.
"""

import csv
import io
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dline.database.models import Defender, Game, Team
from dline.services import game_service, point_service, stats_service
from dline.utils.constants import CSV_HEADERS, ROSTER_CSV_HEADERS
from dline.utils.datetime_utils import utcnow


def _yes_no(value: bool) -> str:
    return "Yes" if value else "No"


def _blank(value) -> str:
    return "" if value is None else str(value)


async def _defender_names(session: AsyncSession, team_id: int) -> Dict[int, str]:
    result = await session.execute(select(Defender.id, Defender.name).where(Defender.team_id == team_id))
    return {defender_id: name for defender_id, name in result.all()}


async def export_game_json(session: AsyncSession, game: Game) -> Dict:
    """Full nested game payload plus a computed ``statistics`` object."""
    detail = await game_service.get_game_detail(session, game)
    names = await _defender_names(session, game.team_id)
    return {
        "game": detail,
        "statistics": stats_service.compute_point_statistics(detail["points"], names),
        "exported_at": utcnow().isoformat(),
    }


def build_game_csv_rows(game: Dict, points: List[Dict]) -> List[List]:
    """
    Flatten a game into one row per matchup.

    A point with no matchups still gets a row; a game with no points gets a
    single summary row.
    """
    prefix = [
        game["name"],
        _blank(game.get("opponent")),
        _blank(game.get("location")),
        _blank(game.get("game_date")),
    ]
    rows = []
    for point in points:
        point_cols = [
            point["point_number"],
            _yes_no(point["got_break"]),
            _blank(point.get("wind_speed")),
            _blank(point.get("wind_direction")),
        ]
        if not point["matchups"]:
            rows.append(prefix + point_cols + ["", "", "", "", _blank(point.get("notes"))])
            continue
        for matchup in point["matchups"]:
            rows.append(
                prefix
                + point_cols
                + [
                    _blank(matchup.get("offensive_player_name")),
                    _blank(matchup.get("offensive_player_position")),
                    _blank(matchup.get("defender_name")),
                    _blank(matchup.get("result")),
                    _blank(matchup.get("notes")),
                ]
            )
    if not rows:
        rows.append(prefix + [0, "", "", "", "No points recorded", "", "", "", ""])
    return rows


def _to_csv(headers: List[str], rows: List[List]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


async def export_game_csv(session: AsyncSession, game: Game) -> str:
    points = await point_service.list_points(session, game.id)
    return _to_csv(CSV_HEADERS, build_game_csv_rows(game_service.game_to_dict(game), points))


async def export_team_roster_csv(session: AsyncSession, team_id: int) -> str:
    """Roster with Name, Position (HYBRID when unset), Active, Notes."""
    result = await session.execute(
        select(Defender).where(Defender.team_id == team_id).order_by(Defender.name, Defender.id)
    )
    rows = [
        [d.name, d.position or "HYBRID", _yes_no(d.active), _blank(d.notes)]
        for d in result.scalars().all()
    ]
    return _to_csv(ROSTER_CSV_HEADERS, rows)


def export_filename(kind: str, slug: str, extension: str) -> str:
    """``{kind}-{slug}-{epoch millis}.{ext}`` for Content-Disposition headers."""
    return f"{kind}-{slug}-{int(utcnow().timestamp() * 1000)}.{extension}"


async def get_team_slug(session: AsyncSession, team_id: int) -> str:
    result = await session.execute(select(Team.slug).where(Team.id == team_id))
    return result.scalar_one_or_none() or "team"
