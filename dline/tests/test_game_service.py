"""
Tests for games, offensive players and per-player defender pools.
"""

import pytest
from sqlalchemy import select

from dline.database.models import Activity, ActivityType, Game, GameStatus, OffensivePosition
from dline.services import game_service
from dline.utils.exceptions import NotFoundError


async def _game(session, game_dict) -> Game:
    return await session.get(Game, game_dict["id"])


@pytest.mark.asyncio
async def test_create_game_generates_codes(db_session, game):
    assert game["status"] == GameStatus.SETUP.value
    assert game["slug"].startswith("nationals-pool-play")
    assert len(game["share_code"]) == 10
    assert await game_service.get_game_id_by_share_code(db_session, game["share_code"]) == game["id"]
    assert await game_service.get_game_id_by_slug(db_session, game["slug"]) == game["id"]


@pytest.mark.asyncio
async def test_unknown_share_code_not_found(db_session, game):
    with pytest.raises(NotFoundError):
        await game_service.get_game_id_by_share_code(db_session, "NOPE")


@pytest.mark.asyncio
async def test_status_can_be_set_directly(db_session, owner, game):
    """No transition table: SETUP may jump straight to ARCHIVED and back."""
    updated = await game_service.update_game(
        db_session, await _game(db_session, game), owner["id"], {"status": GameStatus.ARCHIVED}
    )
    assert updated["status"] == "ARCHIVED"

    updated = await game_service.update_game(
        db_session, await _game(db_session, game), owner["id"], {"status": GameStatus.COMPLETED}
    )
    assert updated["status"] == "COMPLETED"

    result = await db_session.execute(
        select(Activity.type).where(Activity.game_id == game["id"]).order_by(Activity.id)
    )
    assert result.scalars().all() == [ActivityType.GAME_CREATED, ActivityType.GAME_COMPLETED]


@pytest.mark.asyncio
async def test_list_user_games_filters(db_session, owner, team, game):
    other = await game_service.create_game(
        db_session, owner["id"], {"team_id": team["id"], "name": "Semis"}
    )
    await game_service.update_game(
        db_session, await _game(db_session, other), owner["id"], {"status": GameStatus.IN_PROGRESS}
    )

    all_games = await game_service.list_user_games(db_session, owner["id"])
    in_progress = await game_service.list_user_games(
        db_session, owner["id"], status=GameStatus.IN_PROGRESS
    )

    assert {g["id"] for g in all_games} == {game["id"], other["id"]}
    assert [g["id"] for g in in_progress] == [other["id"]]


@pytest.mark.asyncio
async def test_offensive_players_append_in_order(db_session, owner, game):
    names = ["Handler", "Center", "Deep"]
    players = [
        await game_service.add_offensive_player(db_session, game["id"], owner["id"], {"name": n})
        for n in names
    ]

    assert [p["order"] for p in players] == [0, 1, 2]
    assert players[0]["position"] == OffensivePosition.CUTTER.value


@pytest.mark.asyncio
async def test_reorder_rewrites_order(db_session, owner, game):
    players = [
        await game_service.add_offensive_player(db_session, game["id"], owner["id"], {"name": n})
        for n in ("A", "B", "C")
    ]
    new_order = [players[2]["id"], players[0]["id"], players[1]["id"]]

    reordered = await game_service.reorder_offensive_players(db_session, game["id"], new_order)

    assert [p["id"] for p in reordered] == new_order
    assert [p["order"] for p in reordered] == [0, 1, 2]


@pytest.mark.asyncio
async def test_reorder_rejects_foreign_player(db_session, owner, game):
    player = await game_service.add_offensive_player(
        db_session, game["id"], owner["id"], {"name": "A"}
    )

    with pytest.raises(ValueError):
        await game_service.reorder_offensive_players(db_session, game["id"], [player["id"], 777])


@pytest.mark.asyncio
async def test_reorder_requires_every_player(db_session, owner, game):
    players = [
        await game_service.add_offensive_player(db_session, game["id"], owner["id"], {"name": n})
        for n in ("A", "B", "C")
    ]

    with pytest.raises(ValueError, match="missing"):
        await game_service.reorder_offensive_players(
            db_session, game["id"], [players[2]["id"], players[0]["id"]]
        )

    detail = await game_service.get_game_detail(db_session, await _game(db_session, game))
    assert [p["order"] for p in detail["offensive_players"]] == [0, 1, 2]


@pytest.mark.asyncio
async def test_available_defender_pool(db_session, owner, game, defenders):
    player = await game_service.add_offensive_player(
        db_session, game["id"], owner["id"], {"name": "Handler"}
    )
    row = await game_service.get_offensive_player_or_raise(db_session, player["id"])

    added = await game_service.add_available_defender(db_session, row, defenders[0]["id"])
    # Adding twice is a no-op
    await game_service.add_available_defender(db_session, row, defenders[0]["id"])
    assert added["defender"]["id"] == defenders[0]["id"]

    detail = await game_service.get_game_detail(db_session, await _game(db_session, game))
    assert [d["id"] for d in detail["offensive_players"][0]["available_defenders"]] == [
        defenders[0]["id"]
    ]

    await game_service.remove_available_defender(db_session, row, defenders[0]["id"])
    with pytest.raises(NotFoundError):
        await game_service.remove_available_defender(db_session, row, defenders[0]["id"])


@pytest.mark.asyncio
async def test_current_point_defender_set_and_clear_all(db_session, owner, game, defenders):
    players = [
        await game_service.add_offensive_player(db_session, game["id"], owner["id"], {"name": n})
        for n in ("A", "B")
    ]
    for player, defender in zip(players, defenders):
        row = await game_service.get_offensive_player_or_raise(db_session, player["id"])
        result = await game_service.set_current_point_defender(db_session, row, defender["id"])
        assert result == {"offensive_player_id": player["id"], "defender_id": defender["id"]}

    cleared = await game_service.clear_current_point_defenders(db_session, game["id"])

    assert sorted(cleared) == sorted(p["id"] for p in players)
    assert await game_service.clear_current_point_defenders(db_session, game["id"]) == []


@pytest.mark.asyncio
async def test_current_point_defender_must_be_on_team(db_session, owner, game):
    player = await game_service.add_offensive_player(
        db_session, game["id"], owner["id"], {"name": "A"}
    )
    row = await game_service.get_offensive_player_or_raise(db_session, player["id"])

    with pytest.raises(ValueError):
        await game_service.set_current_point_defender(db_session, row, 31337)
