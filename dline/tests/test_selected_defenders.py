"""
Tests for the call-your-line selection and its interaction with
current-point assignments.
"""

import pytest

from dline.database.models import Game
from dline.services import game_service, selected_defender_service


async def _game(session, game_dict) -> Game:
    return await session.get(Game, game_dict["id"])


@pytest.mark.asyncio
async def test_select_full_line_of_seven(db_session, game, defenders):
    ids = [d["id"] for d in defenders[:7]]

    selected, cleared = await selected_defender_service.replace_selected_defenders(
        db_session, await _game(db_session, game), ids
    )

    assert [d["id"] for d in selected] == ids
    assert cleared == []


@pytest.mark.asyncio
async def test_eighth_defender_rejected_without_writing(db_session, game, defenders):
    first = [d["id"] for d in defenders[:3]]
    await selected_defender_service.replace_selected_defenders(
        db_session, await _game(db_session, game), first
    )

    with pytest.raises(ValueError):
        await selected_defender_service.replace_selected_defenders(
            db_session, await _game(db_session, game), [d["id"] for d in defenders]
        )

    current = await selected_defender_service.get_selected_defenders(db_session, game["id"])
    assert [d["id"] for d in current] == first


@pytest.mark.asyncio
async def test_replacement_is_total(db_session, game, defenders):
    await selected_defender_service.replace_selected_defenders(
        db_session, await _game(db_session, game), [defenders[0]["id"], defenders[1]["id"]]
    )
    selected, _ = await selected_defender_service.replace_selected_defenders(
        db_session, await _game(db_session, game), [defenders[2]["id"]]
    )

    assert [d["id"] for d in selected] == [defenders[2]["id"]]


@pytest.mark.asyncio
async def test_deselected_defender_clears_current_assignment(db_session, owner, game, defenders):
    a, b, c = (d["id"] for d in defenders[:3])
    handler = await game_service.add_offensive_player(
        db_session, game["id"], owner["id"], {"name": "Handler"}
    )
    cutter = await game_service.add_offensive_player(
        db_session, game["id"], owner["id"], {"name": "Cutter"}
    )
    await selected_defender_service.replace_selected_defenders(
        db_session, await _game(db_session, game), [a, b, c]
    )
    for player, defender_id in ((handler, a), (cutter, b)):
        row = await game_service.get_offensive_player_or_raise(db_session, player["id"])
        await game_service.set_current_point_defender(db_session, row, defender_id)

    _, cleared = await selected_defender_service.replace_selected_defenders(
        db_session, await _game(db_session, game), [b, c]
    )

    assert cleared == [handler["id"]]
    detail = await game_service.get_game_detail(db_session, await _game(db_session, game))
    current = {p["id"]: p["current_point_defender"] for p in detail["offensive_players"]}
    assert current[handler["id"]] is None
    assert current[cutter["id"]]["id"] == b
