"""
HTTP-level tests for the REST API using httpx against the ASGI app.

Fixture data is committed before the first request so the request sessions
can see it.
"""

import pytest
from unittest.mock import AsyncMock, call, patch

from dline.database.models import Game, TeamRole
from dline.tests.factories import add_membership, auth_headers, make_user


# ============================================================================
# Auth
# ============================================================================


@pytest.mark.asyncio
async def test_register_login_and_me(client):
    payload = {"email": "Coach@Example.com", "username": "coach_k", "password": "hammer-throw"}
    response = await client.post("/api/auth/register", json=payload)
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "coach@example.com"
    assert body["access_token"] and body["refresh_token"]

    duplicate = await client.post("/api/auth/register", json=payload)
    assert duplicate.status_code == 409

    login = await client.post(
        "/api/auth/login", json={"email_or_username": "coach_k", "password": "hammer-throw"}
    )
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["username"] == "coach_k"
    assert me.json()["teams"] == []
    assert "password_hash" not in me.json()


@pytest.mark.asyncio
async def test_login_wrong_password(client):
    await client.post(
        "/api/auth/register",
        json={"email": "a@example.com", "username": "aaa", "password": "password123"},
    )

    response = await client.post(
        "/api/auth/login", json={"email_or_username": "a@example.com", "password": "nope-nope"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_issues_new_pair(client):
    registered = await client.post(
        "/api/auth/register",
        json={"email": "r@example.com", "username": "refresher", "password": "password123"},
    )
    refresh_token = registered.json()["refresh_token"]

    response = await client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
    assert response.status_code == 200
    assert response.json()["user"]["username"] == "refresher"

    # An access token is not accepted as a refresh token
    bad = await client.post(
        "/api/auth/refresh", json={"refresh_token": registered.json()["access_token"]}
    )
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_validation_error_shape(client):
    response = await client.post(
        "/api/auth/register", json={"email": "not-an-email", "username": "x", "password": "short"}
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation error"
    fields = {d["field"] for d in body["details"]}
    assert {"body.email", "body.username", "body.password"} <= fields


@pytest.mark.asyncio
async def test_missing_or_bad_token(client):
    assert (await client.get("/api/teams")).status_code == 401
    bad = await client.get("/api/teams", headers={"Authorization": "Bearer garbage"})
    assert bad.status_code == 401


# ============================================================================
# Teams and roles
# ============================================================================


@pytest.mark.asyncio
async def test_create_team_makes_caller_owner(client, db_session, owner):
    await db_session.commit()

    response = await client.post(
        "/api/teams", json={"name": "Fury"}, headers=auth_headers(owner["id"])
    )
    assert response.status_code == 201
    team = response.json()
    assert team["role"] == "OWNER"
    assert len(team["invite_code"]) == 6

    listed = await client.get("/api/teams", headers=auth_headers(owner["id"]))
    assert [t["id"] for t in listed.json()] == [team["id"]]


@pytest.mark.asyncio
async def test_viewer_cannot_create_defender_but_admin_can(client, db_session, team):
    viewer = await make_user(db_session, "viewer")
    admin = await make_user(db_session, "admin")
    await add_membership(db_session, viewer["id"], team["id"], TeamRole.VIEWER)
    await add_membership(db_session, admin["id"], team["id"], TeamRole.ADMIN)
    await db_session.commit()
    payload = {"team_id": team["id"], "name": "New Defender"}

    denied = await client.post("/api/defenders", json=payload, headers=auth_headers(viewer["id"]))
    allowed = await client.post("/api/defenders", json=payload, headers=auth_headers(admin["id"]))

    assert denied.status_code == 403
    assert allowed.status_code == 201
    assert allowed.json()["name"] == "New Defender"


@pytest.mark.asyncio
async def test_member_cannot_delete_defender_or_team(client, db_session, team, defenders):
    member = await make_user(db_session, "member")
    await add_membership(db_session, member["id"], team["id"], TeamRole.MEMBER)
    await db_session.commit()
    headers = auth_headers(member["id"])

    assert (await client.delete(f"/api/defenders/{defenders[0]['id']}", headers=headers)).status_code == 403
    assert (await client.delete(f"/api/teams/{team['id']}", headers=headers)).status_code == 403


@pytest.mark.asyncio
async def test_add_member_and_conflict(client, db_session, owner, team):
    await make_user(db_session, "newbie")
    await db_session.commit()
    headers = auth_headers(owner["id"])

    added = await client.post(
        f"/api/teams/{team['id']}/members",
        json={"email_or_username": "newbie", "role": "VIEWER"},
        headers=headers,
    )
    again = await client.post(
        f"/api/teams/{team['id']}/members",
        json={"email_or_username": "newbie"},
        headers=headers,
    )
    as_owner = await client.post(
        f"/api/teams/{team['id']}/members",
        json={"email_or_username": "newbie", "role": "OWNER"},
        headers=headers,
    )

    assert added.status_code == 201
    assert added.json()["role"] == "VIEWER"
    assert again.status_code == 409
    assert as_owner.status_code == 400


@pytest.mark.asyncio
async def test_line_limited_to_seven(client, db_session, owner, team, defenders):
    await db_session.commit()
    headers = auth_headers(owner["id"])
    ids = [d["id"] for d in defenders]

    too_many = await client.post(
        "/api/lines", json={"team_id": team["id"], "name": "O-Line", "defender_ids": ids}, headers=headers
    )
    created = await client.post(
        "/api/lines", json={"team_id": team["id"], "name": "D1", "defender_ids": ids[:7]}, headers=headers
    )

    assert too_many.status_code == 400
    assert created.status_code == 201
    assert [d["id"] for d in created.json()["defenders"]] == ids[:7]


# ============================================================================
# Games and visibility
# ============================================================================


@pytest.mark.asyncio
async def test_private_game_hidden_from_anonymous_and_outsiders(client, db_session, game):
    outsider = await make_user(db_session, "outsider")
    await db_session.commit()

    anonymous = await client.get(f"/api/games/{game['id']}")
    by_slug = await client.get(f"/api/games/slug/{game['slug']}")
    stranger = await client.get(f"/api/games/{game['id']}", headers=auth_headers(outsider["id"]))
    public_path = await client.get(f"/api/public/games/{game['share_code']}")

    assert anonymous.status_code in (403, 404)
    assert by_slug.status_code in (403, 404)
    assert stranger.status_code == 403
    assert public_path.status_code == 404
    assert "points" not in anonymous.json()


@pytest.mark.asyncio
async def test_public_game_share_code(client, db_session, game):
    row = await db_session.get(Game, game["id"])
    row.is_public = True
    await db_session.commit()

    response = await client.get(f"/api/public/games/{game['share_code']}")

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, max-age=60"
    body = response.json()
    assert body["id"] == game["id"]
    assert body["points"] == []
    assert (await client.get("/api/public/games/UNKNOWN")).status_code == 404


@pytest.mark.asyncio
async def test_game_detail_for_owner(client, db_session, owner, game):
    await db_session.commit()

    response = await client.get(f"/api/games/{game['id']}", headers=auth_headers(owner["id"]))

    assert response.status_code == 200
    body = response.json()
    assert body["team"]["name"] == "Ring of Fire"
    assert body["offensive_players"] == []
    assert body["selected_defenders"] == []


@pytest.mark.asyncio
async def test_offensive_player_events(client, db_session, owner, game, defenders):
    await db_session.commit()
    headers = auth_headers(owner["id"])

    with patch("dline.api.routes.games.emit_game_event", new_callable=AsyncMock) as mock_emit:
        added = await client.post(
            f"/api/games/{game['id']}/offensive-players",
            json={"name": "Handler", "position": "HANDLER"},
            headers=headers,
        )
        player_id = added.json()["id"]
        assigned = await client.put(
            f"/api/games/{game['id']}/offensive-players/{player_id}/current-defender",
            json={"defender_id": defenders[0]["id"]},
            headers=headers,
        )
        cleared = await client.delete(f"/api/games/{game['id']}/current-defenders", headers=headers)

    assert added.status_code == 201
    assert assigned.json() == {"offensive_player_id": player_id, "defender_id": defenders[0]["id"]}
    assert cleared.json() == {"cleared": [player_id]}
    events = [c.args[1] for c in mock_emit.call_args_list]
    assert events == ["player-added", "current-point-defender-updated", "current-point-defender-updated"]


@pytest.mark.asyncio
async def test_player_from_other_game_is_not_found(client, db_session, owner, team, game):
    await db_session.commit()
    headers = auth_headers(owner["id"])
    other = await client.post(
        "/api/games", json={"team_id": team["id"], "name": "Other"}, headers=headers
    )
    player = await client.post(
        f"/api/games/{other.json()['id']}/offensive-players", json={"name": "X"}, headers=headers
    )

    response = await client.put(
        f"/api/games/{game['id']}/offensive-players/{player.json()['id']}",
        json={"name": "Y"},
        headers=headers,
    )

    assert response.status_code == 404


# ============================================================================
# Points
# ============================================================================


@pytest.mark.asyncio
async def test_create_point_is_idempotent_and_broadcast(client, db_session, owner, game, defenders):
    await db_session.commit()
    headers = auth_headers(owner["id"])
    payload = {
        "game_id": game["id"],
        "got_break": True,
        "selected_defender_ids": [defenders[0]["id"], defenders[1]["id"]],
        "client_request_id": "tap-42",
    }

    with patch("dline.api.routes.points.emit_game_event", new_callable=AsyncMock) as mock_emit:
        first = await client.post("/api/points", json=payload, headers=headers)
        second = await client.post("/api/points", json=payload, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    mock_emit.assert_awaited_once()
    game_id, event, data, user_id = mock_emit.call_args.args
    assert (game_id, event, user_id) == (game["id"], "point-created", owner["id"])
    assert data["point"]["point_number"] == 1

    listed = await client.get(f"/api/points/game/{game['id']}", headers=headers)
    assert [p["point_number"] for p in listed.json()] == [1]

    detail = await client.get(f"/api/games/{game['id']}", headers=headers)
    assert detail.json()["status"] == "IN_PROGRESS"
    stats = {s["defender_id"]: s for s in detail.json()["defender_stats"]}
    assert stats[defenders[0]["id"]]["points_played"] == 1
    assert stats[defenders[0]["id"]]["break_percentage"] == 100


@pytest.mark.asyncio
async def test_point_validation_errors(client, db_session, owner, game, defenders):
    await db_session.commit()
    headers = auth_headers(owner["id"])

    too_many = await client.post(
        "/api/points",
        json={"game_id": game["id"], "got_break": True, "selected_defender_ids": [d["id"] for d in defenders]},
        headers=headers,
    )
    negative_wind = await client.post(
        "/api/points",
        json={"game_id": game["id"], "got_break": True, "wind_speed": -3},
        headers=headers,
    )
    missing_game = await client.post(
        "/api/points", json={"game_id": 9999, "got_break": True}, headers=headers
    )

    assert too_many.status_code == 400
    assert negative_wind.status_code == 400
    assert missing_game.status_code == 404


@pytest.mark.asyncio
async def test_update_and_delete_point_over_http(client, db_session, owner, game, defenders):
    await db_session.commit()
    headers = auth_headers(owner["id"])
    ids = [defenders[0]["id"]]
    created = []
    for got_break in (True, False):
        response = await client.post(
            "/api/points",
            json={"game_id": game["id"], "got_break": got_break, "selected_defender_ids": ids},
            headers=headers,
        )
        created.append(response.json())

    with patch("dline.api.routes.points.emit_game_event", new_callable=AsyncMock) as mock_emit:
        updated = await client.put(
            f"/api/points/{created[1]['id']}", json={"got_break": True}, headers=headers
        )
        deleted = await client.delete(f"/api/points/{created[0]['id']}", headers=headers)

    assert updated.status_code == 200
    assert updated.json()["got_break"] is True
    assert deleted.status_code == 204
    assert mock_emit.call_args_list[-1] == call(
        game["id"], "point-deleted", {"point_id": created[0]["id"], "point_number": 1}, owner["id"]
    )

    listed = await client.get(f"/api/points/game/{game['id']}", headers=headers)
    assert [(p["id"], p["point_number"]) for p in listed.json()] == [(created[1]["id"], 1)]

    stats = await client.get(f"/api/defenders/{ids[0]}/stats", headers=headers)
    body = stats.json()
    assert (body["points_played"], body["breaks"], body["no_breaks"]) == (1, 1, 0)


@pytest.mark.asyncio
async def test_viewer_cannot_record_points(client, db_session, team, game):
    viewer = await make_user(db_session, "viewer")
    await add_membership(db_session, viewer["id"], team["id"], TeamRole.VIEWER)
    await db_session.commit()

    response = await client.post(
        "/api/points", json={"game_id": game["id"], "got_break": False}, headers=auth_headers(viewer["id"])
    )

    assert response.status_code == 403


# ============================================================================
# Selected defenders
# ============================================================================


@pytest.mark.asyncio
async def test_selected_defenders_limit(client, db_session, owner, game, defenders):
    await db_session.commit()
    headers = auth_headers(owner["id"])
    url = f"/api/selected-defenders/game/{game['id']}"

    seven = await client.put(url, json={"defender_ids": [d["id"] for d in defenders[:7]]}, headers=headers)
    eight = await client.put(url, json={"defender_ids": [d["id"] for d in defenders]}, headers=headers)
    current = await client.get(url, headers=headers)

    assert seven.status_code == 200
    assert eight.status_code == 400
    assert len(current.json()) == 7


@pytest.mark.asyncio
async def test_deselecting_emits_one_clear_per_player(client, db_session, owner, game, defenders):
    await db_session.commit()
    headers = auth_headers(owner["id"])
    a, b = defenders[0]["id"], defenders[1]["id"]
    url = f"/api/selected-defenders/game/{game['id']}"
    await client.put(url, json={"defender_ids": [a, b]}, headers=headers)
    player = await client.post(
        f"/api/games/{game['id']}/offensive-players", json={"name": "Handler"}, headers=headers
    )
    player_id = player.json()["id"]
    await client.put(
        f"/api/games/{game['id']}/offensive-players/{player_id}/current-defender",
        json={"defender_id": a},
        headers=headers,
    )

    with patch(
        "dline.api.routes.selected_defenders.emit_game_event", new_callable=AsyncMock
    ) as mock_emit:
        response = await client.put(url, json={"defender_ids": [b]}, headers=headers)

    assert response.status_code == 200
    assert [c.args[1] for c in mock_emit.call_args_list] == [
        "current-point-defender-updated",
        "selected-defenders-updated",
    ]
    assert mock_emit.call_args_list[0].args[2] == {"offensive_player_id": player_id, "defender_id": None}


# ============================================================================
# Null fields on updates
# ============================================================================


@pytest.mark.asyncio
async def test_null_for_required_game_fields_is_rejected(client, db_session, owner, game):
    await db_session.commit()
    headers = auth_headers(owner["id"])
    url = f"/api/games/{game['id']}"

    for body in ({"name": None}, {"status": None}, {"is_public": None}):
        response = await client.put(url, json=body, headers=headers)
        assert response.status_code == 400, body
        assert response.json()["error"] == "Validation error"
        assert response.json()["details"][0]["field"] == f"body.{next(iter(body))}"

    # Nullable columns may still be cleared
    cleared = await client.put(url, json={"opponent": None}, headers=headers)
    assert cleared.status_code == 200
    assert cleared.json()["opponent"] is None
    assert cleared.json()["name"] == "Nationals Pool Play"


@pytest.mark.asyncio
async def test_null_for_required_roster_fields_is_rejected(client, db_session, owner, team, defenders):
    await db_session.commit()
    headers = auth_headers(owner["id"])
    line = await client.post(
        "/api/lines", json={"team_id": team["id"], "name": "D1"}, headers=headers
    )

    requests = [
        (f"/api/teams/{team['id']}", {"name": None}),
        (f"/api/defenders/{defenders[0]['id']}", {"name": None}),
        (f"/api/defenders/{defenders[0]['id']}", {"active": None}),
        (f"/api/lines/{line.json()['id']}", {"name": None}),
    ]
    for url, body in requests:
        response = await client.put(url, json=body, headers=headers)
        assert response.status_code == 400, (url, body)

    roster = await client.get(f"/api/defenders/team/{team['id']}", headers=headers)
    assert defenders[0]["name"] in [d["name"] for d in roster.json()]


@pytest.mark.asyncio
async def test_null_for_required_point_fields_is_rejected(client, db_session, owner, game, defenders):
    await db_session.commit()
    headers = auth_headers(owner["id"])
    player = await client.post(
        f"/api/games/{game['id']}/offensive-players", json={"name": "Handler"}, headers=headers
    )
    point = await client.post(
        "/api/points",
        json={
            "game_id": game["id"],
            "got_break": True,
            "selected_defender_ids": [defenders[0]["id"]],
            "matchups": [{"offensive_player_id": player.json()["id"], "defender_id": defenders[0]["id"]}],
        },
        headers=headers,
    )
    point_id = point.json()["id"]
    matchup_id = point.json()["matchups"][0]["id"]

    requests = [
        (f"/api/games/{game['id']}/offensive-players/{player.json()['id']}", {"name": None}),
        (f"/api/games/{game['id']}/offensive-players/{player.json()['id']}", {"position": None}),
        (f"/api/points/{point_id}", {"got_break": None}),
        (f"/api/points/{point_id}/matchups/{matchup_id}", {"is_active": None}),
    ]
    for url, body in requests:
        response = await client.put(url, json=body, headers=headers)
        assert response.status_code == 400, (url, body)

    unchanged = await client.get(f"/api/points/{point_id}", headers=headers)
    assert unchanged.json()["got_break"] is True


# ============================================================================
# Point visibility
# ============================================================================


@pytest.mark.asyncio
async def test_hidden_point_looks_missing(client, db_session, owner, game, defenders):
    outsider = await make_user(db_session, "outsider")
    await db_session.commit()
    point = await client.post(
        "/api/points",
        json={"game_id": game["id"], "got_break": False, "selected_defender_ids": [defenders[0]["id"]]},
        headers=auth_headers(owner["id"]),
    )
    point_id = point.json()["id"]

    existing = await client.get(f"/api/points/{point_id}", headers=auth_headers(outsider["id"]))
    missing = await client.get("/api/points/987654", headers=auth_headers(outsider["id"]))
    anonymous = await client.get(f"/api/points/{point_id}")

    assert existing.status_code == missing.status_code == anonymous.status_code == 404
    assert existing.json() == missing.json()


@pytest.mark.asyncio
async def test_public_game_point_readable_without_login(client, db_session, owner, game):
    row = await db_session.get(Game, game["id"])
    row.is_public = True
    await db_session.commit()
    point = await client.post(
        "/api/points", json={"game_id": game["id"], "got_break": True}, headers=auth_headers(owner["id"])
    )

    response = await client.get(f"/api/points/{point.json()['id']}")

    assert response.status_code == 200
    assert response.json()["point_number"] == 1


# ============================================================================
# Export and health
# ============================================================================


@pytest.mark.asyncio
async def test_export_game_csv_attachment(client, db_session, owner, game):
    await db_session.commit()

    response = await client.get(f"/api/export/game/{game['id']}/csv", headers=auth_headers(owner["id"]))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"].startswith('attachment; filename="game-')
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Game,Opponent,Location,Date,Point #")
    assert "No points recorded" in lines[1]


@pytest.mark.asyncio
async def test_export_team_stats(client, db_session, owner, team, defenders):
    await db_session.commit()

    response = await client.get(f"/api/export/team/{team['id']}/stats", headers=auth_headers(owner["id"]))

    assert response.status_code == 200
    assert "attachment" in response.headers["content-disposition"]
    body = response.json()
    assert len(body["defenders"]) == len(defenders)
    assert body["game_stats"]["total_points"] == 0


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
