from __future__ import annotations

import pytest

from game import GameState
from scripts.solver import generate_moves
from server import app as app_module


@pytest.fixture
def client():
    app_module.app.config["TESTING"] = True
    app_module.GAMES.clear()
    with app_module.app.test_client() as test_client:
        yield test_client
    app_module.GAMES.clear()


def start_game(client, **payload):
    response = client.post("/api/games", json=payload)
    assert response.status_code == 201
    return response.get_json()


def test_create_game_deals_requested_mode(client):
    body = start_game(client, mode="hard", seed=7)

    assert body["id"] in app_module.GAMES
    assert body["can_undo"] is False
    state = body["state"]
    assert state["mode"] == {"name": "HARD", "draw_count": 3}
    assert len(state["stock"]) == 24
    assert [len(column) for column in state["tableau"]] == [1, 2, 3, 4, 5, 6, 7]


def test_same_seed_deals_same_layout(client):
    first = start_game(client, seed=123)
    second = start_game(client, seed=123)
    assert first["id"] != second["id"]
    assert first["state"] == second["state"]


@pytest.mark.parametrize(
    "payload",
    [
        {"mode": "medium"},
        {"mode": True},
        {"seed": "abc"},
    ],
)
def test_create_game_rejects_bad_payload(client, payload):
    response = client.post("/api/games", json=payload)
    assert response.status_code == 400
    assert "error" in response.get_json()


def test_draw_then_undo_restores_snapshot(client):
    game = start_game(client, mode="hard", seed=9)
    game_id = game["id"]

    drawn = client.post(f"/api/games/{game_id}/draw").get_json()
    assert len(drawn["state"]["waste"]) == 3
    assert drawn["state"]["moves"] == 1
    assert drawn["can_undo"] is True

    undone = client.post(f"/api/games/{game_id}/undo")
    assert undone.status_code == 200
    assert undone.get_json()["state"] == game["state"]

    again = client.post(f"/api/games/{game_id}/undo")
    assert again.status_code == 409


def test_undo_history_is_bounded(client, monkeypatch):
    monkeypatch.setitem(app_module.app.config, "SOLITAIRE_UNDO_LIMIT", 2)
    game_id = start_game(client, seed=4)["id"]
    for _ in range(3):
        client.post(f"/api/games/{game_id}/draw")

    assert client.post(f"/api/games/{game_id}/undo").status_code == 200
    assert client.post(f"/api/games/{game_id}/undo").status_code == 200
    final = client.post(f"/api/games/{game_id}/undo")
    assert final.status_code == 409
    assert client.get(f"/api/games/{game_id}").get_json()["state"]["moves"] == 1


def test_legal_move_is_applied(client):
    game_id = start_game(client, seed=31)["id"]
    state = GameState.from_dict(client.get(f"/api/games/{game_id}").get_json()["state"])

    for _ in range(60):
        candidates = [move for move in generate_moves(state) if move.kind == "MOVE"]
        if candidates:
            break
        state = GameState.from_dict(client.post(f"/api/games/{game_id}/draw").get_json()["state"])
    assert candidates

    move = candidates[0]
    response = client.post(
        f"/api/games/{game_id}/move",
        json={
            "source": move.source.to_dict(),
            "target_pile_type": move.target_pile,
            "target_pile_index": move.target_index,
        },
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["state"]["moves"] == state.moves + 1
    assert body["state"] == move.apply(state).to_dict()


def test_illegal_move_leaves_game_untouched(client):
    game = start_game(client, seed=12)
    game_id = game["id"]

    response = client.post(
        f"/api/games/{game_id}/move",
        json={
            "source": {"pile_type": "waste", "pile_index": 0},
            "target_pile_type": "foundation",
            "target_pile_index": 0,
        },
    )

    assert response.status_code == 409
    assert response.get_json() == {"error": "illegal move"}
    assert client.get(f"/api/games/{game_id}").get_json() == game


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"source": {"pile_type": "hand"}, "target_pile_type": "tableau", "target_pile_index": 0},
        {"source": {"pile_type": "tableau", "pile_index": 0, "card_index": 0}, "target_pile_index": 0},
        {
            "source": {"pile_type": "tableau", "pile_index": 0, "card_index": 0},
            "target_pile_type": "tableau",
            "target_pile_index": "1",
        },
    ],
)
def test_malformed_move_payload(client, payload):
    game_id = start_game(client, seed=1)["id"]
    response = client.post(f"/api/games/{game_id}/move", json=payload)
    assert response.status_code == 400


def test_unknown_game_returns_404(client):
    assert client.get("/api/games/missing").status_code == 404
    assert client.post("/api/games/missing/draw").status_code == 404
    assert client.post("/api/games/missing/move", json={}).status_code == 404
    assert client.post("/api/games/missing/undo").status_code == 404
    assert client.get("/api/games/missing/solvability").status_code == 404


def test_solvability_endpoint(client):
    game_id = start_game(client, seed=77)["id"]

    response = client.get(f"/api/games/{game_id}/solvability?max_iterations=1")
    assert response.status_code == 200
    assert response.get_json() == {"id": game_id, "verdict": "UNKNOWN", "max_iterations": 1}

    assert client.get(f"/api/games/{game_id}/solvability?max_iterations=zero").status_code == 400
    assert client.get(f"/api/games/{game_id}/solvability?max_iterations=0").status_code == 400


def test_new_deal_keeps_mode_and_clears_history(client):
    game = start_game(client, mode="hard", seed=3)
    game_id = game["id"]
    client.post(f"/api/games/{game_id}/draw")

    response = client.post(f"/api/games/{game_id}/new", json={"seed": 8})
    assert response.status_code == 200
    body = response.get_json()
    assert body["id"] == game_id
    assert body["can_undo"] is False
    assert body["state"]["mode"] == {"name": "HARD", "draw_count": 3}
    assert body["state"]["moves"] == 0
    assert body["state"] == start_game(client, mode="hard", seed=8)["state"]
    assert client.post(f"/api/games/{game_id}/undo").status_code == 409


def test_new_deal_can_switch_mode(client):
    game_id = start_game(client, mode="hard", seed=3)["id"]

    body = client.post(f"/api/games/{game_id}/new", json={"mode": "easy"}).get_json()
    assert body["state"]["mode"] == {"name": "EASY", "draw_count": 1}

    assert client.post(f"/api/games/{game_id}/new", json={"mode": "medium"}).status_code == 400
    assert client.post("/api/games/missing/new").status_code == 404


def test_delete_game(client):
    game_id = start_game(client, seed=2)["id"]

    response = client.delete(f"/api/games/{game_id}")
    assert response.status_code == 204
    assert game_id not in app_module.GAMES
    assert client.get(f"/api/games/{game_id}").status_code == 404
    assert client.delete(f"/api/games/{game_id}").status_code == 404


def test_session_count_is_capped(client, monkeypatch):
    monkeypatch.setitem(app_module.app.config, "SOLITAIRE_MAX_GAMES", 2)
    ids = [start_game(client, seed=seed)["id"] for seed in range(3)]

    assert list(app_module.GAMES) == ids[1:]
    assert client.get(f"/api/games/{ids[0]}").status_code == 404
    assert client.get(f"/api/games/{ids[2]}").status_code == 200
