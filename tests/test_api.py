import pytest
from fastapi.testclient import TestClient

from conftest import load_board

import api


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(api.limiter, "enabled", False)
    return TestClient(api.app)


def new_game(client, **settings):
    response = client.post("/game/new", json=settings)
    assert response.status_code == 200
    return response.json()


def test_new_game_defaults(client) -> None:
    state = new_game(client)
    assert (state["rows"], state["cols"]) == (4, 4)
    assert len(state["tiles"]) == 2
    assert state["status"] == "running"
    assert state["score"] == 0
    assert state["pending"] == 0
    assert all(tile["is_new"] for tile in state["tiles"])


def test_new_large_game_spawns_four(client) -> None:
    state = new_game(client, rows=5, cols=5, seed=3)
    assert len(state["tiles"]) == 4
    assert sum(value != 0 for row in state["board"] for value in row) == 4


def test_new_game_rejects_bad_dimensions(client) -> None:
    assert client.post("/game/new", json={"rows": 1, "cols": 4}).status_code == 422
    assert client.post("/game/new", json={"rows": 4, "cols": 17}).status_code == 422


def test_unknown_game_is_404(client) -> None:
    assert client.get("/game/missing").status_code == 404
    assert client.post("/game/missing/move", json={"direction": "UP"}).status_code == 404


def test_move_then_settle(client) -> None:
    game_id = new_game(client, seed=1)["game_id"]
    load_board(api.registry.get(game_id).session, [[2, 2, 0, 0], [0] * 4, [0] * 4, [0] * 4])

    moved = client.post(f"/game/{game_id}/move", json={"direction": "RIGHT"}).json()
    assert moved["move_was_effective"]
    assert len(moved["moved"]) == 2
    assert len(moved["absorbed"]) == 1
    assert moved["pending"] == 2
    assert moved["board"][0] == [0, 0, 0, 2]

    dropped = client.post(f"/game/{game_id}/move", json={"direction": "LEFT"}).json()
    assert not dropped["move_was_effective"]
    assert dropped["message"] == "Move dropped; previous move has not settled."
    assert dropped["board"][0] == [0, 0, 0, 2]

    settled = client.post(f"/game/{game_id}/settle", json={"count": 5}).json()
    assert settled["pending"] == 0
    assert settled["score"] == 4
    assert settled["board"][0][3] == 4
    assert len(settled["tiles"]) == 2


def test_ineffective_move_reports_message(client) -> None:
    game_id = new_game(client)["game_id"]
    load_board(api.registry.get(game_id).session, [[2, 0, 0, 0], [0] * 4, [0] * 4, [0] * 4])

    state = client.post(f"/game/{game_id}/move", json={"direction": "UP"}).json()
    assert not state["move_was_effective"]
    assert state["moved"] == []
    assert "not effective" in state["message"]


def test_invalid_direction_is_rejected(client) -> None:
    game_id = new_game(client)["game_id"]
    assert client.post(f"/game/{game_id}/move", json={"direction": "NORTH"}).status_code == 422


def test_pause_drops_moves(client) -> None:
    game_id = new_game(client)["game_id"]
    assert client.post(f"/game/{game_id}/pause", json={"paused": True}).json()["paused"]

    state = client.post(f"/game/{game_id}/move", json={"direction": "LEFT"}).json()
    assert state["message"] == "Move dropped; game is paused."


def test_win_dismiss_and_restart(client) -> None:
    game_id = new_game(client)["game_id"]
    load_board(api.registry.get(game_id).session, [[1024, 1024, 0, 0], [0] * 4, [0] * 4, [0] * 4])

    client.post(f"/game/{game_id}/move", json={"direction": "LEFT"})
    won = client.post(f"/game/{game_id}/settle", json={}).json()
    assert won["status"] == "win"
    assert won["paused"]
    assert won["best"] == 2048

    resumed = client.post(f"/game/{game_id}/dismiss").json()
    assert resumed["status"] == "continue"
    assert not resumed["paused"]

    restarted = client.post(f"/game/{game_id}/restart").json()
    assert restarted["status"] == "running"
    assert restarted["score"] == 0
    assert restarted["best"] == 2048
    assert len(restarted["tiles"]) == 2


def test_resize_restarts_with_new_dimensions(client) -> None:
    game_id = new_game(client)["game_id"]
    state = client.post(f"/game/{game_id}/resize", json={"rows": 6, "cols": 5}).json()
    assert (state["rows"], state["cols"]) == (6, 5)
    assert len(state["tiles"]) == 4
    assert [tile["index"] for tile in state["tiles"]] == [0, 1, 2, 3]


def test_delete_game(client) -> None:
    game_id = new_game(client)["game_id"]
    assert client.delete(f"/game/{game_id}").status_code == 204
    assert client.get(f"/game/{game_id}").status_code == 404
    assert client.delete(f"/game/{game_id}").status_code == 404


def test_dismiss_on_running_game_changes_nothing(client) -> None:
    game_id = new_game(client)["game_id"]
    record = api.registry.get(game_id)
    record.host.add_score(40)
    before = client.get(f"/game/{game_id}").json()

    after = client.post(f"/game/{game_id}/dismiss").json()
    assert after["status"] == "running"
    assert after["score"] == 40
    assert after["tiles"] == before["tiles"]
