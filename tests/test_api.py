"""Tests for the FastAPI 'Fews interface."""

from __future__ import annotations

import threading
import time

import pytest
from fastapi.testclient import TestClient

from fews import ui
from fews.config import Settings
from fews.progress import ProgressGate
from fews.store import InMemoryStore, StoreError
from fews.ui import app


ui.AI_THINK_DELAY = (0.0, 0.0)
USER = {"X-User-Id": "player-one"}


class FailingStore(InMemoryStore):
    async def set(self, key, data, expected_version=None):
        raise StoreError("offline")


@pytest.fixture
def gate():
    gate = ProgressGate(InMemoryStore())
    app.dependency_overrides[ui.get_gate] = lambda: gate
    yield gate
    app.dependency_overrides.clear()


@pytest.fixture
def client(gate):
    with TestClient(app) as client:
        yield client


def test_create_game_and_first_move(client):
    response = client.post("/api/game", json={"difficulty": "hard"})
    assert response.status_code == 200
    payload = response.json()
    assert payload["currentPlayer"] == "X"
    assert payload["status"] == "playing"
    assert payload["difficulty"] == "hard"
    assert payload["moveLog"] == []
    assert payload["board"] == [""] * 9

    game_id = payload["id"]
    move_response = client.post(f"/api/game/{game_id}/move", json={"cellIndex": 0})
    assert move_response.status_code == 200
    state = move_response.json()
    assert state["moveLog"][0] == {"player": "X", "cellIndex": 0}
    assert state["board"][0] == "X"
    assert state["currentPlayer"] == "O"
    assert state["aiPending"] is True

    follow_up = client.get(f"/api/game/{game_id}")
    assert follow_up.status_code == 200
    final_state = follow_up.json()
    assert final_state["currentPlayer"] == "X"
    assert final_state["aiPending"] is False
    assert final_state["moveLog"][-1] == {"player": "O", "cellIndex": 4}


def test_invalid_move_rejected(client):
    game_id = client.post("/api/game", json={}).json()["id"]
    assert client.post(f"/api/game/{game_id}/move", json={"cellIndex": 0}).status_code == 200

    duplicate_move = client.post(f"/api/game/{game_id}/move", json={"cellIndex": 0})
    assert duplicate_move.status_code == 400
    assert duplicate_move.json()["detail"]


def test_out_of_range_cell_rejected(client):
    game_id = client.post("/api/game", json={}).json()["id"]
    response = client.post(f"/api/game/{game_id}/move", json={"cellIndex": 9})
    assert response.status_code == 422


def test_rejects_unsupported_difficulty(client):
    response = client.post("/api/game", json={"difficulty": "impossible"})
    assert response.status_code == 422


def test_missing_game_returns_404(client):
    assert client.get("/api/game/nope").status_code == 404


def test_reset_game(client):
    game_id = client.post("/api/game", json={"difficulty": "easy"}).json()["id"]
    client.post(f"/api/game/{game_id}/move", json={"cellIndex": 4})
    state = client.post(f"/api/game/{game_id}/reset").json()
    assert state["board"] == [""] * 9
    assert state["status"] == "playing"
    assert state["moveLog"] == []


def test_progress_requires_identity(client):
    assert client.get("/api/puzzle/progress").status_code == 401
    assert client.post("/api/puzzle/steps/1/complete").status_code == 401


def test_new_user_progress(client):
    response = client.get("/api/puzzle/progress", headers=USER)
    assert response.status_code == 200
    payload = response.json()
    assert payload["userId"] == "player-one"
    assert payload["completedSteps"] == []
    assert payload["currentStep"] == 1
    assert [s["state"] for s in payload["steps"]] == ["unlocked"] + ["locked"] * 5


def test_step_guard_and_completion(client):
    assert client.get("/api/puzzle/steps/2", headers=USER).status_code == 403

    response = client.post("/api/puzzle/steps/1/complete", headers=USER)
    assert response.status_code == 200
    payload = response.json()
    assert payload["completedSteps"] == [1]
    assert payload["currentStep"] == 2
    assert [s["state"] for s in payload["steps"][:3]] == [
        "completed",
        "unlocked",
        "locked",
    ]

    step = client.get("/api/puzzle/steps/2", headers=USER).json()
    assert step["title"] == "The Key to Success"
    assert step["completed"] is False

    again = client.post("/api/puzzle/steps/1/complete", headers=USER)
    assert again.status_code == 200
    assert again.json()["completedSteps"] == [1]


def test_locked_and_unknown_steps(client):
    assert client.post("/api/puzzle/steps/4/complete", headers=USER).status_code == 403
    assert client.post("/api/puzzle/steps/7/complete", headers=USER).status_code == 404
    assert client.get("/api/puzzle/steps/0", headers=USER).status_code == 404


def test_reset_puzzle(client):
    client.post("/api/puzzle/steps/1/complete", headers=USER)
    client.post("/api/puzzle/steps/2/complete", headers=USER)
    response = client.post("/api/puzzle/reset", headers=USER)
    assert response.status_code == 200
    assert response.json()["completedSteps"] == []
    assert client.get("/api/puzzle/steps/2", headers=USER).status_code == 403


def test_store_failure_asks_for_retry(client, gate):
    gate.store = FailingStore()
    assert client.post("/api/puzzle/steps/1/complete", headers=USER).status_code == 503
    assert client.post("/api/puzzle/reset", headers=USER).status_code == 503
    progress = client.get("/api/puzzle/progress", headers=USER).json()
    assert progress["completedSteps"] == []


def test_difficulty_can_change_mid_game(client):
    game_id = client.post("/api/game", json={"difficulty": "easy"}).json()["id"]
    response = client.put(f"/api/game/{game_id}/difficulty", json={"difficulty": "hard"})
    assert response.status_code == 200
    assert response.json()["difficulty"] == "hard"
    assert ui.SESSIONS[game_id].ai.difficulty.value == "hard"

    state = client.post(f"/api/game/{game_id}/move", json={"cellIndex": 0}).json()
    assert state["board"][0] == "X"
    assert client.get(f"/api/game/{game_id}").json()["moveLog"][-1] == {
        "player": "O",
        "cellIndex": 4,
    }


def test_reset_can_pick_new_difficulty(client):
    game_id = client.post("/api/game", json={"difficulty": "hard"}).json()["id"]
    state = client.post(f"/api/game/{game_id}/reset", json={"difficulty": "easy"}).json()
    assert state["difficulty"] == "easy"
    assert client.post(f"/api/game/{game_id}/reset").json()["difficulty"] == "easy"


def test_gate_is_shared_between_threads(monkeypatch):
    monkeypatch.setattr(ui, "_gate", None)
    monkeypatch.setattr(ui, "_settings", Settings())
    real_build = ui._build_store

    def slow_build(settings):
        time.sleep(0.05)
        return real_build(settings)

    monkeypatch.setattr(ui, "_build_store", slow_build)
    seen = []
    threads = [threading.Thread(target=lambda: seen.append(ui.get_gate())) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(seen) == 4
    assert all(gate is seen[0] for gate in seen)


def test_bad_environment_only_fails_when_settings_are_needed(monkeypatch, client):
    monkeypatch.setattr(ui, "_settings", None)
    monkeypatch.setenv("FEWS_PORT", "eighty")
    with pytest.raises(ValueError):
        ui.get_settings()
    assert client.post("/api/game", json={}).status_code == 200
