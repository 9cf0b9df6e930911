"""
HTTP and WebSocket surface, driven through FastAPI's TestClient against the
in-memory store.
"""
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from main import app


@pytest.fixture
def client(engine):
    app.state.engine = engine
    with TestClient(app) as c:
        yield c
    app.state.engine = None


def build_lobby(client: TestClient, words: int = 5) -> Dict:
    """Host plus three joiners on two teams of two, every player with `words` words."""
    res = client.post("/api/games", json={"host_name": "Host"})
    assert res.status_code == 201
    created = res.json()
    game_id, host_id = created["game_id"], created["host_player_id"]

    team_ids = []
    for name in ("Owls", "Hawks"):
        res = client.post(f"/api/games/{game_id}/teams", json={"requester_id": host_id, "name": name})
        assert res.status_code == 201
        team_ids.append(res.json()["id"])

    player_ids = [host_id]
    for name in ("Ann", "Ben", "Cat"):
        res = client.post(f"/api/games/{game_id}/join", json={"player_name": name})
        assert res.status_code == 200
        player_ids.append(res.json()["player_id"])

    for i, pid in enumerate(player_ids):
        res = client.put(
            f"/api/games/{game_id}/players/{pid}/team",
            json={"requester_id": pid, "team_id": team_ids[i % 2]},
        )
        assert res.status_code == 200
        for n in range(words):
            res = client.post(
                f"/api/games/{game_id}/words", json={"player_id": pid, "text": f"word{i}x{n}"}
            )
            assert res.status_code == 201

    return {
        "game_id": game_id,
        "code": created["code"],
        "host_id": host_id,
        "team_ids": team_ids,
        "player_ids": player_ids,
    }


def start(client: TestClient, lobby: Dict) -> Dict:
    res = client.post(f"/api/games/{lobby['game_id']}/start", json={"player_id": lobby["host_id"]})
    assert res.status_code == 200
    return res.json()["game"]


class TestLobbyRoutes:
    def test_health_reports_store(self, client):
        assert client.get("/health").json()["store"] == "memory"

    def test_create_and_resolve_code(self, client):
        lobby = build_lobby(client, words=0)
        res = client.get(f"/api/games/by-code/{lobby['code'].lower()}")
        assert res.status_code == 200
        assert res.json()["game_id"] == lobby["game_id"]

    def test_public_state_hides_word_texts(self, client):
        lobby = build_lobby(client)
        state = client.get(f"/api/games/{lobby['game_id']}").json()
        assert state["game"]["state"] == "lobby"
        assert state["total_words"] == 20
        assert set(state["word_counts"].values()) == {5}
        assert len(state["teams"]) == 2
        assert len(state["players"]) == 4
        assert "word0x0" not in str(state)

    def test_own_words_listed(self, client):
        lobby = build_lobby(client, words=2)
        pid = lobby["player_ids"][1]
        words = client.get(f"/api/games/{lobby['game_id']}/players/{pid}/words").json()["words"]
        assert sorted(w["text"] for w in words) == ["word1x0", "word1x1"]

    def test_settings_validation_is_422(self, client):
        lobby = build_lobby(client, words=0)
        res = client.put(
            f"/api/games/{lobby['game_id']}/settings",
            json={"requester_id": lobby["host_id"], "settings": {"wordCountPerPerson": 0}},
        )
        assert res.status_code == 422

    def test_remove_word(self, client):
        lobby = build_lobby(client, words=1)
        pid = lobby["player_ids"][2]
        word = client.get(f"/api/games/{lobby['game_id']}/players/{pid}/words").json()["words"][0]
        res = client.delete(
            f"/api/games/{lobby['game_id']}/words/{word['id']}", params={"playerId": lobby["host_id"]}
        )
        assert res.status_code == 403
        res = client.delete(f"/api/games/{lobby['game_id']}/words/{word['id']}", params={"playerId": pid})
        assert res.status_code == 204


class TestErrorMapping:
    def test_not_found(self, client):
        res = client.get("/api/games/missing")
        assert res.status_code == 404
        assert res.json()["code"] == "NOT_FOUND"

    def test_invalid_input(self, client):
        assert client.get("/api/games/by-code/!!").status_code == 400

    def test_not_owner(self, client):
        lobby = build_lobby(client, words=0)
        res = client.post(
            f"/api/games/{lobby['game_id']}/teams",
            json={"requester_id": lobby["player_ids"][1], "name": "Rogue"},
        )
        assert res.status_code == 403
        assert res.json()["code"] == "NOT_OWNER"

    def test_quota_exceeded(self, client):
        lobby = build_lobby(client)
        res = client.post(
            f"/api/games/{lobby['game_id']}/words",
            json={"player_id": lobby["host_id"], "text": "one more"},
        )
        assert res.status_code == 409
        assert res.json()["code"] == "QUOTA_EXCEEDED"

    def test_start_precondition_lists_every_error(self, client):
        lobby = build_lobby(client, words=4)
        res = client.post(f"/api/games/{lobby['game_id']}/start", json={"player_id": lobby["host_id"]})
        assert res.status_code == 422
        body = res.json()
        assert body["code"] == "PRECONDITION_FAILED"
        assert len(body["errors"]) == 1
        assert body["errors"][0].startswith("The following players need to add 5 words")

    def test_join_after_start(self, client):
        lobby = build_lobby(client)
        start(client, lobby)
        res = client.post(f"/api/games/{lobby['game_id']}/join", json={"player_name": "Late"})
        assert res.status_code == 409
        assert res.json()["code"] == "INVALID_TRANSITION"


class TestStartAndTurns:
    def test_verification(self, client):
        lobby = build_lobby(client)
        url = f"/api/games/{lobby['game_id']}/verification"
        assert client.get(url, params={"playerId": lobby["host_id"]}).json() == {
            "can_start": True, "errors": [],
        }
        other = client.get(url, params={"playerId": lobby["player_ids"][1]}).json()
        assert other["can_start"] is False
        assert other["errors"] == ["Only the host can start the game"]

    def test_turn_flow(self, client):
        lobby = build_lobby(client)
        game = start(client, lobby)
        game_id = lobby["game_id"]
        assert game["state"] == "round1"
        assert game["turnState"] == "paused"
        describer = game["activePlayerId"]

        res = client.post(f"/api/games/{game_id}/turn/start", json={"player_id": describer})
        assert res.status_code == 200
        body = res.json()
        assert body["game"]["turnState"] == "active"
        word = body["word"]
        assert word["text"].startswith("word")

        res = client.post(
            f"/api/games/{game_id}/turn/correct", json={"player_id": describer, "word_id": word["id"]}
        )
        assert res.status_code == 200
        assert res.json()["word"]["id"] != word["id"]

        counts = client.get(f"/api/games/{game_id}/rounds/1/counts").json()
        assert counts == {"guessed": 1, "total": 20}

        state = client.get(f"/api/games/{game_id}").json()
        assert state["round_counts"] == {"guessed": 1, "total": 20}
        assert state["time_remaining"] == 60
        assert sum(t["score"] for t in state["teams"]) == 1

        res = client.post(f"/api/games/{game_id}/turn/time-up", json={"player_id": describer})
        assert res.json()["timed_out"] is True
        assert res.json()["game"]["activePlayerId"] != describer

    def test_only_describer_commands(self, client):
        lobby = build_lobby(client)
        game = start(client, lobby)
        bystander = next(p for p in lobby["player_ids"] if p != game["activePlayerId"])
        res = client.post(
            f"/api/games/{lobby['game_id']}/turn/start", json={"player_id": bystander}
        )
        assert res.status_code == 403

    def test_correct_needs_word_id(self, client):
        lobby = build_lobby(client)
        game = start(client, lobby)
        res = client.post(
            f"/api/games/{lobby['game_id']}/turn/correct",
            json={"player_id": game["activePlayerId"]},
        )
        assert res.status_code == 400


class TestWebSocket:
    def test_unknown_game_is_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/missing?playerId=nobody"):
                pass
        assert exc.value.code == 4404

    def test_unknown_player_is_rejected(self, client):
        lobby = build_lobby(client, words=0)
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/ws/{lobby['game_id']}?playerId=nobody"):
                pass
        assert exc.value.code == 4403

    def test_connect_snapshots_and_ping(self, client):
        lobby = build_lobby(client, words=0)
        with client.websocket_connect(f"/ws/{lobby['game_id']}?playerId={lobby['host_id']}") as ws:
            connected = ws.receive_json()
            assert connected["type"] == "connected"
            assert connected["isHost"] is True
            assert connected["state"] == "lobby"

            snapshots = {}
            for _ in range(3):
                message = ws.receive_json()
                snapshots[message["type"]] = message["data"]
            assert set(snapshots) == {"game", "teams", "players"}
            assert snapshots["game"]["id"] == lobby["game_id"]
            assert len(snapshots["players"]) == 4

            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_turn_command_over_socket(self, client):
        lobby = build_lobby(client)
        game = start(client, lobby)
        describer = game["activePlayerId"]
        with client.websocket_connect(f"/ws/{lobby['game_id']}?playerId={describer}") as ws:
            assert ws.receive_json()["type"] == "connected"
            ws.send_json({"type": "start_turn", "data": {}})
            result = None
            for _ in range(10):
                message = ws.receive_json()
                if message["type"] == "turn_result":
                    result = message["data"]
                    break
            assert result is not None
            assert result["game"]["turnState"] == "active"
            assert result["word"] is not None

    def test_errors_carry_code(self, client):
        lobby = build_lobby(client)
        game = start(client, lobby)
        bystander = next(p for p in lobby["player_ids"] if p != game["activePlayerId"])
        with client.websocket_connect(f"/ws/{lobby['game_id']}?playerId={bystander}") as ws:
            assert ws.receive_json()["type"] == "connected"
            ws.send_json({"type": "skip", "data": {"wordId": "w"}})
            error = None
            for _ in range(10):
                message = ws.receive_json()
                if message["type"] == "error":
                    error = message
                    break
            assert error["code"] == "NOT_OWNER"
