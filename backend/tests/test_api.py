"""HTTP/WebSocket flow: room creation, submissions, resolution and verification."""

from fastapi.testclient import TestClient

from rumorsim import main
from rumorsim.chain import DisabledChainMirror
from rumorsim.main import app

NARRATIVE = (
    "Screenshots of delayed withdrawals are everywhere. Panic=30 is still moderate and Trust=75 "
    "holds for now, so I will wait for the reserve report before moving anything."
)


def _submission(name: str, action: str = "WAIT", intensity: int = 1) -> dict:
    return {
        "agent_name": name,
        "action": action,
        "intensity": intensity,
        "signals": ["social_media"],
        "confidence": 0.6,
        "narrative": NARRATIVE,
    }


def _submit(client, room_id, player_id, **kwargs):
    return client.post(
        f"/api/v1/rooms/{room_id}/submit",
        json={"playerId": player_id, "submission": _submission(f"Agent {player_id}", **kwargs)},
    )


def _new_room(client, mode="story", seed=None):
    resp = client.post("/api/v1/rooms", json={"mode": mode, "seed": seed})
    assert resp.status_code == 200
    return resp.json()


def test_health():
    with TestClient(app) as client:
        body = client.get("/api/health").json()
    assert body["ok"] is True
    assert body["quorum"] == 5
    assert body["chain"] is False


def test_room_creation_exposes_first_round():
    with TestClient(app) as client:
        created = _new_room(client)
        current = created["current"]
        assert created["room"]["mode"] == "story"
        assert current["gameOver"] is False
        assert current["round"] == 0
        assert current["rumor_card"]["id"] == "R-04"
        assert current["world"]["Panic"] == 25
        assert current["carryover"] == {"nextShockBonus": 0.0}
        assert current["submissionsCount"] == 0

        same = client.get(f"/api/v1/rooms/{created['room']['id']}/current").json()
        assert same["roundId"] == current["roundId"]


def test_submit_until_quorum_resolves_and_opens_next_round():
    with TestClient(app) as client:
        room_id = _new_room(client)["room"]["id"]
        bodies = [_submit(client, room_id, f"p{i}").json() for i in range(5)]

        assert [b["count"] for b in bodies] == [1, 2, 3, 4, 5]
        assert [b["resolved"] for b in bodies] == [False] * 4 + [True]
        report = bodies[-1]["report"]
        assert report["roundIndex"] == 0
        assert len(report["hashes"]["roundHash"]) == 64

        nxt = client.get(f"/api/v1/rooms/{room_id}/current").json()
        assert nxt["round"] == 1
        assert nxt["rumor_card"]["id"] == "R-02"
        assert nxt["world"] == report["postState"]

        rounds = client.get(f"/api/v1/rooms/{room_id}/rounds").json()["rounds"]
        assert [r["state"] for r in rounds] == ["RESOLVED", "WAITING_SUBMISSIONS"]
        detail = client.get(f"/api/v1/rooms/{room_id}/rounds/0").json()
        assert len(detail["submissions"]) == 5
        assert detail["submissions"][0]["submissionHash"] == bodies[0]["submissionHash"]


def test_conflicts_and_validation_errors():
    with TestClient(app) as client:
        room_id = _new_room(client)["room"]["id"]
        assert _submit(client, room_id, "p1").status_code == 200

        duplicate = _submit(client, room_id, "p1")
        assert duplicate.status_code == 409
        assert "already submitted" in duplicate.json()["detail"]

        bad = client.post(
            f"/api/v1/rooms/{room_id}/submit",
            json={"playerId": "p2", "submission": {**_submission("Bad"), "intensity": 5}},
        )
        assert bad.status_code == 422

        assert _submit(client, 9999, "p1").status_code == 404
        assert client.get("/api/v1/rooms/9999/current").status_code == 404
        assert client.get(f"/api/v1/rooms/{room_id}/rounds/7").status_code == 404


def test_verify_endpoint_recomputes_hashes():
    with TestClient(app) as client:
        room_id = _new_room(client)["room"]["id"]
        assert client.get(f"/api/v1/rooms/{room_id}/rounds/0/verify").status_code == 409
        for i in range(5):
            _submit(client, room_id, f"p{i}", action="EXIT" if i % 2 else "WAIT", intensity=2)

        body = client.get(f"/api/v1/rooms/{room_id}/rounds/0/verify").json()
        assert body["verified"] is True
        assert body["stored"] == body["recomputed"]

        chain = client.get(f"/api/v1/rooms/{room_id}/rounds/0/chain").json()
        assert chain["enabled"] is False
        assert chain["verified"] is False
        assert chain["error"] == "Chain mirror not configured"


def test_finished_game_reports_and_rejects_submissions():
    with TestClient(app) as client:
        room_id = _new_room(client)["room"]["id"]
        for _ in range(6):
            for i in range(5):
                assert _submit(client, room_id, f"p{i}").status_code == 200

        current = client.get(f"/api/v1/rooms/{room_id}/current").json()
        assert current["gameOver"] is True
        assert current["status"]["endReason"] == "cap_reached"
        assert current["roundIndex"] == 5

        assert _submit(client, room_id, "late").status_code == 409

        report = client.get(f"/api/v1/rooms/{room_id}/report").json()
        assert report["status"]["roundsPlayed"] == 6
        assert report["report"]["title"].startswith("Rumor Round Game")
        assert len(report["report"]["timeline"]) == 6
        assert "## Executive Summary" in report["report"]["markdown"]

        games = client.get("/api/v1/rooms/history").json()["games"]
        assert games[0]["roomId"] == room_id
        assert games[0]["collapsed"] is False

        agents = client.get("/api/v1/agents").json()["agents"]
        assert {a["playerId"] for a in agents} == {f"p{i}" for i in range(5)}
        profile = client.get("/api/v1/agents/p0").json()
        assert profile["totalRounds"] == 6
        assert profile["actionCounts"]["WAIT"] == 6
        assert client.get("/api/v1/agents/nobody").status_code == 404


def test_default_room_is_shared():
    with TestClient(app) as client:
        first = client.get("/api/v1/rooms/default").json()
        second = client.get("/api/v1/rooms/default").json()
        assert first["roomId"] == second["roomId"]
        assert first["gameOver"] is False


def test_websocket_receives_round_resolved():
    with TestClient(app) as client:
        created = _new_room(client, mode="chaos", seed=2)
        room_id = created["room"]["id"]
        with client.websocket_connect(f"/ws/rooms/{room_id}") as ws:
            for i in range(5):
                _submit(client, room_id, f"p{i}")
            message = ws.receive_json()
        assert message["type"] == "round_resolved"
        assert message["roomId"] == room_id
        assert message["roundIndex"] == 0
        assert message["gameOver"] is False


class ClosableMirror(DisabledChainMirror):
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


def test_shutdown_closes_chain_mirror(monkeypatch):
    mirror = ClosableMirror()
    monkeypatch.setattr(main.game, "chain_mirror", mirror)
    with TestClient(main.app) as client:
        assert client.get("/api/health").status_code == 200
        assert not mirror.closed
    assert mirror.closed
