"""
Tests for convoy.api -- the FastAPI gateway endpoints.

Uses FastAPI's TestClient (starlette) for synchronous endpoint testing.
Each test gets a fresh coordinator backed by a RecordingSink, so no
config file or ROS2 install is needed.
"""

import pytest
import yaml
from starlette.testclient import TestClient

from convoy.drivers.recording import RecordingSink
from convoy.fleet.coordinator import FleetCoordinator

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_state_and_env(monkeypatch):
    """Start every test with empty gateway state and no config env var."""
    monkeypatch.delenv("CONVOY_CONFIG", raising=False)

    import convoy.api as api_mod

    api_mod.state.reset()
    yield
    api_mod.state.reset()


@pytest.fixture()
def api_mod():
    """Return the convoy.api module for direct state manipulation."""
    import convoy.api as mod

    return mod


@pytest.fixture()
def fleet(api_mod):
    """Install a two-robot coordinator as the gateway's state."""
    sink = RecordingSink()
    coordinator = FleetCoordinator(sink=sink, robot_names=["robot0", "robot1"])
    api_mod.state.sink = sink
    api_mod.state.coordinator = coordinator
    return coordinator


@pytest.fixture()
def client():
    from convoy.api import app

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


def _path_body(*coords, gate=None):
    gate = gate or {}
    return {
        "segments": [
            {
                "x": x,
                "y": y,
                "preconditions": [{"robot_id": r, "step": s} for r, s in gate.get(i, [])],
            }
            for i, (x, y) in enumerate(coords)
        ]
    }


# =====================================================================
# /health
# =====================================================================
class TestHealthEndpoint:
    def test_health_returns_200(self, client, fleet):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["robots"] == 2
        assert isinstance(body["uptime_s"], (int, float))

    def test_default_coordinator_built_lazily(self, client, api_mod):
        resp = client.get("/health")
        assert resp.json()["robots"] == 1
        assert api_mod.state.coordinator.robot_names() == ["robot0"]

    def test_coordinator_built_from_env_config(self, client, api_mod, tmp_path, monkeypatch):
        cfg = tmp_path / "fleet.yaml"
        cfg.write_text(yaml.safe_dump({"robot_names_str": "alpha, beta, gamma"}))
        monkeypatch.setenv("CONVOY_CONFIG", str(cfg))
        resp = client.get("/api/progress")
        assert resp.json() == {"progress": {"alpha": 0, "beta": 0, "gamma": 0}}


# =====================================================================
# Robots and progress
# =====================================================================
class TestRobotEndpoints:
    def test_list_robots(self, client, fleet):
        body = client.get("/api/robots").json()
        assert set(body["robots"]) == {"robot0", "robot1"}

    def test_robot_status(self, client, fleet):
        body = client.get("/api/robots/robot1").json()
        assert body["robot_id"] == "robot1"
        assert body["mode"] == "run"

    def test_unknown_robot_is_404_envelope(self, client, fleet):
        resp = client.get("/api/robots/ghost")
        assert resp.status_code == 404
        body = resp.json()
        assert body["code"] == "UNKNOWN_ROBOT"
        assert body["status"] == 404
        assert "ghost" in body["error"]


class TestPathEndpoint:
    def test_assign_path(self, client, fleet):
        resp = client.post("/api/robots/robot0/path", json=_path_body((1, 0), (2, 0)))
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "robot_id": "robot0", "segments": 2}
        assert len(fleet.controller("robot0").path) == 2

    def test_integer_peer_reference(self, client, fleet):
        client.post("/api/robots/robot0/path", json=_path_body((1, 0), gate={0: [(1, 2)]}))
        pc = fleet.controller("robot0").path[0].preconditions[0]
        assert pc.robot_id == "robot1"
        assert pc.required_step_count == 2

    def test_empty_path_rejected(self, client, fleet):
        resp = client.post("/api/robots/robot0/path", json={"segments": []})
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_PATH"

    def test_negative_step_rejected(self, client, fleet):
        resp = client.post(
            "/api/robots/robot0/path", json=_path_body((1, 0), gate={0: [("robot1", -1)]})
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_PATH"

    def test_schema_error_is_422(self, client, fleet):
        resp = client.post("/api/robots/robot0/path", json={"segments": [{"x": 1}]})
        assert resp.status_code == 422


class TestPoseEndpoint:
    def test_pose_returns_command(self, client, fleet):
        client.post("/api/robots/robot0/path", json=_path_body((5, 0)))
        client.post("/api/robots/robot0/pose", json={"x": 0, "y": 0, "theta": 0, "timestamp": 0.0})
        resp = client.post(
            "/api/robots/robot0/pose", json={"x": 0, "y": 0, "theta": 0, "timestamp": 0.1}
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["linear"] == pytest.approx(0.8)
        assert body["angular"] == pytest.approx(0.0)
        assert body["step_count"] == 0

    def test_pose_advances_and_updates_progress(self, client, fleet):
        client.post("/api/robots/robot0/path", json=_path_body((0, 0), (5, 0)))
        body = client.post("/api/robots/robot0/pose", json={"x": 0, "y": 0}).json()
        assert body["step_count"] == 1
        assert client.get("/api/progress").json()["progress"]["robot0"] == 1

    def test_sink_receives_command(self, client, fleet, api_mod):
        client.post("/api/robots/robot1/pose", json={"x": 0, "y": 0})
        assert api_mod.state.sink.last("robot1") == (0.0, 0.0)

    def test_unknown_robot_pose(self, client, fleet):
        resp = client.post("/api/robots/ghost/pose", json={"x": 0, "y": 0})
        assert resp.status_code == 404


class TestModeEndpoint:
    def test_set_stop(self, client, fleet):
        resp = client.post("/api/robots/robot0/mode", json={"mode": "STOP"})
        assert resp.json() == {"ok": True, "robot_id": "robot0", "mode": "stop"}

    def test_unknown_token_means_run(self, client, fleet):
        client.post("/api/robots/robot0/mode", json={"mode": "stop"})
        resp = client.post("/api/robots/robot0/mode", json={"mode": "warp"})
        assert resp.json()["mode"] == "run"

    def test_missing_token_means_run(self, client, fleet):
        assert client.post("/api/robots/robot0/mode", json={}).json()["mode"] == "run"

    def test_stop_all(self, client, fleet):
        resp = client.post("/api/stop")
        assert resp.json() == {"ok": True, "stopped": ["robot0", "robot1"]}
        modes = {s["mode"] for s in client.get("/api/robots").json()["robots"].values()}
        assert modes == {"stop"}
