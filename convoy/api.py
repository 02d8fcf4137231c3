"""
Convoy API Gateway.
FastAPI server that feeds pose samples, path assignments and mode commands
into the fleet coordinator over HTTP, and exposes fleet progress.

Run with:
    python -m convoy.api --config convoy.yaml
    # or
    convoy gateway --config convoy.yaml
"""

import argparse
import logging
import os
import threading
import time
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI
from pydantic import BaseModel

from convoy import __version__
from convoy.api_errors import register_error_handlers
from convoy.config import FleetConfig, load_config
from convoy.control.segment import Pose
from convoy.drivers.recording import RecordingSink
from convoy.fleet.coordinator import FleetCoordinator

logger = logging.getLogger("Convoy.Gateway")

# ---------------------------------------------------------------------------
# App & state
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Convoy Gateway",
    description="REST transport for the segment-following fleet controller.",
    version=__version__,
)

register_error_handlers(app)


class AppState:
    """Mutable gateway state, populated lazily from ``CONVOY_CONFIG``."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.config: Optional[FleetConfig] = None
        self.coordinator: Optional[FleetCoordinator] = None
        self.sink: Optional[RecordingSink] = None
        self.started_at = time.time()

    def reset(self) -> None:
        with self.lock:
            self.config = None
            self.coordinator = None
            self.sink = None


state = AppState()


def get_coordinator() -> FleetCoordinator:
    with state.lock:
        if state.coordinator is None:
            cfg_path = os.getenv("CONVOY_CONFIG")
            state.config = load_config(cfg_path) if cfg_path else FleetConfig()
            state.sink = RecordingSink()
            state.coordinator = FleetCoordinator(
                state.config.controller_settings(),
                sink=state.sink,
                robot_names=state.config.robot_names,
            )
        return state.coordinator


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------
class PoseRequest(BaseModel):
    x: float
    y: float
    theta: float = 0.0
    timestamp: Optional[float] = None


class PreconditionModel(BaseModel):
    robot_id: Union[str, int]
    step: int


class SegmentModel(BaseModel):
    x: float
    y: float
    theta: float = 0.0
    preconditions: List[PreconditionModel] = []


class PathRequest(BaseModel):
    segments: List[SegmentModel]


class ModeRequest(BaseModel):
    mode: Optional[str] = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    coordinator = get_coordinator()
    return {
        "status": "ok",
        "version": __version__,
        "robots": len(coordinator.robot_names()),
        "uptime_s": round(time.time() - state.started_at, 1),
    }


@app.get("/api/progress")
async def get_progress():
    return {"progress": get_coordinator().progress()}


@app.get("/api/robots")
async def list_robots():
    return {"robots": get_coordinator().status()}


@app.get("/api/robots/{robot_id}")
async def robot_status(robot_id: str):
    return get_coordinator().controller(robot_id).status()


@app.post("/api/robots/{robot_id}/pose")
async def post_pose(robot_id: str, body: PoseRequest) -> Dict[str, Any]:
    coordinator = get_coordinator()
    timestamp = body.timestamp if body.timestamp is not None else time.monotonic()
    command = coordinator.on_pose_sample(robot_id, Pose(body.x, body.y, body.theta), timestamp)
    return {
        "robot_id": robot_id,
        "linear": command.linear,
        "angular": command.angular,
        "step_count": coordinator.controller(robot_id).get_step_count(),
    }


@app.post("/api/robots/{robot_id}/path")
async def post_path(robot_id: str, body: PathRequest) -> Dict[str, Any]:
    message = {"segments": [seg.model_dump() for seg in body.segments]}
    path = get_coordinator().on_path_assignment(robot_id, message)
    logger.info("Path for %s assigned via gateway (%d segments)", robot_id, len(path))
    return {"ok": True, "robot_id": robot_id, "segments": len(path)}


@app.post("/api/robots/{robot_id}/mode")
async def post_mode(robot_id: str, body: ModeRequest) -> Dict[str, Any]:
    mode = get_coordinator().on_mode_command(robot_id, body.mode)
    return {"ok": True, "robot_id": robot_id, "mode": mode.value}


@app.post("/api/stop")
async def stop_all():
    coordinator = get_coordinator()
    coordinator.stop_all()
    return {"ok": True, "stopped": coordinator.robot_names()}


# ---------------------------------------------------------------------------
# CLI entry
# ---------------------------------------------------------------------------
def main():
    import uvicorn

    parser = argparse.ArgumentParser(description="Convoy API Gateway")
    parser.add_argument("--config", default=None, help="Fleet config file")
    parser.add_argument("--host", default=os.getenv("CONVOY_API_HOST"))
    parser.add_argument("--port", type=int, default=None)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    host, port = args.host, args.port
    if args.config:
        os.environ["CONVOY_CONFIG"] = args.config
        cfg = load_config(args.config)
        host = host or cfg.gateway_host
        port = port or cfg.gateway_port

    uvicorn.run(
        "convoy.api:app",
        host=host or "127.0.0.1",
        port=port or int(os.getenv("CONVOY_API_PORT", "8000")),
        log_level="info",
    )


if __name__ == "__main__":
    main()
