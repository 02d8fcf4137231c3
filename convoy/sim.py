"""
Convoy kinematic fleet simulator.

Closes the control loop without hardware: every tick each robot's pose is
fed to the coordinator and the returned command is integrated with
unicycle kinematics. Used by ``convoy demo`` and the integration tests.

Usage::

    sim = crossing_simulator()
    ticks = sim.run_until_complete(max_steps=2000)
    print(sim.coordinator.progress())
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from convoy.control.segment import Pose, VelocityCommand
from convoy.control.settings import ControllerSettings
from convoy.drivers.recording import RecordingSink
from convoy.fleet.coordinator import FleetCoordinator
from convoy.path import Path, PathPoint, Precondition

logger = logging.getLogger("Convoy.Sim")


@dataclass
class SimRobot:
    pose: Pose
    command: VelocityCommand = field(default_factory=VelocityCommand)
    trace: List[Tuple[float, float]] = field(default_factory=list)


@dataclass
class ProgressEvent:
    tick: int
    robot_id: str
    step_count: int


class FleetSimulator:
    """Unicycle simulation of every robot registered on *coordinator*."""

    def __init__(
        self,
        coordinator: FleetCoordinator,
        dt: float = 0.05,
        start_poses: Optional[Dict[str, Pose]] = None,
    ) -> None:
        if dt <= 0:
            raise ValueError("dt must be > 0")
        self.coordinator = coordinator
        self.dt = dt
        self.time = 0.0
        self.ticks = 0
        self.robots: Dict[str, SimRobot] = {}
        self.events: List[ProgressEvent] = []
        start_poses = start_poses or {}
        for name in coordinator.robot_names():
            self.robots[name] = SimRobot(pose=start_poses.get(name, Pose(0.0, 0.0, 0.0)))
        self._sub_id = coordinator.progress_table.subscribe(self._on_progress)

    def _on_progress(self, robot_id: str, count: int) -> None:
        self.events.append(ProgressEvent(self.ticks, robot_id, count))

    def set_pose(self, robot_id: str, pose: Pose) -> None:
        self.robots[robot_id].pose = pose

    def step(self) -> None:
        """Feed one pose sample per robot, then integrate the commands over ``dt``."""
        for name, robot in self.robots.items():
            robot.command = self.coordinator.on_pose_sample(name, robot.pose, self.time)
        for robot in self.robots.values():
            robot.pose = integrate(robot.pose, robot.command, self.dt)
            robot.trace.append((robot.pose.x, robot.pose.y))
        self.time += self.dt
        self.ticks += 1

    def run_until_complete(self, max_steps: int = 5000) -> int:
        """Step until every robot finishes its path. Returns the ticks run."""
        start = self.ticks
        while self.ticks - start < max_steps:
            if self.coordinator.all_complete():
                break
            self.step()
        else:
            logger.warning("Simulation stopped after %d ticks without completing", max_steps)
        return self.ticks - start

    def first_tick(self, robot_id: str, step_count: int) -> Optional[int]:
        """Tick at which *robot_id* first reported *step_count*, if ever."""
        for ev in self.events:
            if ev.robot_id == robot_id and ev.step_count == step_count:
                return ev.tick
        return None

    def close(self) -> None:
        self.coordinator.progress_table.unsubscribe(self._sub_id)


def integrate(pose: Pose, command: VelocityCommand, dt: float) -> Pose:
    """Advance a unicycle pose by one step."""
    theta = pose.theta + command.angular * dt
    theta = math.atan2(math.sin(theta), math.cos(theta))
    return Pose(
        pose.x + command.linear * math.cos(theta) * dt,
        pose.y + command.linear * math.sin(theta) * dt,
        theta,
    )


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


def crossing_scenario() -> Tuple[Dict[str, Path], Dict[str, Pose]]:
    """Two robots whose routes cross at (2, 0).

    ``robot1`` waits below the crossing until ``robot0`` has reached its
    second goal, i.e. has cleared the intersection.
    """
    paths = {
        "robot0": Path([PathPoint(1.0, 0.0), PathPoint(3.0, 0.0), PathPoint(4.0, 0.0)]),
        "robot1": Path(
            [
                PathPoint(2.0, -1.5),
                PathPoint(2.0, 1.5, preconditions=(Precondition("robot0", 2),)),
                PathPoint(2.0, 3.0),
            ]
        ),
    }
    starts = {
        "robot0": Pose(0.0, 0.0, 0.0),
        "robot1": Pose(2.0, -2.5, math.pi / 2),
    }
    return paths, starts


def crossing_simulator(
    settings: Optional[ControllerSettings] = None, dt: float = 0.05
) -> FleetSimulator:
    paths, starts = crossing_scenario()
    coordinator = FleetCoordinator(settings, sink=RecordingSink(), robot_names=list(paths))
    for name, path in paths.items():
        coordinator.on_path_assignment(name, path)
    return FleetSimulator(coordinator, dt=dt, start_poses=starts)
