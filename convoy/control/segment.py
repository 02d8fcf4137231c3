"""Per-robot segment-following controller.

Turns periodic pose samples into velocity commands while walking an
assigned :class:`~convoy.path.Path` one segment at a time. Entry into a
segment is gated by that segment's preconditions, evaluated against the
fleet progress snapshot handed to :meth:`SegmentController.update` and,
for robots missing from it, the controller's own cache fed by
:meth:`SegmentController.notify_progress`.

Mode handling:

- ``RUN``  — follow the path, advancing whenever a goal is reached.
- ``STOP`` — emit exactly zero velocity, regardless of pose.
- ``STEP`` — drive until the next goal is reached, advance once, then
  hold like ``STOP`` until another ``set_mode(STEP)`` or ``set_mode(RUN)``.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from collections import ChainMap
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from convoy.control.mode import ControlMode, parse_mode
from convoy.control.pid import PIDController, clamp, wrap_angle
from convoy.control.settings import ControllerSettings
from convoy.errors import InvalidConfigurationError, InvalidPathError, InvalidPoseError
from convoy.path import Path, PathPoint, preconditions_satisfied, unmet_preconditions

logger = logging.getLogger("Convoy.Controller")

__all__ = ["Pose", "VelocityCommand", "SegmentController"]


@dataclass(frozen=True)
class Pose:
    """Planar pose. ``theta`` is the heading in radians."""

    x: float
    y: float
    theta: float = 0.0

    def is_finite(self) -> bool:
        try:
            return all(math.isfinite(v) for v in (self.x, self.y, self.theta))
        except TypeError:
            return False


@dataclass(frozen=True)
class VelocityCommand:
    linear: float = 0.0
    angular: float = 0.0

    @property
    def is_zero(self) -> bool:
        return self.linear == 0.0 and self.angular == 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"linear": self.linear, "angular": self.angular}


ZERO = VelocityCommand(0.0, 0.0)


def _as_pose(pose: Any) -> Pose:
    if isinstance(pose, Pose):
        return pose
    if isinstance(pose, Mapping):
        return Pose(pose.get("x"), pose.get("y"), pose.get("theta", 0.0))
    try:
        return Pose(*pose)
    except TypeError as exc:
        raise InvalidPoseError(f"Cannot interpret pose {pose!r}") from exc


class SegmentController:
    """State machine for one robot: path, mode, segment index and heading PID."""

    def __init__(self, robot_id: str, settings: Optional[ControllerSettings] = None):
        self.robot_id = robot_id
        self._settings = (settings or ControllerSettings()).validate()
        self._pid = PIDController(
            self._settings.kp,
            self._settings.ki,
            self._settings.kd,
            self._settings.integral_limit,
        )
        self._last_timestamp: Optional[float] = None
        self._path: Optional[Path] = None
        self._index = 0
        self._mode = ControlMode.RUN
        self._step_armed = False
        self._waiting = False
        self._pose: Optional[Pose] = None
        self._last_command = ZERO
        self._progress_cache: Dict[Any, int] = {}

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def settings(self) -> ControllerSettings:
        return self._settings

    def configure(
        self,
        max_linear_velocity: Optional[float] = None,
        max_angular_velocity: Optional[float] = None,
        kp: Optional[float] = None,
        ki: Optional[float] = None,
        kd: Optional[float] = None,
        goal_radius: Optional[float] = None,
        **extra: float,
    ) -> ControllerSettings:
        """Replace tunable parameters; omitted ones keep their current value.

        Raises:
            InvalidConfigurationError: a value is negative or non-finite.
                The previous settings stay in effect.
        """
        changes = {
            "max_linear_velocity": max_linear_velocity,
            "max_angular_velocity": max_angular_velocity,
            "kp": kp,
            "ki": ki,
            "kd": kd,
            "goal_radius": goal_radius,
            **extra,
        }
        changes = {k: v for k, v in changes.items() if v is not None}
        try:
            candidate = dataclasses.replace(self._settings, **changes)
        except TypeError as exc:
            raise InvalidConfigurationError(str(exc)) from exc
        self._settings = candidate.validate()
        self._pid.set_gains(
            self._settings.kp, self._settings.ki, self._settings.kd, self._settings.integral_limit
        )
        return self._settings

    # ------------------------------------------------------------------
    # Path and mode
    # ------------------------------------------------------------------

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def assign_path(self, path: Union[Path, Sequence[PathPoint]]) -> None:
        """Replace the path and restart from segment 0.

        Raises:
            InvalidPathError: empty or malformed path; the old path is kept.
        """
        if not isinstance(path, Path):
            if path is None:
                raise InvalidPathError("Path must contain at least one segment")
            path = Path(path)
        self._path = path
        self._index = 0
        self._waiting = False
        self._reset_accumulator()
        if self._mode is ControlMode.STEP:
            self._step_armed = False
        logger.info(f"[{self.robot_id}] path assigned ({len(path)} segments)")

    @property
    def mode(self) -> ControlMode:
        return self._mode

    def set_mode(self, mode: Union[ControlMode, str]) -> ControlMode:
        """Switch mode; takes effect on the next update. STEP arms one advance."""
        mode = parse_mode(mode)
        self._mode = mode
        self._step_armed = mode is ControlMode.STEP
        logger.info(f"[{self.robot_id}] mode -> {mode.value}")
        return mode

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def get_step_count(self) -> int:
        return self._index

    @property
    def is_complete(self) -> bool:
        return self._path is not None and self._index >= len(self._path)

    @property
    def is_waiting(self) -> bool:
        """True while held at a synchronization barrier."""
        return self._waiting

    @property
    def current_target(self) -> Optional[PathPoint]:
        if self._path is None or self.is_complete:
            return None
        return self._path[self._index]

    def notify_progress(self, robot_id: Any, step_count: int) -> None:
        """Record another robot's latest step count for precondition checks."""
        self._progress_cache[robot_id] = step_count

    def known_progress(self) -> Dict[Any, int]:
        return dict(self._progress_cache)

    # ------------------------------------------------------------------
    # Control step
    # ------------------------------------------------------------------

    def update(
        self,
        pose: Any,
        timestamp: float,
        progress: Optional[Mapping[Any, int]] = None,
    ) -> VelocityCommand:
        """Consume one pose sample and return the velocity command.

        Raises:
            InvalidPoseError: non-finite pose or timestamp. No state changes.
        """
        pose = _as_pose(pose)
        if not pose.is_finite():
            raise InvalidPoseError(f"[{self.robot_id}] non-finite pose {pose}")
        try:
            timestamp = float(timestamp)
        except (TypeError, ValueError) as exc:
            raise InvalidPoseError(f"[{self.robot_id}] invalid timestamp {timestamp!r}") from exc
        if not math.isfinite(timestamp):
            raise InvalidPoseError(f"[{self.robot_id}] non-finite timestamp {timestamp!r}")

        self._pose = pose

        if self._is_idle():
            self._waiting = False
            self._reset_accumulator()
            return self._emit(ZERO)

        priming = self._last_timestamp is None
        if priming:
            dt = 0.0
            self._last_timestamp = timestamp
        else:
            # Repeated or out-of-order samples drive with dt == 0.
            dt = max(0.0, timestamp - self._last_timestamp)
            self._last_timestamp = max(timestamp, self._last_timestamp)
        view = ChainMap(dict(progress or {}), self._progress_cache)

        target = self._path[self._index]
        if not self._gate_open(target, view):
            return self._emit(ZERO)

        if target.distance_to(pose.x, pose.y) <= self._settings.goal_radius:
            self._advance()
            if self._mode is ControlMode.STEP:
                self._step_armed = False
                return self._emit(ZERO)
            if self.is_complete:
                return self._emit(ZERO)
            target = self._path[self._index]
            if not self._gate_open(target, view):
                return self._emit(ZERO)

        return self._emit(self._drive(pose, target, dt, priming))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_idle(self) -> bool:
        if self._mode is ControlMode.STOP:
            return True
        if self._mode is ControlMode.STEP and not self._step_armed:
            return True
        return self._path is None or self.is_complete

    def _gate_open(self, target: PathPoint, view: Mapping[Any, int]) -> bool:
        if preconditions_satisfied(target.preconditions, view):
            if self._waiting:
                logger.info(f"[{self.robot_id}] barrier released at segment {self._index}")
            self._waiting = False
            return True
        if not self._waiting:
            pending = ", ".join(
                f"{pc.robot_id}>={pc.required_step_count}"
                for pc in unmet_preconditions(target.preconditions, view)
            )
            logger.debug(f"[{self.robot_id}] holding at segment {self._index}: waiting for {pending}")
        self._waiting = True
        self._pid.reset()
        return False

    def _advance(self) -> None:
        self._index += 1
        self._pid.reset()
        if self.is_complete:
            logger.info(f"[{self.robot_id}] path complete ({self._index} segments)")
        else:
            logger.info(f"[{self.robot_id}] reached segment {self._index - 1}, step={self._index}")

    def _drive(
        self, pose: Pose, target: PathPoint, dt: float, priming: bool = False
    ) -> VelocityCommand:
        s = self._settings
        desired = math.atan2(target.y - pose.y, target.x - pose.x)
        error = wrap_angle(desired - pose.theta)
        angular = self._pid.step(error, dt)
        if priming:
            # First sample after a reset primes the PID but does not move.
            return ZERO
        angular = clamp(angular, s.max_angular_velocity)
        scale = max(0.0, 1.0 - abs(error) / s.heading_threshold)
        linear = clamp(s.max_linear_velocity * scale, s.max_linear_velocity)
        return VelocityCommand(linear=linear, angular=angular)

    def _reset_accumulator(self) -> None:
        self._pid.reset()
        self._last_timestamp = None

    def _emit(self, command: VelocityCommand) -> VelocityCommand:
        self._last_command = command
        return command

    def status(self) -> Dict[str, Any]:
        return {
            "robot_id": self.robot_id,
            "mode": self._mode.value,
            "segment_index": self._index,
            "path_length": len(self._path) if self._path is not None else 0,
            "step_count": self._index,
            "complete": self.is_complete,
            "waiting": self._waiting,
            "pose": dataclasses.asdict(self._pose) if self._pose is not None else None,
            "last_command": self._last_command.to_dict(),
        }
