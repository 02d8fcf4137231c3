"""convoy.control — per-robot segment following.

- :class:`SegmentController` — path, mode, segment index and heading PID
  for one robot; gates segment entry on peer progress.
- :class:`ControlMode` / :func:`parse_mode` — RUN / STOP / STEP and the
  external token mapping (unknown tokens mean RUN).
- :class:`ControllerSettings` — velocity limits, goal radius, PID gains.
"""

from convoy.control.mode import ControlMode, parse_mode
from convoy.control.pid import PIDController
from convoy.control.segment import Pose, SegmentController, VelocityCommand
from convoy.control.settings import ControllerSettings

__all__ = [
    "ControlMode",
    "ControllerSettings",
    "PIDController",
    "Pose",
    "SegmentController",
    "VelocityCommand",
    "parse_mode",
]
