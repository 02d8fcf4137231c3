"""Error hierarchy for Convoy.

Every rejection carries a stable ``code`` so transports can report it
without string matching::

    try:
        controller.assign_path(path)
    except ConvoyError as exc:
        logger.warning("%s: %s", exc.code, exc.message)

None of these are fatal. The controller or coordinator that raised keeps
its last valid state and continues serving the rest of the fleet.
"""

from __future__ import annotations


class ConvoyError(Exception):
    """Base class for all Convoy rejections."""

    code = "CONVOY_ERROR"
    status = 400

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class InvalidPathError(ConvoyError):
    """Empty or malformed segment list. The prior path is retained."""

    code = "INVALID_PATH"


class InvalidConfigurationError(ConvoyError):
    """Out-of-range limit or gain. The prior configuration is retained."""

    code = "INVALID_CONFIGURATION"


class InvalidPoseError(ConvoyError):
    """Non-finite pose sample. That cycle's command is zero velocity."""

    code = "INVALID_POSE"
    status = 422


class UnknownRobotError(ConvoyError):
    """A command referenced a robot that was never registered."""

    code = "UNKNOWN_ROBOT"
    status = 404

    def __init__(self, robot_id):
        self.robot_id = robot_id
        super().__init__(f"Unknown robot: {robot_id!r}")
