"""Tunable parameters for a segment controller."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from convoy.errors import InvalidConfigurationError


@dataclass(frozen=True)
class ControllerSettings:
    """Velocity limits, goal radius and heading PID gains.

    Defaults match the fleet controller's shipped parameters.
    """

    max_linear_velocity: float = 0.8  # m/s
    max_angular_velocity: float = 1.0  # rad/s
    goal_radius: float = 0.2  # m
    kp: float = 5.0
    ki: float = 0.0
    kd: float = 1.0
    heading_threshold: float = math.pi / 2  # rad; linear velocity is 0 beyond this
    integral_limit: float = 1.0

    def errors(self) -> List[str]:
        """Return a list of human-readable problems (empty when valid)."""
        problems: List[str] = []
        for name, value in asdict(self).items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                problems.append(f"'{name}' must be a number, got {value!r}")
            elif not math.isfinite(value):
                problems.append(f"'{name}' must be finite, got {value!r}")
            elif value < 0:
                problems.append(f"'{name}' must be >= 0, got {value!r}")
        for name in ("heading_threshold", "integral_limit"):
            value = getattr(self, name)
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0:
                problems.append(f"'{name}' must be > 0")
        return problems

    def validate(self) -> "ControllerSettings":
        problems = self.errors()
        if problems:
            raise InvalidConfigurationError("; ".join(problems))
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ControllerSettings":
        """Build from a dict, ignoring unknown keys."""
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in d.items() if k in known})
