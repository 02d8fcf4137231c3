"""Segment path model.

A :class:`Path` is an ordered, immutable tuple of :class:`PathPoint`
targets. Each point may carry :class:`Precondition` gates: the robot may
not enter that segment until every named peer has completed at least the
required number of segments.

Paths arrive from the planner either as :class:`PathPoint` sequences or
as plain dicts (JSON/YAML)::

    {"segments": [
        {"x": 1.0, "y": 0.0},
        {"x": 2.0, "y": 0.0, "preconditions": [{"robot_id": "robot1", "step": 1}]},
    ]}

The ROS segment-path message layout is accepted too: the goal under
``end: {x, y}`` and preconditions keyed ``robotId`` / ``stepCondition``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Sequence, Union

from convoy.errors import InvalidPathError

RobotRef = Union[str, int]

__all__ = [
    "Precondition",
    "PathPoint",
    "Path",
    "preconditions_satisfied",
    "unmet_preconditions",
]


@dataclass(frozen=True)
class Precondition:
    """Gate requiring ``robot_id`` to have completed ``required_step_count`` segments."""

    robot_id: RobotRef
    required_step_count: int

    def __post_init__(self) -> None:
        if isinstance(self.required_step_count, bool) or not isinstance(
            self.required_step_count, int
        ):
            raise InvalidPathError(
                f"Precondition step count must be an int, got {self.required_step_count!r}"
            )
        if self.required_step_count < 0:
            raise InvalidPathError(
                f"Precondition step count must be >= 0, got {self.required_step_count}"
            )

    def is_satisfied(self, progress: Mapping[Any, int]) -> bool:
        return progress.get(self.robot_id, 0) >= self.required_step_count

    def to_dict(self) -> dict:
        return {"robot_id": self.robot_id, "step": self.required_step_count}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> Precondition:
        if "robot_id" in d:
            robot = d["robot_id"]
        elif "robotId" in d:
            robot = d["robotId"]
        elif "robot" in d:
            robot = d["robot"]
        else:
            raise InvalidPathError(f"Precondition is missing a robot id: {dict(d)!r}")

        step = d.get("step", d.get("stepCondition", d.get("required_step_count")))
        if step is None:
            raise InvalidPathError(f"Precondition is missing a step count: {dict(d)!r}")
        return cls(robot_id=robot, required_step_count=_parse_step_count(step))


def _parse_step_count(value: Any) -> int:
    """Exact step counts only: ints, integral floats, or digit strings."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    raise InvalidPathError(f"Invalid precondition step count: {value!r}")


@dataclass(frozen=True)
class PathPoint:
    """One segment target. ``theta`` is unused when heading follows travel direction."""

    x: float
    y: float
    theta: float = 0.0
    preconditions: tuple[Precondition, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        for name in ("x", "y", "theta"):
            value = getattr(self, name)
            try:
                value = float(value)
            except (TypeError, ValueError) as exc:
                raise InvalidPathError(f"PathPoint.{name} must be a number, got {value!r}") from exc
            if not math.isfinite(value):
                raise InvalidPathError(f"PathPoint.{name} must be finite, got {value!r}")
            object.__setattr__(self, name, value)
        pcs = tuple(self.preconditions)
        for pc in pcs:
            if not isinstance(pc, Precondition):
                raise InvalidPathError(f"Expected Precondition, got {type(pc).__name__}")
        object.__setattr__(self, "preconditions", pcs)

    def distance_to(self, x: float, y: float) -> float:
        return math.hypot(self.x - x, self.y - y)

    def to_dict(self) -> dict:
        return {
            "x": self.x,
            "y": self.y,
            "theta": self.theta,
            "preconditions": [pc.to_dict() for pc in self.preconditions],
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> PathPoint:
        if not isinstance(d, Mapping):
            raise InvalidPathError(f"Segment must be a mapping, got {type(d).__name__}")
        goal = d.get("end", d)
        if not isinstance(goal, Mapping) or "x" not in goal or "y" not in goal:
            raise InvalidPathError(f"Segment is missing x/y: {dict(d)!r}")
        raw_pcs = d.get("preconditions") or []
        if not isinstance(raw_pcs, (list, tuple)):
            raise InvalidPathError("Segment preconditions must be a list")
        return cls(
            x=goal["x"],
            y=goal["y"],
            theta=d.get("theta", 0.0),
            preconditions=tuple(Precondition.from_dict(pc) for pc in raw_pcs),
        )


class Path(Sequence[PathPoint]):
    """Immutable ordered sequence of segment targets. Never empty."""

    __slots__ = ("_points",)

    def __init__(self, points: Iterable[PathPoint]):
        pts = tuple(points)
        if not pts:
            raise InvalidPathError("Path must contain at least one segment")
        for pt in pts:
            if not isinstance(pt, PathPoint):
                raise InvalidPathError(f"Expected PathPoint, got {type(pt).__name__}")
        self._points = pts

    def __getitem__(self, index):
        return self._points[index]

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[PathPoint]:
        return iter(self._points)

    def __eq__(self, other) -> bool:
        if isinstance(other, Path):
            return self._points == other._points
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._points)

    def __repr__(self) -> str:
        return f"Path({len(self._points)} segments)"

    def peers(self) -> set:
        """Every robot referenced by any precondition on this path."""
        return {pc.robot_id for pt in self._points for pc in pt.preconditions}

    def map_robot_ids(self, resolve) -> Path:
        """Return a copy with each precondition's robot id passed through *resolve*."""
        return Path(
            PathPoint(
                x=pt.x,
                y=pt.y,
                theta=pt.theta,
                preconditions=tuple(
                    Precondition(resolve(pc.robot_id), pc.required_step_count)
                    for pc in pt.preconditions
                ),
            )
            for pt in self._points
        )

    def to_dict(self) -> dict:
        return {"segments": [pt.to_dict() for pt in self._points]}

    @classmethod
    def from_message(cls, msg: Any) -> Path:
        """Build a Path from a dict/list message. Raises InvalidPathError."""
        if isinstance(msg, Path):
            return msg
        if isinstance(msg, Mapping):
            segments = msg.get("segments", msg.get("poses"))
        else:
            segments = msg
        if segments is None or isinstance(segments, (str, bytes)):
            raise InvalidPathError("Path message has no segment list")
        if not isinstance(segments, (list, tuple)):
            raise InvalidPathError("Path segments must be a list")
        return cls(
            seg if isinstance(seg, PathPoint) else PathPoint.from_dict(seg) for seg in segments
        )


def unmet_preconditions(
    preconditions: Iterable[Precondition], progress: Mapping[Any, int]
) -> list[Precondition]:
    """Return the preconditions that *progress* does not yet satisfy."""
    return [pc for pc in preconditions if not pc.is_satisfied(progress)]


def preconditions_satisfied(
    preconditions: Iterable[Precondition], progress: Mapping[Any, int]
) -> bool:
    return all(pc.is_satisfied(progress) for pc in preconditions)
