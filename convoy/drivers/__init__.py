"""Outbound command sinks.

- :class:`CommandSink` — abstract velocity-command collaborator.
- :class:`RecordingSink` — in-process sink (simulator, gateway, tests).
- :class:`ROS2Bridge` — per-robot ROS2 topics; mock mode without rclpy.
"""

from .base import CommandSink
from .recording import RecordingSink

__all__ = ["CommandSink", "RecordingSink", "get_sink"]


def get_sink(kind: str = "recording", **kwargs) -> CommandSink:
    """Build a sink by name ("recording" or "ros2")."""
    kind = (kind or "recording").lower()
    if kind == "recording":
        return RecordingSink(**kwargs)
    if kind == "ros2":
        from .ros2_bridge import ROS2Bridge

        return ROS2Bridge(**kwargs)
    raise ValueError(f"Unknown sink kind: {kind!r}")
