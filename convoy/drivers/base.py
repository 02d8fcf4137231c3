from abc import ABC, abstractmethod
from typing import Dict

__all__ = ["CommandSink"]


class CommandSink(ABC):
    """Outbound collaborator that carries velocity commands to robots.

    Subclasses must implement ``publish()`` and ``close()``. When the
    underlying transport is unavailable, sinks should degrade gracefully
    to a logging mode rather than raising import errors.
    """

    def health_check(self) -> Dict:
        """Return ``{"ok", "mode", "error"}``; ``mode`` is "transport" or "mock"."""
        return {"ok": True, "mode": "mock", "error": None}

    @abstractmethod
    def publish(self, robot_id: str, linear: float = 0.0, angular: float = 0.0) -> None:
        """Send a velocity command to one robot.

        Args:
            robot_id: Registered robot name.
            linear: Forward/backward speed in m/s.
            angular: Turning rate in rad/s.
        """

    def stop(self, robot_id: str) -> None:
        """Immediately command zero velocity."""
        self.publish(robot_id, 0.0, 0.0)

    @abstractmethod
    def close(self) -> None:
        """Release transport resources."""
