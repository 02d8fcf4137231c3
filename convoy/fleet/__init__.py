"""convoy.fleet — fleet-level routing and progress fan-out.

- :class:`FleetCoordinator` — owns one segment controller per robot,
  routes pose samples, path assignments and mode commands, and broadcasts
  each robot's new step count to every controller.
"""

from convoy.fleet.coordinator import FleetCoordinator

__all__ = ["FleetCoordinator"]
