"""
Convoy Runtime - the ROS2 fleet controller entry point.
Loads the fleet config, builds one segment controller per robot and
bridges them to the per-robot ROS2 topics until interrupted.
"""

import argparse
import logging
import signal
import threading

from convoy.config import load_config
from convoy.drivers.ros2_bridge import ROS2Bridge
from convoy.errors import InvalidConfigurationError
from convoy.fleet.coordinator import FleetCoordinator

logger = logging.getLogger("Convoy")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )


def build_runtime(config_path: str = None):
    """Return ``(config, coordinator, bridge)`` wired together but not started."""
    config = load_config(config_path)
    bridge = ROS2Bridge(config)
    coordinator = FleetCoordinator(
        config.controller_settings(),
        sink=bridge,
        robot_names=config.robot_names,
    )
    bridge.attach(coordinator)
    return config, coordinator, bridge


def run(config_path: str = None) -> int:
    try:
        config, coordinator, bridge = build_runtime(config_path)
    except InvalidConfigurationError as exc:
        logger.error(f"Cannot start: {exc.message}")
        return 1

    settings = config.controller_settings()
    logger.info(
        "Multi Robot Controller: %d robot(s), max_v=%.2f max_w=%.2f goal_radius=%.2f",
        len(config.robot_names),
        settings.max_linear_velocity,
        settings.max_angular_velocity,
        settings.goal_radius,
    )

    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    bridge.start()
    try:
        while not stop_event.wait(0.5):
            pass
    finally:
        coordinator.stop_all()
        bridge.close()
    return 0


def main():
    parser = argparse.ArgumentParser(description="Convoy fleet controller")
    parser.add_argument("--config", type=str, default=None, help="Path to fleet config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()
    setup_logging(args.verbose)
    raise SystemExit(run(args.config))


if __name__ == "__main__":
    main()
