"""
convoy/drivers/ros2_bridge.py — ROS2 transport for the fleet coordinator.

For every configured robot the bridge subscribes to

- ``<robot>/<odom>``     (``nav_msgs/Odometry``)  -> pose samples
- ``<robot>/<path>``     (``tuw_multi_robot_msgs/SegmentPath``) -> path assignments
- ``<robot>/<control>``  (``std_msgs/String``)    -> mode commands

and publishes ``geometry_msgs/Twist`` on ``<robot>/<cmd_vel>``. All
callbacks run on one spin thread, so controller updates and the progress
fan-out after each update are serialized.

Requires ``rclpy`` (installed as part of a ROS2 distro). Degrades to mock
mode when rclpy is absent: commands are logged, nothing is subscribed.

Config example::

    robot_names_str: "robot0, robot1"
    topics:
      odom: odom
      cmd_vel: cmd_vel
      path: seg_path
      control: /ctrl
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Any, Dict, List, Optional

from convoy.config import FleetConfig
from convoy.control.segment import Pose
from convoy.drivers.base import CommandSink
from convoy.errors import ConvoyError

logger = logging.getLogger("Convoy.ROS2Bridge")

# ---------------------------------------------------------------------------
# Optional rclpy import
# ---------------------------------------------------------------------------

try:
    import rclpy
    from geometry_msgs.msg import Twist
    from nav_msgs.msg import Odometry
    from std_msgs.msg import String

    HAS_RCLPY = True
except ImportError:
    HAS_RCLPY = False
    logger.debug("rclpy not available — ROS2 bridge will run in mock mode")

try:
    from tuw_multi_robot_msgs.msg import SegmentPath

    HAS_SEGMENT_MSGS = True
except ImportError:
    HAS_SEGMENT_MSGS = False


def quaternion_to_yaw(x: float, y: float, z: float, w: float) -> float:
    """Planar heading (rotation about z) of a quaternion, in radians."""
    siny_cosp = 2.0 * (w * z + x * y)
    cosy_cosp = 1.0 - 2.0 * (y * y + z * z)
    return math.atan2(siny_cosp, cosy_cosp)


def odometry_to_pose(msg: Any) -> Pose:
    pose = msg.pose.pose
    q = pose.orientation
    return Pose(pose.position.x, pose.position.y, quaternion_to_yaw(q.x, q.y, q.z, q.w))


def stamp_to_seconds(msg: Any) -> Optional[float]:
    """Seconds from a message header stamp, or None if it is unset."""
    header = getattr(msg, "header", None)
    stamp = getattr(header, "stamp", None)
    if stamp is None:
        return None
    seconds = float(getattr(stamp, "sec", 0)) + float(getattr(stamp, "nanosec", 0)) / 1e9
    return seconds if seconds > 0 else None


def segment_path_to_message(msg: Any) -> List[Dict[str, Any]]:
    """Convert a SegmentPath message into the dict layout :class:`Path` parses."""
    segments = []
    for seg in msg.poses:
        segments.append(
            {
                "x": seg.end.x,
                "y": seg.end.y,
                "theta": 0.0,
                "preconditions": [
                    {"robot_id": pc.robot_id, "step": pc.step_condition}
                    if hasattr(pc, "robot_id")
                    else {"robot_id": pc.robotId, "step": pc.stepCondition}
                    for pc in seg.preconditions
                ],
            }
        )
    return segments


class ROS2Bridge(CommandSink):
    """Per-robot ROS2 topics in, ``cmd_vel`` out.

    Typical wiring::

        bridge = ROS2Bridge(config)
        coordinator = FleetCoordinator(config.controller_settings(), sink=bridge,
                                       robot_names=config.robot_names)
        bridge.attach(coordinator)
        bridge.start()
    """

    def __init__(self, config: Optional[FleetConfig] = None, coordinator=None) -> None:
        self._config = config or FleetConfig()
        self._coordinator = coordinator
        self._node: Optional[Any] = None
        self._publishers: Dict[str, Any] = {}
        self._subscriptions: List[Any] = []
        self._spin_thread: Optional[threading.Thread] = None
        self._closed = False

    def attach(self, coordinator) -> None:
        self._coordinator = coordinator

    @property
    def is_mock(self) -> bool:
        return self._node is None

    def health_check(self) -> Dict:
        if self._node is not None:
            return {"ok": True, "mode": "transport", "error": None}
        return {"ok": True, "mode": "mock", "error": None if not HAS_RCLPY else "not started"}

    # ------------------------------------------------------------------
    # ROS2 initialisation
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Create the node, publishers and subscriptions, and start spinning."""
        if not HAS_RCLPY:
            logger.warning(
                "rclpy not installed — ROS2 bridge running in mock mode. "
                "Install rclpy from your ROS2 distro."
            )
            return
        if self._node is not None:
            return
        try:
            if not rclpy.ok():
                rclpy.init()
            self._node = rclpy.create_node("convoy_fleet_controller")
            for robot in self._config.robot_names:
                self._create_robot_topics(robot)

            self._spin_thread = threading.Thread(
                target=self._spin_forever, daemon=True, name="ros2-spin"
            )
            self._spin_thread.start()
            logger.info(
                "ROS2 bridge initialised for %d robot(s): %s",
                len(self._config.robot_names),
                ", ".join(self._config.robot_names),
            )
        except Exception as exc:  # pragma: no cover
            logger.error("Failed to initialise ROS2 bridge: %s", exc)
            self._node = None
            self._publishers = {}

    def _create_robot_topics(self, robot: str) -> None:
        cfg = self._config
        node = self._node
        self._publishers[robot] = node.create_publisher(
            Twist, cfg.topic_for(robot, "cmd_vel"), 1
        )
        self._subscriptions.append(
            node.create_subscription(
                Odometry,
                cfg.topic_for(robot, "odom"),
                lambda msg, r=robot: self.on_odometry(r, msg),
                1,
            )
        )
        self._subscriptions.append(
            node.create_subscription(
                String,
                cfg.topic_for(robot, "control"),
                lambda msg, r=robot: self.on_control(r, msg),
                1,
            )
        )
        if HAS_SEGMENT_MSGS:
            self._subscriptions.append(
                node.create_subscription(
                    SegmentPath,
                    cfg.topic_for(robot, "path"),
                    lambda msg, r=robot: self.on_segment_path(r, msg),
                    1,
                )
            )
        else:
            logger.debug("tuw_multi_robot_msgs not available — path subscription skipped")

    def _spin_forever(self) -> None:
        try:
            while rclpy.ok() and not self._closed:
                rclpy.spin_once(self._node, timeout_sec=0.05)
        except Exception as exc:
            logger.debug("ROS2 spin thread exiting: %s", exc)

    # ------------------------------------------------------------------
    # Inbound callbacks
    # ------------------------------------------------------------------

    def on_odometry(self, robot: str, msg: Any) -> None:
        if self._coordinator is None:
            return
        timestamp = stamp_to_seconds(msg)
        if timestamp is None:
            timestamp = time.monotonic()
        try:
            self._coordinator.on_pose_sample(robot, odometry_to_pose(msg), timestamp)
        except ConvoyError as exc:
            logger.warning("Dropped odometry for %s: %s", robot, exc.message)

    def on_segment_path(self, robot: str, msg: Any) -> None:
        if self._coordinator is None:
            return
        try:
            path = self._coordinator.on_path_assignment(robot, segment_path_to_message(msg))
            logger.info("%s: got plan with %d segment(s)", robot, len(path))
        except ConvoyError as exc:
            logger.warning("Rejected path for %s: %s", robot, exc.message)

    def on_control(self, robot: str, msg: Any) -> None:
        if self._coordinator is None:
            return
        token = getattr(msg, "data", msg)
        logger.info("%s: received control %r", robot, token)
        try:
            self._coordinator.on_mode_command(robot, token)
        except ConvoyError as exc:
            logger.warning("Dropped control for %s: %s", robot, exc.message)

    # ------------------------------------------------------------------
    # CommandSink interface
    # ------------------------------------------------------------------

    def publish(self, robot_id: str, linear: float = 0.0, angular: float = 0.0) -> None:
        publisher = self._publishers.get(robot_id)
        if publisher is None:
            logger.debug("[mock] %s cmd_vel linear=%.3f angular=%.3f", robot_id, linear, angular)
            return
        msg = Twist()
        msg.linear.x = float(linear)
        msg.angular.z = float(angular)
        publisher.publish(msg)

    def close(self) -> None:
        self._closed = True
        for robot in list(self._publishers):
            try:
                self.stop(robot)
            except Exception as exc:
                logger.debug("ROS2 stop error for %s: %s", robot, exc)
        if self._spin_thread is not None:
            self._spin_thread.join(timeout=1.0)
        if self._node is not None:
            try:
                self._node.destroy_node()
                rclpy.shutdown()
            except Exception as exc:
                logger.debug("ROS2 node destroy error: %s", exc)
        self._node = None
        self._publishers = {}
        logger.info("ROS2 bridge closed")
