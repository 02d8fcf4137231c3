"""FleetCoordinator — routes fleet traffic to per-robot segment controllers."""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from convoy.control.mode import ControlMode, parse_mode
from convoy.control.segment import ZERO, SegmentController, VelocityCommand
from convoy.control.settings import ControllerSettings
from convoy.drivers.base import CommandSink
from convoy.errors import InvalidConfigurationError, InvalidPoseError, UnknownRobotError
from convoy.path import Path
from convoy.progress import ProgressTable

logger = logging.getLogger("Convoy.Fleet")


class FleetCoordinator:
    """Owns one :class:`SegmentController` per robot and keeps their
    precondition views consistent.

    After every update whose step count changed, the new count is written
    to the :class:`ProgressTable` and broadcast to every controller through
    ``notify_progress``. The broadcast runs under a single coordinator lock
    so concurrent dispatch threads see one serialized order of progress
    updates; each robot's own state is guarded by a per-robot lock.
    """

    def __init__(
        self,
        settings: Optional[ControllerSettings] = None,
        sink: Optional[CommandSink] = None,
        robot_names: Iterable[str] = (),
    ) -> None:
        self._settings = (settings or ControllerSettings()).validate()
        self._sink = sink
        self._table = ProgressTable()
        self._controllers: Dict[str, SegmentController] = {}
        self._robot_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.RLock()

        for name in robot_names:
            self.register_robot(name)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_robot(self, robot_id: str) -> SegmentController:
        """Create a controller and zero progress entry for *robot_id* (idempotent)."""
        with self._lock:
            existing = self._controllers.get(robot_id)
            if existing is not None:
                return existing
            controller = SegmentController(robot_id, self._settings)
            for peer, count in self._table.snapshot().items():
                controller.notify_progress(peer, count)
            self._controllers[robot_id] = controller
            self._robot_locks[robot_id] = threading.Lock()
            self._table.register(robot_id)
            for ctrl in self._controllers.values():
                ctrl.notify_progress(robot_id, 0)
        logger.info(f"Registered robot '{robot_id}'")
        return controller

    def robot_names(self) -> List[str]:
        """Registered robots in registration order."""
        with self._lock:
            return list(self._controllers)

    def controller(self, robot_id: str) -> SegmentController:
        with self._lock:
            ctrl = self._controllers.get(robot_id)
        if ctrl is None:
            raise UnknownRobotError(robot_id)
        return ctrl

    def resolve_robot_id(self, ref: Any) -> str:
        """Map a robot reference to a registered name.

        Path messages may refer to peers by position in the fleet's robot
        list rather than by name; integers (or digit strings that are not
        themselves robot names) are resolved by index.
        """
        with self._lock:
            names = list(self._controllers)
        if isinstance(ref, str) and ref in names:
            return ref
        index = None
        if isinstance(ref, int) and not isinstance(ref, bool):
            index = ref
        elif isinstance(ref, str) and ref.strip().isdigit():
            index = int(ref.strip())
        if index is not None and 0 <= index < len(names):
            return names[index]
        raise UnknownRobotError(ref)

    @property
    def sink(self) -> Optional[CommandSink]:
        return self._sink

    @property
    def progress_table(self) -> ProgressTable:
        return self._table

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def on_pose_sample(self, robot_id: str, pose: Any, timestamp: float) -> VelocityCommand:
        """Run one control step for *robot_id* and emit its command.

        A malformed pose yields a zero command for this cycle; controller
        state is untouched.

        Raises:
            UnknownRobotError: *robot_id* was never registered.
        """
        ctrl = self.controller(robot_id)
        with self._robot_locks[robot_id]:
            before = ctrl.get_step_count()
            try:
                command = ctrl.update(pose, timestamp, self._table.snapshot())
            except InvalidPoseError as exc:
                logger.warning(f"Rejected pose for '{robot_id}': {exc.message}")
                command = ZERO
            after = ctrl.get_step_count()
            self._emit(robot_id, command)
            if after != before:
                self._broadcast(robot_id, after)
        return command

    def on_path_assignment(self, robot_id: str, path: Any) -> Path:
        """Assign a new path to *robot_id* and publish its reset progress.

        Accepts a :class:`Path`, a sequence of PathPoint, or a path message
        dict/list. Positional peer references are resolved to robot names.

        Raises:
            UnknownRobotError: unknown robot, or a precondition uses an
                out-of-range robot index.
            InvalidPathError: empty or malformed path; the old path is kept.
        """
        ctrl = self.controller(robot_id)
        parsed = Path.from_message(path).map_robot_ids(self._resolve_peer)
        with self._robot_locks[robot_id]:
            ctrl.assign_path(parsed)
            with self._lock:
                self._table.reset(robot_id)
                for c in self._controllers.values():
                    c.notify_progress(robot_id, 0)
        return parsed

    def on_mode_command(self, robot_id: str, token: Any) -> ControlMode:
        """Map an external token to a mode (unknown tokens mean RUN) and apply it."""
        ctrl = self.controller(robot_id)
        mode = parse_mode(token)
        with self._robot_locks[robot_id]:
            ctrl.set_mode(mode)
        if mode is ControlMode.STOP and self._sink is not None:
            self._sink.stop(robot_id)
        return mode

    def stop_all(self) -> None:
        for robot_id in self.robot_names():
            self.on_mode_command(robot_id, ControlMode.STOP)

    def configure_all(self, **settings: float) -> ControllerSettings:
        """Apply settings to every controller. All-or-nothing on validation."""
        try:
            candidate = dataclasses.replace(self._settings, **settings)
        except TypeError as exc:
            raise InvalidConfigurationError(str(exc)) from exc
        candidate.validate()
        with self._lock:
            self._settings = candidate
            targets = [
                (self._robot_locks[name], ctrl) for name, ctrl in self._controllers.items()
            ]
        # Robot locks are always taken before the coordinator lock, never inside it.
        for robot_lock, ctrl in targets:
            with robot_lock:
                ctrl.configure(**candidate.to_dict())
        return candidate

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def progress(self) -> Dict[str, int]:
        return self._table.snapshot()

    def status(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            controllers = list(self._controllers.values())
        return {c.robot_id: c.status() for c in controllers}

    def all_complete(self) -> bool:
        with self._lock:
            controllers = list(self._controllers.values())
        return bool(controllers) and all(c.is_complete for c in controllers)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_peer(self, ref: Any) -> Any:
        try:
            return self.resolve_robot_id(ref)
        except UnknownRobotError:
            if isinstance(ref, str) and not ref.strip().isdigit():
                logger.warning(f"Precondition references unregistered robot '{ref}'")
                return ref
            raise

    def _emit(self, robot_id: str, command: VelocityCommand) -> None:
        if self._sink is None:
            return
        try:
            self._sink.publish(robot_id, command.linear, command.angular)
        except Exception as exc:
            logger.error(f"Command sink failed for '{robot_id}': {exc}")

    def _broadcast(self, robot_id: str, count: int) -> None:
        with self._lock:
            self._table.update(robot_id, count)
            for ctrl in self._controllers.values():
                ctrl.notify_progress(robot_id, count)
        logger.debug(f"Progress '{robot_id}' -> {count}")
