"""Thread-safe fleet progress table.

Maps robot id to the number of path segments that robot has completed.
The coordinator is the only writer; controllers read snapshots and keep
their own caches current through ``notify_progress`` broadcasts.

All operations are guarded by an RLock so the table is safe when pose
events are dispatched from several worker threads.
"""

import logging
import threading
import uuid
from typing import Callable, Dict, List

logger = logging.getLogger("Convoy.Progress")


class ProgressTable:
    """robot id -> completed step count, with change callbacks.

    Example::

        table = ProgressTable()
        table.register("robot0")
        sub_id = table.subscribe(lambda robot, count: print(robot, count))
        table.update("robot0", 1)     # triggers callback
        table.reset("robot0")         # new path assigned, back to 0
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._counts: Dict[str, int] = {}
        self._subscribers: Dict[str, Callable[[str, int], None]] = {}

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def register(self, robot_id: str) -> bool:
        """Create a zero entry for *robot_id*. Returns False if it already existed."""
        with self._lock:
            if robot_id in self._counts:
                return False
            self._counts[robot_id] = 0
            return True

    def update(self, robot_id: str, count: int) -> bool:
        """Record a new step count. Returns True if the value changed.

        Counts only move forward while a path is active. Use :meth:`reset`
        when a new path is assigned.

        Raises:
            ValueError: negative count, or a decrease.
        """
        if count < 0:
            raise ValueError(f"Step count must be >= 0, got {count}")
        with self._lock:
            previous = self._counts.get(robot_id, 0)
            if count < previous:
                raise ValueError(
                    f"Step count for {robot_id!r} cannot decrease ({previous} -> {count})"
                )
            if robot_id in self._counts and count == previous:
                return False
            self._counts[robot_id] = count
        self._notify(robot_id, count)
        return True

    def reset(self, robot_id: str) -> None:
        """Set *robot_id* back to 0 (path reassignment)."""
        with self._lock:
            changed = self._counts.get(robot_id) != 0
            self._counts[robot_id] = 0
        if changed:
            self._notify(robot_id, 0)

    def get(self, robot_id: str, default: int = 0) -> int:
        with self._lock:
            return self._counts.get(robot_id, default)

    def __contains__(self, robot_id) -> bool:
        with self._lock:
            return robot_id in self._counts

    def robots(self) -> List[str]:
        with self._lock:
            return list(self._counts)

    def snapshot(self) -> Dict[str, int]:
        """Return a copy of the table; mutating it does not affect the store."""
        with self._lock:
            return dict(self._counts)

    # ------------------------------------------------------------------
    # Pub/sub
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[str, int], None]) -> str:
        """Call ``callback(robot_id, count)`` on every change. Returns a subscription id."""
        sub_id = str(uuid.uuid4())
        with self._lock:
            self._subscribers[sub_id] = callback
        return sub_id

    def unsubscribe(self, sub_id: str) -> None:
        with self._lock:
            self._subscribers.pop(sub_id, None)

    def _notify(self, robot_id: str, count: int) -> None:
        # Callbacks run outside the lock so they may read the table.
        with self._lock:
            callbacks = list(self._subscribers.values())
        for cb in callbacks:
            try:
                cb(robot_id, count)
            except Exception as exc:
                logger.warning(f"Progress callback error for '{robot_id}': {exc}")
