"""In-process command sink.

Keeps the last command per robot plus a bounded history. Used by the
simulator, the HTTP gateway and tests; it logs at DEBUG instead of
driving hardware.
"""

import collections
import logging
import threading
import time
from typing import Deque, Dict, List, Optional, Tuple

from .base import CommandSink

logger = logging.getLogger("Convoy.RecordingSink")

Record = Tuple[float, str, float, float]  # (timestamp, robot_id, linear, angular)


class RecordingSink(CommandSink):
    def __init__(self, history: int = 1000):
        self._lock = threading.Lock()
        self._last: Dict[str, Tuple[float, float]] = {}
        self._history: Deque[Record] = collections.deque(maxlen=history)
        self._closed = False

    def publish(self, robot_id: str, linear: float = 0.0, angular: float = 0.0) -> None:
        if self._closed:
            logger.debug("Sink closed, dropping command for %s", robot_id)
            return
        with self._lock:
            self._last[robot_id] = (linear, angular)
            self._history.append((time.time(), robot_id, linear, angular))
        logger.debug("%s cmd_vel linear=%.3f angular=%.3f", robot_id, linear, angular)

    def last(self, robot_id: str) -> Optional[Tuple[float, float]]:
        with self._lock:
            return self._last.get(robot_id)

    def history(self, robot_id: Optional[str] = None) -> List[Record]:
        with self._lock:
            if robot_id is None:
                return list(self._history)
            return [r for r in self._history if r[1] == robot_id]

    def clear(self) -> None:
        with self._lock:
            self._last.clear()
            self._history.clear()

    def close(self) -> None:
        self._closed = True
