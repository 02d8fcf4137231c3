"""Controller modes and the external command-token mapping."""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger("Convoy.Mode")


class ControlMode(str, Enum):
    RUN = "run"
    STOP = "stop"
    STEP = "step"


def parse_mode(token) -> ControlMode:
    """Map an external command token to a :class:`ControlMode`.

    Tokens are matched after stripping whitespace and lowercasing.
    Anything unrecognised (including ``None``) maps to RUN.
    """
    if isinstance(token, ControlMode):
        return token
    key = str(token).strip().lower() if token is not None else ""
    try:
        return ControlMode(key)
    except ValueError:
        logger.debug(f"Unrecognised mode token {token!r}, defaulting to run")
        return ControlMode.RUN
