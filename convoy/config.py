"""Fleet configuration loading and validation.

Reads a YAML file describing the fleet and the controller tuning::

    robot_names: [robot0, robot1]      # or robot_names_str: "robot0, robot1"
    topics:
      odom: odom
      cmd_vel: cmd_vel
      path: seg_path
      control: /ctrl
    controller:
      max_v: 0.8
      max_w: 1.0
      goal_radius: 0.2
      Kp: 5.0
      Ki: 0.0
      Kd: 1.0
    gateway:
      host: 127.0.0.1
      port: 8000

Call :func:`validate_config` to collect every problem at once, or
:func:`load_config` to fail fast with :class:`InvalidConfigurationError`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from convoy.control.settings import ControllerSettings
from convoy.errors import InvalidConfigurationError

logger = logging.getLogger("Convoy.Config")

DEFAULT_ROBOT_NAMES: List[str] = ["robot0"]

DEFAULT_TOPICS: Dict[str, str] = {
    "odom": "odom",
    "cmd_vel": "cmd_vel",
    "path": "seg_path",
    "control": "/ctrl",
}

# YAML key -> ControllerSettings field
CONTROLLER_KEYS: Dict[str, str] = {
    "max_v": "max_linear_velocity",
    "max_w": "max_angular_velocity",
    "goal_radius": "goal_radius",
    "Kp": "kp",
    "Ki": "ki",
    "Kd": "kd",
    "heading_threshold": "heading_threshold",
    "integral_limit": "integral_limit",
}


def parse_robot_names(names: str) -> List[str]:
    """Split a comma-separated robot list. Spaces are removed, empties dropped."""
    cleaned = names.replace(" ", "")
    return [n for n in cleaned.split(",") if n]


@dataclass
class FleetConfig:
    robot_names: List[str] = field(default_factory=lambda: list(DEFAULT_ROBOT_NAMES))
    topics: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TOPICS))
    controller: Dict[str, Any] = field(default_factory=dict)
    gateway_host: str = "127.0.0.1"
    gateway_port: int = 8000

    def controller_settings(self) -> ControllerSettings:
        values = {CONTROLLER_KEYS[k]: v for k, v in self.controller.items() if k in CONTROLLER_KEYS}
        return ControllerSettings(**values).validate()

    def topic_for(self, robot: str, kind: str) -> str:
        """Per-robot topic name, e.g. ``robot0/cmd_vel``."""
        topic = self.topics.get(kind, DEFAULT_TOPICS.get(kind, kind))
        return f"{robot.rstrip('/')}/{topic.lstrip('/')}"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FleetConfig":
        data = {} if data is None else data
        ok, errors = validate_config(data)
        if not ok:
            raise InvalidConfigurationError("; ".join(errors))

        names = _robot_names(data)
        if not names:
            logger.warning("No robot names configured, defaulting to %s", DEFAULT_ROBOT_NAMES)
            names = list(DEFAULT_ROBOT_NAMES)

        topics = dict(DEFAULT_TOPICS)
        topics.update(data.get("topics") or {})
        gateway = data.get("gateway") or {}
        cfg = cls(
            robot_names=names,
            topics=topics,
            controller=dict(data.get("controller") or {}),
            gateway_host=str(gateway.get("host", "127.0.0.1")),
            gateway_port=int(gateway.get("port", 8000)),
        )
        cfg.controller_settings()
        return cfg


def _robot_names(data: Dict[str, Any]) -> List[str]:
    names_str = data.get("robot_names_str")
    if isinstance(names_str, str) and names_str.strip():
        return parse_robot_names(names_str)
    names = data.get("robot_names")
    if isinstance(names, str):
        return parse_robot_names(names)
    return [str(n) for n in (names or [])]


def validate_config(config: Any) -> Tuple[bool, List[str]]:
    """Validate a loaded fleet config dict.

    Returns:
        A ``(is_valid, errors)`` tuple. Each entry in ``errors`` is a
        human-readable description of what is missing or wrong.
    """
    if config is None:
        return True, []
    if not isinstance(config, dict):
        return False, ["Config must be a mapping (check YAML syntax)"]

    errors: List[str] = []

    # ── robot names ──────────────────────────────────────────────────────
    names = config.get("robot_names")
    if names is not None and not isinstance(names, (list, str)):
        errors.append("'robot_names' must be a list or comma-separated string")
    names_str = config.get("robot_names_str")
    if names_str is not None and not isinstance(names_str, str):
        errors.append("'robot_names_str' must be a string")
    if not errors:
        resolved = _robot_names(config)
        dupes = sorted({n for n in resolved if resolved.count(n) > 1})
        if dupes:
            errors.append(f"Duplicate robot names: {', '.join(dupes)}")

    # ── topics ───────────────────────────────────────────────────────────
    topics = config.get("topics")
    if topics is not None:
        if not isinstance(topics, dict):
            errors.append("'topics' must be a mapping")
        else:
            for key, value in topics.items():
                if not isinstance(value, str) or not value.strip("/"):
                    errors.append(f"'topics.{key}' must be a non-empty string")

    # ── controller block ─────────────────────────────────────────────────
    controller = config.get("controller")
    if controller is not None:
        if not isinstance(controller, dict):
            errors.append("'controller' must be a mapping")
        else:
            unknown = sorted(set(controller) - set(CONTROLLER_KEYS))
            for key in unknown:
                errors.append(f"Unknown controller key: 'controller.{key}'")
            values = {
                CONTROLLER_KEYS[k]: v for k, v in controller.items() if k in CONTROLLER_KEYS
            }
            for msg in ControllerSettings(**values).errors():
                errors.append(f"controller: {msg}")

    # ── gateway block ────────────────────────────────────────────────────
    gateway = config.get("gateway")
    if gateway is not None:
        if not isinstance(gateway, dict):
            errors.append("'gateway' must be a mapping")
        else:
            port = gateway.get("port", 8000)
            if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
                errors.append(f"'gateway.port' must be an int in 1..65535, got {port!r}")

    return len(errors) == 0, errors


def _find_config(config_path: Optional[str] = None) -> Path:
    if config_path:
        return Path(config_path)
    env_cfg = os.getenv("CONVOY_CONFIG")
    if env_cfg:
        return Path(env_cfg)
    return Path("convoy.yaml")


def load_config(config_path: Optional[str] = None) -> FleetConfig:
    """Load and validate the fleet config.

    Raises:
        InvalidConfigurationError: missing file, bad YAML or invalid values.
    """
    path = _find_config(config_path)
    try:
        with open(path) as fh:
            data = yaml.safe_load(fh) or {}
    except FileNotFoundError as exc:
        raise InvalidConfigurationError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise InvalidConfigurationError(f"Failed to parse {path}: {exc}") from exc

    cfg = FleetConfig.from_dict(data)
    logger.info(f"Loaded fleet config from {path}: {', '.join(cfg.robot_names)}")
    return cfg


def log_validation_result(config: dict, label: str = "Fleet config") -> bool:
    """Validate *config* and log each error. Returns True if valid."""
    ok, errors = validate_config(config)
    if ok:
        logger.debug("%s validation passed", label)
    else:
        for msg in errors:
            logger.error("%s validation error: %s", label, msg)
    return ok
