"""Scalar PID with integral clamping, used for heading control."""

from __future__ import annotations

import math
from typing import Optional


def wrap_angle(angle: float) -> float:
    """Normalise *angle* to [-pi, pi]."""
    return math.atan2(math.sin(angle), math.cos(angle))


def clamp(value: float, limit: float) -> float:
    return max(-limit, min(limit, value))


class PIDController:
    """P + I + D on a single error signal.

    The integral is clamped to ``±integral_limit`` to stop windup while the
    robot is held at a barrier or turning in place. With ``dt == 0`` the
    derivative term is zero and the integral does not grow. The first
    sample after :meth:`reset` has no derivative either.
    """

    def __init__(self, kp: float, ki: float, kd: float, integral_limit: float = 1.0):
        self.kp = kp
        self.ki = ki
        self.kd = kd
        self.integral_limit = integral_limit
        self.integral = 0.0
        self.previous_error: Optional[float] = None

    def set_gains(self, kp: float, ki: float, kd: float, integral_limit: Optional[float] = None):
        self.kp, self.ki, self.kd = kp, ki, kd
        if integral_limit is not None:
            self.integral_limit = integral_limit
            self.integral = clamp(self.integral, integral_limit)

    def reset(self) -> None:
        self.integral = 0.0
        self.previous_error = None

    def step(self, error: float, dt: float) -> float:
        if dt > 0:
            self.integral = clamp(self.integral + error * dt, self.integral_limit)
            prev = self.previous_error if self.previous_error is not None else error
            derivative = (error - prev) / dt
        else:
            derivative = 0.0
        self.previous_error = error
        return self.kp * error + self.ki * self.integral + self.kd * derivative
