"""Tests for convoy.control.settings -- controller limits and gains."""

import math

import pytest

from convoy.control.settings import ControllerSettings
from convoy.errors import InvalidConfigurationError


class TestDefaults:
    def test_shipped_defaults(self):
        s = ControllerSettings()
        assert s.max_linear_velocity == 0.8
        assert s.max_angular_velocity == 1.0
        assert s.goal_radius == 0.2
        assert (s.kp, s.ki, s.kd) == (5.0, 0.0, 1.0)
        assert s.heading_threshold == pytest.approx(math.pi / 2)

    def test_defaults_are_valid(self):
        s = ControllerSettings()
        assert s.errors() == []
        assert s.validate() is s


class TestValidation:
    @pytest.mark.parametrize(
        "field", ["max_linear_velocity", "max_angular_velocity", "goal_radius", "kp", "ki", "kd"]
    )
    def test_negative_rejected(self, field):
        s = ControllerSettings(**{field: -0.1})
        assert any(field in msg for msg in s.errors())
        with pytest.raises(InvalidConfigurationError):
            s.validate()

    @pytest.mark.parametrize("value", [math.nan, math.inf])
    def test_non_finite_rejected(self, value):
        with pytest.raises(InvalidConfigurationError, match="finite"):
            ControllerSettings(kp=value).validate()

    def test_non_number_rejected(self):
        errors = ControllerSettings(goal_radius="wide").errors()
        assert errors == ["'goal_radius' must be a number, got 'wide'"]

    def test_bool_is_not_a_number(self):
        assert ControllerSettings(kd=True).errors()

    @pytest.mark.parametrize("field", ["heading_threshold", "integral_limit"])
    def test_zero_threshold_rejected(self, field):
        errors = ControllerSettings(**{field: 0.0}).errors()
        assert errors == [f"'{field}' must be > 0"]

    def test_zero_velocity_limits_allowed(self):
        assert ControllerSettings(max_linear_velocity=0.0, goal_radius=0.0).errors() == []

    def test_all_problems_reported(self):
        errors = ControllerSettings(kp=-1.0, kd=-1.0).errors()
        assert len(errors) == 2


class TestSerialization:
    def test_to_dict(self):
        d = ControllerSettings(kp=2.0).to_dict()
        assert d["kp"] == 2.0
        assert set(d) == {
            "max_linear_velocity",
            "max_angular_velocity",
            "goal_radius",
            "kp",
            "ki",
            "kd",
            "heading_threshold",
            "integral_limit",
        }

    def test_from_dict_ignores_unknown_keys(self):
        s = ControllerSettings.from_dict({"kp": 3.0, "colour": "red"})
        assert s.kp == 3.0

    def test_round_trip(self):
        s = ControllerSettings(max_linear_velocity=0.5, ki=0.1)
        assert ControllerSettings.from_dict(s.to_dict()) == s
