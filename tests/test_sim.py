"""Tests for convoy.sim -- closed-loop fleet simulation."""

import math

import pytest

from convoy.control.segment import Pose, VelocityCommand
from convoy.control.settings import ControllerSettings
from convoy.fleet.coordinator import FleetCoordinator
from convoy.sim import FleetSimulator, crossing_scenario, crossing_simulator, integrate


class TestIntegrate:
    def test_straight_line(self):
        pose = integrate(Pose(0.0, 0.0, 0.0), VelocityCommand(1.0, 0.0), 0.5)
        assert pose.x == pytest.approx(0.5)
        assert pose.y == pytest.approx(0.0)

    def test_turn_in_place(self):
        pose = integrate(Pose(1.0, 1.0, 0.0), VelocityCommand(0.0, 1.0), 0.5)
        assert (pose.x, pose.y) == (1.0, 1.0)
        assert pose.theta == pytest.approx(0.5)

    def test_heading_wraps(self):
        pose = integrate(Pose(0.0, 0.0, 3.1), VelocityCommand(0.0, 1.0), 0.2)
        assert -math.pi <= pose.theta <= math.pi


class TestFleetSimulator:
    def test_rejects_non_positive_dt(self):
        with pytest.raises(ValueError):
            FleetSimulator(FleetCoordinator(robot_names=["robot0"]), dt=0.0)

    def test_step_advances_time(self):
        sim = FleetSimulator(FleetCoordinator(robot_names=["robot0"]), dt=0.1)
        sim.step()
        sim.step()
        assert sim.ticks == 2
        assert sim.time == pytest.approx(0.2)

    def test_idle_robot_does_not_move(self):
        sim = FleetSimulator(
            FleetCoordinator(robot_names=["robot0"]),
            start_poses={"robot0": Pose(1.0, 2.0, 0.3)},
        )
        for _ in range(10):
            sim.step()
        pose = sim.robots["robot0"].pose
        assert (pose.x, pose.y) == (1.0, 2.0)
        assert pose.theta == pytest.approx(0.3)

    def test_run_until_complete_respects_max_steps(self):
        coordinator = FleetCoordinator(robot_names=["robot0"])
        coordinator.on_path_assignment("robot0", [{"x": 100.0, "y": 0.0}])
        sim = FleetSimulator(coordinator)
        assert sim.run_until_complete(max_steps=25) == 25
        assert coordinator.all_complete() is False

    def test_set_pose_teleports_onto_goal(self):
        coordinator = FleetCoordinator(robot_names=["robot0"])
        coordinator.on_path_assignment("robot0", [{"x": 100.0, "y": 0.0}])
        sim = FleetSimulator(coordinator)
        sim.step()
        assert coordinator.progress()["robot0"] == 0

        sim.set_pose("robot0", Pose(100.0, 0.0, 0.0))
        sim.step()
        assert coordinator.progress()["robot0"] == 1
        assert sim.first_tick("robot0", 1) == 1
        assert coordinator.all_complete() is True

    def test_close_unsubscribes(self):
        coordinator = FleetCoordinator(robot_names=["robot0"])
        sim = FleetSimulator(coordinator)
        sim.close()
        coordinator.on_path_assignment("robot0", [{"x": 0.0, "y": 0.0}])
        coordinator.on_pose_sample("robot0", Pose(0.0, 0.0, 0.0), 0.0)
        assert sim.events == []


class TestCrossingScenario:
    def test_scenario_shape(self):
        paths, starts = crossing_scenario()
        assert set(paths) == {"robot0", "robot1"}
        assert paths["robot1"].peers() == {"robot0"}
        assert set(starts) == set(paths)

    def test_fleet_completes(self):
        sim = crossing_simulator()
        ticks = sim.run_until_complete(max_steps=2000)
        assert ticks < 2000
        assert sim.coordinator.progress() == {"robot0": 3, "robot1": 3}

    def test_robot1_waits_for_robot0_to_clear_crossing(self):
        sim = crossing_simulator()
        sim.run_until_complete(max_steps=2000)
        robot0_cleared = sim.first_tick("robot0", 2)
        robot1_crossed = sim.first_tick("robot1", 2)
        assert robot0_cleared is not None
        assert robot1_crossed is not None
        assert robot1_crossed > robot0_cleared

    def test_robot1_holds_below_crossing(self):
        sim = crossing_simulator()
        while sim.first_tick("robot0", 2) is None:
            sim.step()
            if sim.coordinator.progress()["robot1"] == 1:
                assert sim.robots["robot1"].pose.y < 0.0

    def test_progress_events_are_monotone(self):
        sim = crossing_simulator()
        sim.run_until_complete(max_steps=2000)
        for robot in ("robot0", "robot1"):
            counts = [ev.step_count for ev in sim.events if ev.robot_id == robot]
            assert counts == [1, 2, 3]

    def test_slower_limits_still_complete(self):
        sim = crossing_simulator(ControllerSettings(max_linear_velocity=0.4), dt=0.1)
        sim.run_until_complete(max_steps=3000)
        assert sim.coordinator.all_complete() is True
