"""Tests for convoy.progress -- the thread-safe fleet progress table."""

import threading

import pytest

from convoy.progress import ProgressTable


def _make_table(*robots):
    table = ProgressTable()
    for name in robots:
        table.register(name)
    return table


class TestRegister:
    def test_register_creates_zero_entry(self):
        table = ProgressTable()
        assert table.register("robot0") is True
        assert table.get("robot0") == 0
        assert "robot0" in table

    def test_register_is_idempotent(self):
        table = _make_table("robot0")
        table.update("robot0", 2)
        assert table.register("robot0") is False
        assert table.get("robot0") == 2

    def test_robots_in_registration_order(self):
        assert _make_table("b", "a", "c").robots() == ["b", "a", "c"]

    def test_get_default_for_unknown(self):
        table = ProgressTable()
        assert table.get("ghost") == 0
        assert table.get("ghost", -1) == -1
        assert "ghost" not in table


class TestUpdate:
    def test_update_returns_true_on_change(self):
        table = _make_table("robot0")
        assert table.update("robot0", 1) is True
        assert table.get("robot0") == 1

    def test_update_same_value_is_noop(self):
        table = _make_table("robot0")
        table.update("robot0", 1)
        assert table.update("robot0", 1) is False

    def test_decrease_rejected(self):
        table = _make_table("robot0")
        table.update("robot0", 3)
        with pytest.raises(ValueError, match="cannot decrease"):
            table.update("robot0", 2)
        assert table.get("robot0") == 3

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            _make_table("robot0").update("robot0", -1)

    def test_update_unregistered_creates_entry(self):
        table = ProgressTable()
        assert table.update("robot9", 0) is True
        assert "robot9" in table

    def test_reset_allows_lower_value(self):
        table = _make_table("robot0")
        table.update("robot0", 4)
        table.reset("robot0")
        assert table.get("robot0") == 0
        assert table.update("robot0", 1) is True


class TestSnapshot:
    def test_snapshot_is_a_copy(self):
        table = _make_table("robot0")
        snap = table.snapshot()
        snap["robot0"] = 99
        assert table.get("robot0") == 0

    def test_snapshot_contents(self):
        table = _make_table("robot0", "robot1")
        table.update("robot1", 2)
        assert table.snapshot() == {"robot0": 0, "robot1": 2}


class TestSubscribers:
    def test_callback_on_change(self):
        table = _make_table("robot0")
        seen = []
        table.subscribe(lambda robot, count: seen.append((robot, count)))
        table.update("robot0", 1)
        table.update("robot0", 1)
        table.update("robot0", 2)
        assert seen == [("robot0", 1), ("robot0", 2)]

    def test_reset_notifies_only_when_changed(self):
        table = _make_table("robot0")
        seen = []
        table.subscribe(lambda robot, count: seen.append(count))
        table.reset("robot0")
        table.update("robot0", 2)
        table.reset("robot0")
        assert seen == [2, 0]

    def test_unsubscribe(self):
        table = _make_table("robot0")
        seen = []
        sub_id = table.subscribe(lambda robot, count: seen.append(count))
        table.unsubscribe(sub_id)
        table.update("robot0", 1)
        assert seen == []

    def test_unsubscribe_unknown_is_silent(self):
        ProgressTable().unsubscribe("nope")

    def test_callback_error_is_swallowed(self):
        table = _make_table("robot0")
        seen = []

        def _boom(robot, count):
            raise RuntimeError("subscriber broke")

        table.subscribe(_boom)
        table.subscribe(lambda robot, count: seen.append(count))
        assert table.update("robot0", 1) is True
        assert seen == [1]

    def test_callback_may_read_table(self):
        table = _make_table("robot0")
        seen = []
        table.subscribe(lambda robot, count: seen.append(table.snapshot()))
        table.update("robot0", 1)
        assert seen == [{"robot0": 1}]


class TestConcurrency:
    def test_parallel_updates_end_at_max(self):
        table = _make_table(*[f"robot{i}" for i in range(4)])

        def _worker(name):
            for count in range(1, 201):
                table.update(name, count)

        threads = [threading.Thread(target=_worker, args=(f"robot{i}",)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert table.snapshot() == {f"robot{i}": 200 for i in range(4)}
