"""
CPM engine: forward/backward passes, link types, constraints, float and
structural errors.

All dates are in January 2024 unless noted; 2024-01-01 is a Monday.
"""

from datetime import date

import pytest

from prologic.exceptions import DependencyCycleError, HierarchyCycleError
from prologic.services.calendar import CalendarException, WorkCalendar, calc_work_days
from prologic.services.critical_path import calculate, critical_chains
from prologic.services.types import (
    ConstraintType,
    DependencyLink,
    LinkType,
    SchedulingMode,
    ScheduleTask,
)

CAL = WorkCalendar()


def jan(day: int) -> date:
    return date(2024, 1, day)


def task(task_id, duration=1, start=None, deps=(), **kwargs) -> ScheduleTask:
    links = [d if isinstance(d, DependencyLink) else DependencyLink(id=d) for d in deps]
    return ScheduleTask(id=task_id, name=task_id, duration=duration, start=start, dependencies=links, **kwargs)


def run(*tasks, **kwargs):
    result = calculate(list(tasks), kwargs.pop("calendar", CAL), **kwargs)
    return result, {t.id: t for t in result.tasks}


class TestForwardPass:

    def test_finish_to_start_chain(self):
        """A (3d from Jan 1) -> B (5d): B runs Jan 4 to Jan 10, both critical."""
        _, tasks = run(task("A", 3, jan(1)), task("B", 5, deps=["A"]))

        assert tasks["A"].start == jan(1)
        assert tasks["A"].end == jan(3)
        assert tasks["B"].start == jan(4)
        assert tasks["B"].end == jan(10)
        assert tasks["A"].total_float == 0
        assert tasks["B"].total_float == 0
        assert tasks["A"].is_critical and tasks["B"].is_critical

    def test_chain_crosses_weekend(self):
        _, tasks = run(task("A", 3, jan(4)), task("B", 1, deps=["A"]))

        assert tasks["A"].end == jan(8)
        assert tasks["B"].start == jan(9)

    def test_latest_predecessor_drives(self):
        _, tasks = run(
            task("A", 2, jan(1)),
            task("C", 5, jan(1)),
            task("B", 1, deps=["A", "C"]),
        )
        assert tasks["B"].start == jan(8)

    def test_finish_to_start_with_lag(self):
        link = DependencyLink(id="A", type=LinkType.FS, lag=2)
        _, tasks = run(task("A", 3, jan(1)), task("B", 1, deps=[link]))
        assert tasks["B"].start == jan(8)

    def test_finish_to_start_with_lead(self):
        link = DependencyLink(id="A", type=LinkType.FS, lag=-1)
        _, tasks = run(task("A", 3, jan(1)), task("B", 1, deps=[link]))
        assert tasks["B"].start == jan(3)

    def test_start_to_start(self):
        link = DependencyLink(id="A", type=LinkType.SS, lag=2)
        _, tasks = run(task("A", 5, jan(1)), task("B", 2, deps=[link]))

        assert tasks["B"].start == jan(3)
        assert tasks["B"].end == jan(4)
        assert tasks["A"].total_float == 0

    def test_finish_to_finish(self):
        link = DependencyLink(id="A", type=LinkType.FF)
        _, tasks = run(task("A", 5, jan(1)), task("B", 2, deps=[link]))

        assert tasks["B"].end == jan(5)
        assert tasks["B"].start == jan(4)

    def test_start_to_finish(self):
        link = DependencyLink(id="A", type=LinkType.SF)
        _, tasks = run(task("A", 3, jan(8)), task("B", 2, deps=[link]))

        assert tasks["B"].end == jan(8)
        assert tasks["B"].start == jan(5)

    def test_project_start_anchors_root_tasks(self):
        _, tasks = run(task("A", 2, jan(1)), project_start=jan(8))
        assert tasks["A"].start == jan(8)

    def test_undated_task_falls_back_to_today(self):
        _, tasks = run(task("A", 2), today=jan(6))
        # Saturday is pushed to Monday
        assert tasks["A"].start == jan(8)
        assert tasks["A"].end == jan(9)

    def test_holiday_extends_task(self):
        calendar = WorkCalendar(exceptions={jan(2): CalendarException(jan(2), False, "Holiday")})
        _, tasks = run(task("A", 3, jan(1)), calendar=calendar)
        assert tasks["A"].end == jan(4)


class TestFloat:

    def test_total_and_free_float_on_short_branch(self):
        result, tasks = run(
            task("A", 2, jan(1)),
            task("C", 5, jan(1)),
            task("B", 1, deps=["A", "C"]),
        )
        assert tasks["A"].total_float == 3
        assert tasks["A"].free_float == 3
        assert tasks["A"].late_finish == jan(5)
        assert not tasks["A"].is_critical
        assert result.stats.critical_path_ids == ["C", "B"]

    def test_free_float_can_be_below_total_float(self):
        _, tasks = run(
            task("A", 1, jan(1)),
            task("B", 1, deps=["A"]),
            task("D", 1, deps=["B"]),
            task("E", 5, jan(1)),
        )
        assert tasks["A"].total_float == 2
        assert tasks["A"].free_float == 0
        assert tasks["D"].total_float == 2
        assert tasks["D"].free_float == 2

    def test_task_with_only_start_to_start_successor_can_drive_finish(self):
        """C (20d) ends last even though its only link is C -SS-> D."""
        result, tasks = run(
            task("A", 10, jan(1)),
            task("B", 1, deps=["A"]),
            task("C", 20, jan(1)),
            task("D", 1, deps=[DependencyLink("C", LinkType.SS)]),
            project_start=jan(1),
        )
        assert tasks["C"].end == jan(26)
        assert tasks["C"].total_float == 0
        assert tasks["C"].is_critical
        assert tasks["B"].total_float == 9
        assert not tasks["A"].is_critical
        assert not tasks["D"].is_critical
        assert result.stats.project_end == jan(26)
        assert result.stats.project_latest_finish == jan(26)

    def test_float_invariants_hold_across_mixed_network(self):
        result, _ = run(
            task("A", 3, jan(1)),
            task("B", 2, deps=[DependencyLink("A", LinkType.SS, 1)]),
            task("C", 4, deps=["A"]),
            task("D", 2, deps=[DependencyLink("B", LinkType.FF, 2)]),
            task("E", 1, deps=["C", "D"]),
            task("F", 6, jan(2)),
        )
        for t in result.tasks:
            assert t.total_float >= t.free_float >= 0
            assert t.is_critical == (t.total_float == 0)
            assert calc_work_days(t.start, t.end, CAL) == t.duration
            assert not t.float_conflict


class TestConstraints:

    def test_snet_delays_start(self):
        _, tasks = run(
            task("A", 2, jan(1)),
            task("B", 2, deps=["A"], constraint_type=ConstraintType.SNET, constraint_date=jan(10)),
        )
        assert tasks["B"].start == jan(10)

    def test_snet_on_weekend_moves_to_next_working_day(self):
        _, tasks = run(task("A", 1, jan(1), constraint_type=ConstraintType.SNET, constraint_date=jan(6)))
        assert tasks["A"].start == jan(8)

    def test_snet_earlier_than_logic_has_no_effect(self):
        _, tasks = run(
            task("A", 3, jan(1)),
            task("B", 1, deps=["A"], constraint_type=ConstraintType.SNET, constraint_date=jan(2)),
        )
        assert tasks["B"].start == jan(4)

    def test_fnet_pushes_finish(self):
        _, tasks = run(task("A", 2, jan(1), constraint_type=ConstraintType.FNET, constraint_date=jan(10)))
        assert tasks["A"].end == jan(10)
        assert tasks["A"].start == jan(9)

    def test_mfo_pins_finish(self):
        _, tasks = run(task("A", 3, jan(1), constraint_type=ConstraintType.MFO, constraint_date=jan(12)))
        assert tasks["A"].start == jan(10)
        assert tasks["A"].end == jan(12)
        assert tasks["A"].total_float == 0

    def test_snlt_limits_late_start(self):
        _, tasks = run(
            task("A", 2, jan(1), constraint_type=ConstraintType.SNLT, constraint_date=jan(3)),
            task("C", 10, jan(1)),
        )
        assert tasks["A"].late_finish == jan(4)
        assert tasks["A"].total_float == 2

    def test_fnlt_conflict_gives_negative_float(self):
        """A deadline the logic cannot meet is reported, not silently fixed."""
        result, tasks = run(
            task("A", 5, jan(1)),
            task("B", 3, deps=["A"], constraint_type=ConstraintType.FNLT, constraint_date=jan(5)),
        )
        b = tasks["B"]
        assert b.start == jan(8)
        assert b.total_float == -3
        assert b.float_conflict
        assert b.is_critical
        assert b.free_float == 0
        assert tasks["A"].total_float == -3
        assert set(result.stats.conflict_task_ids) == {"A", "B"}
        assert result.stats.conflict_count == 2

    def test_snlt_conflict(self):
        _, tasks = run(
            task("A", 3, jan(1)),
            task("B", 2, deps=["A"], constraint_type=ConstraintType.SNLT, constraint_date=jan(3)),
        )
        assert tasks["B"].total_float == -1
        assert tasks["B"].float_conflict

    def test_constraint_without_date_is_ignored(self):
        _, tasks = run(task("A", 2, jan(1), constraint_type=ConstraintType.SNET))
        assert tasks["A"].start == jan(1)


class TestManualTasks:

    def test_manual_dates_are_pinned(self):
        _, tasks = run(
            task("A", 3, jan(1)),
            task("M", 2, jan(15), deps=["A"], end=jan(16), scheduling_mode=SchedulingMode.MANUAL),
            task("C", 1, deps=["M"]),
        )
        assert tasks["M"].start == jan(15)
        assert tasks["M"].end == jan(16)
        assert tasks["C"].start == jan(17)

    def test_manual_keeps_stored_duration(self):
        _, tasks = run(task("M", 5, jan(15), end=jan(16), scheduling_mode=SchedulingMode.MANUAL))
        assert tasks["M"].duration == 5
        assert tasks["M"].end == jan(16)

    def test_manual_without_end_gets_derived_end(self):
        _, tasks = run(task("M", 3, jan(15), scheduling_mode=SchedulingMode.MANUAL))
        assert tasks["M"].end == jan(17)

    def test_manual_without_start_is_scheduled(self):
        _, tasks = run(
            task("A", 2, jan(1)),
            task("M", 1, deps=["A"], scheduling_mode=SchedulingMode.MANUAL),
        )
        assert tasks["M"].start == jan(3)


class TestHierarchy:

    def test_parent_rolls_up_children(self):
        result, tasks = run(
            task("P", 1),
            task("A", 3, jan(1), parent_id="P"),
            task("B", 2, deps=["A"], parent_id="P"),
        )
        parent = tasks["P"]
        assert parent.start == jan(1)
        assert parent.end == jan(5)
        assert parent.duration == 5
        assert parent.is_critical
        assert "P" not in result.stats.critical_path_ids

    def test_links_to_parents_are_dropped(self):
        result, tasks = run(
            task("P", 1),
            task("A", 3, jan(1), parent_id="P"),
            task("C", 1, jan(1), deps=["P"]),
        )
        assert result.stats.dropped_dependencies == 1
        assert tasks["C"].start == jan(1)

    def test_hierarchy_cycle_raises(self):
        with pytest.raises(HierarchyCycleError) as exc_info:
            run(task("A", parent_id="B"), task("B", parent_id="A"))
        assert set(exc_info.value.task_ids) == {"A", "B"}


class TestStructuralErrors:

    def test_dependency_cycle_raises_without_touching_input(self):
        a = task("A", 2, jan(1), deps=["B"])
        b = task("B", 2, deps=["A"])

        with pytest.raises(DependencyCycleError) as exc_info:
            calculate([a, b], CAL)

        assert set(exc_info.value.cycle) == {"A", "B"}
        assert b.start is None
        assert a.end is None

    def test_missing_and_self_references_are_dropped(self):
        result, tasks = run(task("A", 2, jan(1), deps=["ghost", "A"]))
        assert result.stats.dropped_dependencies == 2
        assert tasks["A"].start == jan(1)


class TestDeterminism:

    def test_input_is_not_mutated(self):
        original = [task("A", 3, jan(1)), task("B", 2, deps=["A"])]
        before = [t.copy() for t in original]
        calculate(original, CAL)
        assert original == before

    def test_recalculation_is_idempotent(self):
        first, _ = run(
            task("A", 3, jan(1)),
            task("B", 2, deps=[DependencyLink("A", LinkType.SS, 1)]),
            task("C", 4, deps=["B"], constraint_type=ConstraintType.SNET, constraint_date=jan(9)),
            task("D", 2, jan(2)),
        )
        second = calculate(first.tasks, CAL)
        assert second.tasks == first.tasks

    def test_stats(self):
        result, _ = run(task("A", 3, jan(1)), task("B", 5, deps=["A"]), task("C", 1, jan(1)))
        stats = result.stats
        assert stats.task_count == 3
        assert stats.critical_count == 2
        assert stats.project_start == jan(1)
        assert stats.project_end == jan(10)
        assert stats.duration == 8

    def test_parallel_critical_chains(self):
        result, _ = run(
            task("A", 3, jan(1)),
            task("B", 2, deps=["A"]),
            task("C", 2, jan(1)),
            task("D", 3, deps=["C"]),
        )
        assert critical_chains(result) == [["A", "B"], ["C", "D"]]
