"""
Scheduling Logic Service: one field edit -> one store patch + follow-up flags.
"""

from datetime import date

import pytest

from prologic.services.calendar import WorkCalendar
from prologic.services.scheduling_logic import EditContext, SchedulingLogicService
from prologic.services.task_store import InMemoryTaskStore
from prologic.services.types import (
    ConstraintType,
    DependencyLink,
    LinkType,
    SchedulingMode,
    ScheduleTask,
)


def jan(day: int) -> date:
    return date(2024, 1, day)


@pytest.fixture
def store():
    return InMemoryTaskStore([
        ScheduleTask(id="P", name="Phase 1"),
        ScheduleTask(id="A", name="Dig", parent_id="P", start=jan(1), end=jan(3), duration=3),
        ScheduleTask(id="B", name="Pour", parent_id="P", start=jan(4), end=jan(8), duration=3,
                     dependencies=[DependencyLink(id="A")]),
        ScheduleTask(id="C", name="Cure", duration=2),
    ])


@pytest.fixture
def edit(store):
    service = SchedulingLogicService()
    context = EditContext(task_store=store, calendar=WorkCalendar())

    def _edit(task_id, field, value):
        return service.apply_edit(task_id, field, value, context)

    return _edit


class TestEditBasics:

    def test_unknown_task(self, edit):
        result = edit("nope", "duration", 3)
        assert not result.success
        assert result.message_type == "error"

    def test_computed_fields_are_read_only(self, edit, store):
        for field in ("totalFloat", "is_critical", "_freeFloat", "lateFinish", "id"):
            result = edit("A", field, 5)
            assert not result.success
            assert "cannot be edited" in result.message
        assert store.get_task_by_id("A").total_float == 0

    def test_snake_case_and_camel_case_are_equivalent(self, edit, store):
        edit("A", "constraintType", "snet")
        assert store.get_task_by_id("A").constraint_type == ConstraintType.SNET
        edit("A", "constraint_type", "fnet")
        assert store.get_task_by_id("A").constraint_type == ConstraintType.FNET

    def test_plain_fields_only_need_render(self, edit, store):
        result = edit("A", "name", "Excavate")
        assert result.success and result.needs_render and not result.needs_recalc
        assert store.get_task_by_id("A").name == "Excavate"

    def test_custom_columns_go_to_extra(self, edit, store):
        result = edit("A", "color", "#ff0000")
        assert result.success and result.needs_render
        assert store.get_task_by_id("A").extra == {"color": "#ff0000"}

    def test_rejected_edit_leaves_store_unchanged(self, edit, store):
        before = store.snapshot()
        edit("A", "start", "01/15/2024")
        edit("P", "scheduling_mode", "Manual")
        edit("A", "dependencies", [{"id": "A"}])
        assert store.snapshot() == before


class TestDuration:

    def test_valid_duration_needs_recalc(self, edit, store):
        result = edit("A", "duration", "5")
        assert result.success and result.needs_recalc
        assert store.get_task_by_id("A").duration == 5

    def test_leading_integer_is_used(self, edit, store):
        edit("A", "duration", " 7d")
        assert store.get_task_by_id("A").duration == 7

    @pytest.mark.parametrize("value", ["abc", "0", "-2", "", None])
    def test_unusable_input_is_accepted_but_not_committed(self, edit, store, value):
        result = edit("A", "duration", value)
        assert result.success
        assert not result.needs_recalc
        assert store.get_task_by_id("A").duration == 3


class TestStartAndEnd:

    def test_start_applies_snet(self, edit, store):
        result = edit("A", "start", "2024-02-01")

        task = store.get_task_by_id("A")
        assert result.success and result.needs_recalc
        assert result.message == "Start constraint applied (SNET)"
        assert task.start == date(2024, 2, 1)
        assert task.constraint_type == ConstraintType.SNET
        assert task.constraint_date == date(2024, 2, 1)

    def test_end_applies_fnlt(self, edit, store):
        result = edit("A", "end", "2024-01-10")

        task = store.get_task_by_id("A")
        assert result.success and result.needs_recalc
        assert task.end == jan(10)
        assert task.constraint_type == ConstraintType.FNLT
        assert task.constraint_date == jan(10)

    def test_invalid_date_is_rejected(self, edit):
        result = edit("A", "start", "2024-1-5")
        assert not result.success
        assert result.message == "Invalid date format"
        assert result.message_type == "warning"

    def test_empty_value_is_rejected(self, edit):
        assert not edit("A", "end", "").success

    def test_parent_dates_are_derived(self, edit):
        assert not edit("P", "start", "2024-01-02").success
        assert not edit("P", "end", "2024-01-02").success


class TestActualStart:

    def test_anchors_with_snet(self, edit, store):
        result = edit("A", "actualStart", "2024-01-02")

        task = store.get_task_by_id("A")
        assert result.success and result.needs_recalc
        assert task.actual_start == jan(2)
        assert task.start == jan(2)
        assert task.constraint_type == ConstraintType.SNET
        assert task.constraint_date == jan(2)

    def test_recomputes_duration_when_finished(self, edit, store):
        store.update_task("A", {"actual_finish": jan(10)})
        edit("A", "actualStart", "2024-01-02")
        assert store.get_task_by_id("A").duration == 7

    def test_weekend_actuals_keep_duration_positive(self, edit, store):
        store.update_task("A", {"actual_finish": jan(7)})
        result = edit("A", "actualStart", "2024-01-06")
        assert result.success
        assert store.get_task_by_id("A").duration == 1

    def test_after_actual_finish_is_rejected(self, edit, store):
        store.update_task("A", {"actual_finish": jan(3)})
        result = edit("A", "actualStart", "2024-01-05")
        assert not result.success
        assert store.get_task_by_id("A").actual_start is None

    def test_clearing_keeps_constraint(self, edit, store):
        edit("A", "actualStart", "2024-01-02")
        result = edit("A", "actualStart", "")

        task = store.get_task_by_id("A")
        assert result.success and result.needs_recalc
        assert result.message == "Actual start cleared. Start constraint preserved."
        assert task.actual_start is None
        assert task.constraint_type == ConstraintType.SNET
        assert task.constraint_date == jan(2)

    def test_parent_is_rejected(self, edit):
        result = edit("P", "actualStart", "2024-01-02")
        assert not result.success
        assert result.message == "Cannot set actual start on parent tasks"


class TestActualFinish:

    def test_completes_task(self, edit, store):
        result = edit("A", "actualFinish", "2024-01-05")

        task = store.get_task_by_id("A")
        assert result.success and result.needs_recalc
        assert task.actual_finish == jan(5)
        assert task.end == jan(5)
        assert task.progress == 100
        assert task.remaining_duration == 0
        assert task.duration == 5
        assert task.actual_start == jan(1)
        assert task.constraint_type == ConstraintType.SNET
        assert task.constraint_date == jan(1)
        assert result.message == "Task complete - took 2 days longer than planned"

    def test_early_finish_message(self, edit):
        result = edit("A", "actualFinish", "2024-01-02")
        assert result.message == "Task complete - finished 1 day early!"
        assert result.message_type == "success"

    def test_on_schedule_message(self, edit):
        result = edit("A", "actualFinish", "2024-01-03")
        assert result.message == "Task complete - on schedule"

    def test_without_start_is_rejected(self, edit, store):
        before = store.get_task_by_id("C")
        result = edit("C", "actualFinish", "2024-01-10")

        assert not result.success
        assert result.message == "Cannot mark finished: Task has no Start Date."
        assert store.get_task_by_id("C") == before

    def test_before_start_is_rejected(self, edit, store):
        result = edit("B", "actualFinish", "2024-01-02")
        assert not result.success
        assert store.get_task_by_id("B").progress == 0

    def test_clearing_reopens_task(self, edit, store):
        edit("A", "actualFinish", "2024-01-03")
        result = edit("A", "actualFinish", None)

        task = store.get_task_by_id("A")
        assert result.message == "Task reopened"
        assert task.actual_finish is None
        assert task.progress == 0
        assert task.remaining_duration == task.duration

    def test_parent_is_rejected(self, edit):
        assert not edit("P", "actualFinish", "2024-01-02").success


class TestConstraints:

    def test_asap_clears_date(self, edit, store):
        store.update_task("A", {"constraint_type": ConstraintType.SNET, "constraint_date": jan(2)})
        result = edit("A", "constraintType", "asap")

        task = store.get_task_by_id("A")
        assert result.success and result.needs_recalc
        assert task.constraint_type == ConstraintType.ASAP
        assert task.constraint_date is None

    def test_other_types_keep_date(self, edit, store):
        store.update_task("A", {"constraint_type": ConstraintType.SNET, "constraint_date": jan(2)})
        edit("A", "constraintType", "MFO")

        task = store.get_task_by_id("A")
        assert task.constraint_type == ConstraintType.MFO
        assert task.constraint_date == jan(2)

    def test_invalid_type_is_rejected(self, edit):
        result = edit("A", "constraintType", "alap")
        assert not result.success
        assert "snet (Start No Earlier Than)" in result.message

    def test_constraint_date(self, edit, store):
        assert edit("A", "constraintDate", "2024-01-09").success
        assert store.get_task_by_id("A").constraint_date == jan(9)

        assert edit("A", "constraintDate", "").success
        assert store.get_task_by_id("A").constraint_date is None

        assert not edit("A", "constraintDate", "next week").success


class TestSchedulingMode:

    def test_auto_to_manual(self, edit, store):
        result = edit("A", "schedulingMode", "Manual")
        assert result.success and result.needs_recalc
        assert store.get_task_by_id("A").scheduling_mode == SchedulingMode.MANUAL

    def test_manual_to_auto_adds_snet(self, edit, store):
        store.update_task("A", {"scheduling_mode": SchedulingMode.MANUAL, "start": jan(9)})
        result = edit("A", "schedulingMode", "Auto")

        task = store.get_task_by_id("A")
        assert result.success and result.needs_recalc
        assert task.scheduling_mode == SchedulingMode.AUTO
        assert task.constraint_type == ConstraintType.SNET
        assert task.constraint_date == jan(9)

    def test_unchanged_mode_is_a_no_op(self, edit):
        result = edit("A", "schedulingMode", "Auto")
        assert result.success
        assert not result.needs_recalc

    def test_parent_cannot_be_manual(self, edit, store):
        result = edit("P", "schedulingMode", "Manual")
        assert not result.success
        assert result.message == "Parent tasks cannot be manually scheduled"
        assert store.get_task_by_id("P").scheduling_mode == SchedulingMode.AUTO

    def test_invalid_mode(self, edit):
        assert not edit("A", "schedulingMode", "manual-ish").success


class TestCosmeticFields:

    @pytest.mark.parametrize("value,expected", [
        ("50", 50),
        (150, 100),
        ("-5", 0),
        ("abc", 0),
        (42.7, 42),
        (None, 0),
    ])
    def test_progress_is_clamped(self, edit, store, value, expected):
        result = edit("A", "progress", value)
        assert result.success and result.needs_render and not result.needs_recalc
        assert store.get_task_by_id("A").progress == expected

    def test_trade_partners(self, edit, store):
        edit("A", "tradePartnerIds", ["tp-1", "tp-2"])
        assert store.get_task_by_id("A").trade_partner_ids == ["tp-1", "tp-2"]

        edit("A", "tradePartnerIds", "tp-1")
        assert store.get_task_by_id("A").trade_partner_ids == []


class TestLinksAndHierarchy:

    def test_valid_dependency_list(self, edit, store):
        result = edit("C", "dependencies", [{"id": "B", "type": "SS", "lag": 2}])
        assert result.success and result.needs_recalc
        assert store.get_task_by_id("C").dependencies == [DependencyLink("B", LinkType.SS, 2)]

    @pytest.mark.parametrize("links", [
        [{"id": "C"}],  # self
        [{"id": "ghost"}],  # missing
        [{"id": "B", "type": "XX"}],  # bad type
        [{"id": "B", "lag": 1.5}],  # fractional lag
    ])
    def test_invalid_dependency_lists(self, edit, store, links):
        assert not edit("C", "dependencies", links).success
        assert store.get_task_by_id("C").dependencies == []

    def test_bad_link_type_lists_the_choices(self, edit):
        result = edit("C", "dependencies", [{"id": "B", "type": "XX"}])
        assert "SF (Start-to-Finish)" in result.message

    def test_cycle_is_rejected(self, edit, store):
        result = edit("A", "dependencies", [{"id": "B"}])
        assert not result.success
        assert "Circular dependency" in result.message

    def test_link_to_parent_is_rejected(self, edit):
        assert not edit("A", "dependencies", [{"id": "P"}]).success

    def test_reparent(self, edit, store):
        result = edit("C", "parentId", "P")
        assert result.success and result.needs_recalc
        assert store.is_parent("P")
        assert store.get_task_by_id("C").parent_id == "P"

    def test_reparent_under_descendant_is_rejected(self, edit, store):
        result = edit("P", "parentId", "A")
        assert not result.success
        assert store.get_task_by_id("P").parent_id is None

    def test_reparent_to_missing_task(self, edit):
        assert not edit("C", "parentId", "ghost").success
