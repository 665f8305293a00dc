"""
Scheduling Logic Service - business rules for single-field task edits.

Each edit becomes one atomic patch on the task store, plus a declaration
of the follow-up the caller owes:
- needs_recalc: dates, durations, links or hierarchy changed (full CPM pass)
- needs_render: cosmetic change only (progress, trade partners, text)

Rules:

1. SCHEDULING TRIANGLE
   - duration: keep start, CPM recalculates end
   - start: applies SNET (start no earlier than) at the new date
   - end: applies FNLT (finish no later than) at the new date

2. ANCHORING (actualStart)
   - sets start to the actual date and locks it with SNET
   - recomputes duration when actualFinish is already known
   - clearing it keeps the SNET constraint

3. COMPLETION (actualFinish)
   - progress 100, remaining duration 0, duration from effective start
   - fills in actualStart from the planned start when missing
   - rejected without a start, or before the start

4. SCHEDULING MODE
   - Auto -> Manual: dates are pinned as they are
   - Manual -> Auto: current start becomes an SNET constraint
   - parent tasks cannot be Manual

5. CONSTRAINTS
   - constraintType asap clears constraintDate

The service holds no state. Construct one wherever it is needed and pass
the store and calendar on every call.
"""

import math
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Protocol

from prologic.logging_config import get_logger
from prologic.services.calendar import ISO_DATE_PATTERN, WorkCalendar, calc_work_days
from prologic.services.graph import coerce_links, validate_dependencies
from prologic.services.hierarchy import TaskHierarchy
from prologic.services.types import (
    COMPUTED_FIELDS,
    CONSTRAINT_TYPE_LABELS,
    ConstraintType,
    SchedulingMode,
    ScheduleTask,
    describe_choices,
    is_valid_constraint_type,
)

logger = get_logger(__name__)


class TaskStore(Protocol):
    """What the service needs from a task store."""

    def get_task_by_id(self, task_id: str) -> ScheduleTask | None: ...

    def update_task(self, task_id: str, patch: dict[str, Any]) -> ScheduleTask | None: ...

    def is_parent(self, task_id: str) -> bool: ...

    def snapshot(self) -> list[ScheduleTask]: ...


@dataclass
class EditContext:
    task_store: TaskStore
    calendar: WorkCalendar


@dataclass
class TaskEditResult:
    """Outcome of one edit. message/message_type are advisory, for notifications."""
    success: bool
    needs_recalc: bool = False
    needs_render: bool = False
    message: str | None = None
    message_type: str | None = None  # info, success, warning, error


# Boundary (camelCase) spellings of task attributes
FIELD_ALIASES = {
    "parentId": "parent_id",
    "actualStart": "actual_start",
    "actualFinish": "actual_finish",
    "constraintType": "constraint_type",
    "constraintDate": "constraint_date",
    "schedulingMode": "scheduling_mode",
    "remainingDuration": "remaining_duration",
    "tradePartnerIds": "trade_partner_ids",
    "baselineStart": "baseline_start",
    "baselineFinish": "baseline_finish",
    "baselineDuration": "baseline_duration",
    "isCritical": "is_critical",
    "totalFloat": "total_float",
    "freeFloat": "free_float",
    "lateStart": "late_start",
    "lateFinish": "late_finish",
    "floatConflict": "float_conflict",
    "_isCritical": "is_critical",
    "_totalFloat": "total_float",
    "_freeFloat": "free_float",
}

READ_ONLY_FIELDS = COMPUTED_FIELDS | {"id"}

LEADING_INT_PATTERN = re.compile(r"^\s*([+-]?\d+)")


def normalize_field(field: str) -> str:
    return FIELD_ALIASES.get(field, field)


def _text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _parse_edit_date(value: Any) -> date | None:
    """Strict YYYY-MM-DD; returns None when the value is not a valid date."""
    if isinstance(value, date):
        return value
    text = _text(value).strip()
    if not ISO_DATE_PATTERN.match(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def _plural(n: int) -> str:
    return "" if n == 1 else "s"


def _invalid_date() -> TaskEditResult:
    return TaskEditResult(False, message="Invalid date format", message_type="warning")


class SchedulingLogicService:
    """Translates one field edit into one store patch."""

    def apply_edit(self, task_id: str, field: str, value: Any, context: EditContext) -> TaskEditResult:
        store = context.task_store
        task = store.get_task_by_id(task_id)
        if task is None:
            return TaskEditResult(False, message=f"Task {task_id} not found", message_type="error")

        name = normalize_field(field)
        is_parent = store.is_parent(task_id)
        logger.debug(f"Edit {task_id}.{name} = {value!r}")

        if name in READ_ONLY_FIELDS:
            return TaskEditResult(False, message=f"{field} is calculated and cannot be edited", message_type="warning")

        if name == "duration":
            return self._handle_duration(task, value, store)
        if name == "start":
            return self._handle_start(task, value, is_parent, store)
        if name == "end":
            return self._handle_end(task, value, is_parent, store)
        if name == "actual_start":
            return self._handle_actual_start(task, value, is_parent, store, context.calendar)
        if name == "actual_finish":
            return self._handle_actual_finish(task, value, is_parent, store, context.calendar)
        if name == "constraint_type":
            return self._handle_constraint_type(task, value, store)
        if name == "constraint_date":
            return self._handle_constraint_date(task, value, store)
        if name == "scheduling_mode":
            return self._handle_scheduling_mode(task, value, is_parent, store)
        if name == "progress":
            return self._handle_progress(task, value, store)
        if name == "trade_partner_ids":
            return self._handle_trade_partners(task, value, store)
        if name == "dependencies":
            return self._handle_dependencies(task, value, store)
        if name == "parent_id":
            return self._handle_parent(task, value, store)

        # Simple field update (name, notes, custom columns)
        store.update_task(task.id, {name: value})
        return TaskEditResult(True, needs_render=True)

    # =========================================================================
    # Duration
    # =========================================================================

    def _handle_duration(self, task: ScheduleTask, value: Any, store: TaskStore) -> TaskEditResult:
        # Partial input while typing is accepted but not committed
        match = LEADING_INT_PATTERN.match(_text(value))
        if match and int(match.group(1)) >= 1:
            store.update_task(task.id, {"duration": int(match.group(1))})
            return TaskEditResult(True, needs_recalc=True)
        return TaskEditResult(True)

    # =========================================================================
    # Start / End (scheduling triangle)
    # =========================================================================

    def _handle_start(self, task: ScheduleTask, value: Any, is_parent: bool, store: TaskStore) -> TaskEditResult:
        if not value or is_parent:
            return TaskEditResult(False)
        start = _parse_edit_date(value)
        if start is None:
            return _invalid_date()

        store.update_task(task.id, {
            "start": start,
            "constraint_type": ConstraintType.SNET,
            "constraint_date": start,
        })
        return TaskEditResult(True, needs_recalc=True, message="Start constraint applied (SNET)", message_type="info")

    def _handle_end(self, task: ScheduleTask, value: Any, is_parent: bool, store: TaskStore) -> TaskEditResult:
        if not value or is_parent:
            return TaskEditResult(False)
        end = _parse_edit_date(value)
        if end is None:
            return _invalid_date()

        store.update_task(task.id, {
            "end": end,
            "constraint_type": ConstraintType.FNLT,
            "constraint_date": end,
        })
        return TaskEditResult(True, needs_recalc=True, message="Finish constraint applied (FNLT)", message_type="info")

    # =========================================================================
    # Actual start (anchoring)
    # =========================================================================

    def _handle_actual_start(
        self,
        task: ScheduleTask,
        value: Any,
        is_parent: bool,
        store: TaskStore,
        calendar: WorkCalendar,
    ) -> TaskEditResult:
        if is_parent:
            return TaskEditResult(False, message="Cannot set actual start on parent tasks", message_type="warning")

        if not value:
            # The SNET constraint created when anchoring stays in place
            store.update_task(task.id, {"actual_start": None})
            return TaskEditResult(
                True, needs_recalc=True,
                message="Actual start cleared. Start constraint preserved.", message_type="info",
            )

        actual_start = _parse_edit_date(value)
        if actual_start is None:
            return _invalid_date()
        if task.actual_finish is not None and actual_start > task.actual_finish:
            return TaskEditResult(False, message="Actual start cannot be after actual finish", message_type="warning")

        patch = {
            "actual_start": actual_start,
            "start": actual_start,
            "constraint_type": ConstraintType.SNET,
            "constraint_date": actual_start,
        }
        if task.actual_finish is not None:
            patch["duration"] = max(calc_work_days(actual_start, task.actual_finish, calendar), 1)

        store.update_task(task.id, patch)
        return TaskEditResult(
            True, needs_recalc=True,
            message="Task started - schedule locked with SNET constraint", message_type="info",
        )

    # =========================================================================
    # Actual finish (completion)
    # =========================================================================

    def _handle_actual_finish(
        self,
        task: ScheduleTask,
        value: Any,
        is_parent: bool,
        store: TaskStore,
        calendar: WorkCalendar,
    ) -> TaskEditResult:
        if is_parent:
            return TaskEditResult(False, message="Cannot set actual finish on parent tasks", message_type="warning")

        if not value:
            store.update_task(task.id, {
                "actual_finish": None,
                "progress": 0,
                "remaining_duration": task.duration,
            })
            return TaskEditResult(True, needs_recalc=True, message="Task reopened", message_type="info")

        actual_finish = _parse_edit_date(value)
        if actual_finish is None:
            return _invalid_date()

        effective_start = task.actual_start or task.start
        if effective_start is None:
            return TaskEditResult(
                False, message="Cannot mark finished: Task has no Start Date.", message_type="warning",
            )
        if actual_finish < effective_start:
            return TaskEditResult(False, message="Actual finish cannot be before start date", message_type="warning")

        actual_duration = calc_work_days(effective_start, actual_finish, calendar)
        patch = {
            "actual_finish": actual_finish,
            "end": actual_finish,
            "progress": 100,
            "remaining_duration": 0,
            "duration": max(actual_duration, 1),
        }
        if task.actual_start is None and task.start is not None:
            patch.update({
                "actual_start": task.start,
                "start": task.start,
                "constraint_type": ConstraintType.SNET,
                "constraint_date": task.start,
            })
        store.update_task(task.id, patch)

        variance = actual_duration - (task.duration or 0)
        if variance > 0:
            message = f"Task complete - took {variance} day{_plural(variance)} longer than planned"
            message_type = "info"
        elif variance < 0:
            message = f"Task complete - finished {-variance} day{_plural(-variance)} early!"
            message_type = "success"
        else:
            message = "Task complete - on schedule"
            message_type = "success"
        return TaskEditResult(True, needs_recalc=True, message=message, message_type=message_type)

    # =========================================================================
    # Constraints
    # =========================================================================

    def _handle_constraint_type(self, task: ScheduleTask, value: Any, store: TaskStore) -> TaskEditResult:
        raw = _text(value).strip().lower()
        if not is_valid_constraint_type(raw):
            return TaskEditResult(
                False,
                message=f"Invalid constraint type {value!r}; expected one of {describe_choices(CONSTRAINT_TYPE_LABELS)}",
                message_type="warning",
            )

        constraint_type = ConstraintType(raw)
        if constraint_type == ConstraintType.ASAP:
            store.update_task(task.id, {"constraint_type": constraint_type, "constraint_date": None})
            return TaskEditResult(
                True, needs_recalc=True,
                message="Constraint removed - task will schedule based on dependencies", message_type="info",
            )

        store.update_task(task.id, {"constraint_type": constraint_type})
        return TaskEditResult(True, needs_recalc=True)

    def _handle_constraint_date(self, task: ScheduleTask, value: Any, store: TaskStore) -> TaskEditResult:
        if not value:
            store.update_task(task.id, {"constraint_date": None})
            return TaskEditResult(True, needs_recalc=True)
        constraint_date = _parse_edit_date(value)
        if constraint_date is None:
            return _invalid_date()
        store.update_task(task.id, {"constraint_date": constraint_date})
        return TaskEditResult(True, needs_recalc=True)

    # =========================================================================
    # Scheduling mode
    # =========================================================================

    def _handle_scheduling_mode(
        self,
        task: ScheduleTask,
        value: Any,
        is_parent: bool,
        store: TaskStore,
    ) -> TaskEditResult:
        raw = _text(value)
        if raw not in (SchedulingMode.AUTO.value, SchedulingMode.MANUAL.value):
            return TaskEditResult(False)
        new_mode = SchedulingMode(raw)

        if is_parent and new_mode == SchedulingMode.MANUAL:
            return TaskEditResult(False, message="Parent tasks cannot be manually scheduled", message_type="warning")

        if task.scheduling_mode == new_mode:
            return TaskEditResult(True)

        if new_mode == SchedulingMode.AUTO:
            store.update_task(task.id, {
                "scheduling_mode": SchedulingMode.AUTO,
                "constraint_type": ConstraintType.SNET,
                "constraint_date": task.start,
            })
            return TaskEditResult(
                True, needs_recalc=True,
                message="Task is now auto-scheduled with SNET constraint (remove constraint for ASAP)",
                message_type="info",
            )

        store.update_task(task.id, {"scheduling_mode": SchedulingMode.MANUAL})
        return TaskEditResult(
            True, needs_recalc=True,
            message="Task is now manually scheduled - dates are fixed", message_type="info",
        )

    # =========================================================================
    # Cosmetic fields
    # =========================================================================

    def _handle_progress(self, task: ScheduleTask, value: Any, store: TaskStore) -> TaskEditResult:
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = 0.0
        if math.isnan(number):
            number = 0.0
        progress = int(max(0.0, min(100.0, number)))
        store.update_task(task.id, {"progress": progress})
        return TaskEditResult(True, needs_render=True)

    def _handle_trade_partners(self, task: ScheduleTask, value: Any, store: TaskStore) -> TaskEditResult:
        ids = [str(item) for item in value] if isinstance(value, (list, tuple)) else []
        store.update_task(task.id, {"trade_partner_ids": ids})
        return TaskEditResult(True, needs_render=True)

    # =========================================================================
    # Links and hierarchy
    # =========================================================================

    def _handle_dependencies(self, task: ScheduleTask, value: Any, store: TaskStore) -> TaskEditResult:
        try:
            links = coerce_links(value or [])
        except (TypeError, ValueError) as exc:
            return TaskEditResult(False, message=str(exc), message_type="warning")

        problem = validate_dependencies(task.id, links, store.snapshot())
        if problem:
            return TaskEditResult(False, message=problem, message_type="warning")

        store.update_task(task.id, {"dependencies": links})
        return TaskEditResult(True, needs_recalc=True)

    def _handle_parent(self, task: ScheduleTask, value: Any, store: TaskStore) -> TaskEditResult:
        parent_id = _text(value) if value else None
        if parent_id == task.parent_id:
            return TaskEditResult(True)
        if parent_id is not None and store.get_task_by_id(parent_id) is None:
            return TaskEditResult(False, message=f"Parent {parent_id} does not exist", message_type="warning")

        hierarchy = TaskHierarchy(store.snapshot())
        if hierarchy.would_create_cycle(task.id, parent_id):
            return TaskEditResult(False, message="A task cannot be moved under itself", message_type="warning")

        store.update_task(task.id, {"parent_id": parent_id})
        return TaskEditResult(True, needs_recalc=True)
