"""
Baseline capture and schedule variance.

Variance is measured in working days:
- positive = ahead of baseline (current/actual date earlier)
- negative = behind baseline
"""

from dataclasses import dataclass

from prologic.services.calendar import WorkCalendar, calc_work_days_difference
from prologic.services.types import ScheduleTask


@dataclass
class TaskVariance:
    task_id: str
    name: str
    start_variance: int | None
    finish_variance: int | None


def set_baseline(tasks: list[ScheduleTask]) -> int:
    """Copy current start/end/duration into the baseline fields. Returns tasks baselined."""
    count = 0
    for task in tasks:
        task.baseline_start = task.start
        task.baseline_finish = task.end
        task.baseline_duration = task.duration
        count += 1
    return count


def clear_baseline(tasks: list[ScheduleTask]) -> None:
    for task in tasks:
        task.baseline_start = None
        task.baseline_finish = None
        task.baseline_duration = None


def calculate_variance(task: ScheduleTask, calendar: WorkCalendar) -> TaskVariance:
    """Compare actual (or current) dates with the baseline."""
    start_variance = None
    finish_variance = None

    if task.baseline_start:
        compare_start = task.actual_start or task.start
        if compare_start:
            start_variance = calc_work_days_difference(compare_start, task.baseline_start, calendar)

    if task.baseline_finish:
        compare_finish = task.actual_finish or task.end
        if compare_finish:
            finish_variance = calc_work_days_difference(compare_finish, task.baseline_finish, calendar)

    return TaskVariance(
        task_id=task.id,
        name=task.name,
        start_variance=start_variance,
        finish_variance=finish_variance,
    )
