"""
Constraint resolution for the CPM passes.

| Type | Forward pass                   | Backward pass                 |
|------|--------------------------------|-------------------------------|
| asap | -                              | -                             |
| snet | ES = max(ES, date)             | -                             |
| snlt | -                              | LS = min(LS, date)            |
| fnet | EF = max(EF, date)             | -                             |
| fnlt | -                              | LF = min(LF, date)            |
| mfo  | EF = date                      | LF = min(LF, date)            |

Conflicts are not corrected here. A bound that contradicts the
dependency logic shows up later as negative total float.
"""

from datetime import date

from prologic.services.calendar import WorkCalendar, add_work_days, latest_working_day
from prologic.services.types import ConstraintType, ScheduleTask


def effective_duration(task: ScheduleTask) -> int:
    return max(int(task.duration or 1), 1)


def finish_from_start(start: date, duration: int, calendar: WorkCalendar) -> date:
    return add_work_days(start, duration - 1, calendar)


def start_from_finish(finish: date, duration: int, calendar: WorkCalendar) -> date:
    return add_work_days(finish, -(duration - 1), calendar)


def apply_forward(task: ScheduleTask, start: date, calendar: WorkCalendar) -> date:
    """
    Tighten a dependency-derived earliest start with the task's constraint.

    Returns the constrained earliest start, always a working day.
    """
    start = add_work_days(start, 0, calendar)
    constraint_date = task.constraint_date
    if constraint_date is None:
        return start

    duration = effective_duration(task)
    ctype = task.constraint_type

    if ctype == ConstraintType.SNET:
        return max(start, add_work_days(constraint_date, 0, calendar))

    if ctype == ConstraintType.FNET:
        finish_bound = add_work_days(constraint_date, 0, calendar)
        return max(start, start_from_finish(finish_bound, duration, calendar))

    if ctype == ConstraintType.MFO:
        finish = latest_working_day(constraint_date, calendar)
        return start_from_finish(finish, duration, calendar)

    return start


def apply_backward(task: ScheduleTask, latest_finish: date, calendar: WorkCalendar) -> date:
    """
    Tighten a successor-derived latest finish with the task's constraint.

    "No later than" bounds are moved back to the previous working day.
    """
    constraint_date = task.constraint_date
    if constraint_date is None:
        return latest_finish

    ctype = task.constraint_type

    if ctype == ConstraintType.SNLT:
        latest_start = latest_working_day(constraint_date, calendar)
        bound = finish_from_start(latest_start, effective_duration(task), calendar)
        return min(latest_finish, bound)

    if ctype in (ConstraintType.FNLT, ConstraintType.MFO):
        return min(latest_finish, latest_working_day(constraint_date, calendar))

    return latest_finish
