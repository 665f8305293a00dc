"""
Parent (summary) task rollup.

Runs after the CPM passes. Parents are processed deepest first so a
grandparent sees its children's rolled-up dates in the same pass.
"""

from prologic.services.calendar import WorkCalendar, calc_work_days
from prologic.services.hierarchy import TaskHierarchy
from prologic.services.types import SchedulingMode, ScheduleTask


def roll_up(
    tasks: list[ScheduleTask],
    hierarchy: TaskHierarchy,
    calendar: WorkCalendar,
) -> list[str]:
    """
    Aggregate child values into every parent, in place.

    Returns the ids of the parents that were updated. A parent whose
    children carry no dates keeps its previous values.
    """
    by_id = {task.id: task for task in tasks}
    updated = []

    for parent_id in hierarchy.parents_deepest_first():
        parent = by_id.get(parent_id)
        if parent is None:
            continue
        children = [by_id[c] for c in hierarchy.children(parent_id) if c in by_id]
        dated = [c for c in children if c.start is not None and c.end is not None]
        if not dated:
            continue

        parent.start = min(c.start for c in dated)
        parent.end = max(c.end for c in dated)
        parent.duration = max(calc_work_days(parent.start, parent.end, calendar), 1)

        late_starts = [c.late_start for c in dated if c.late_start is not None]
        late_finishes = [c.late_finish for c in dated if c.late_finish is not None]
        parent.late_start = min(late_starts) if late_starts else None
        parent.late_finish = max(late_finishes) if late_finishes else None

        parent.total_float = min(c.total_float for c in dated)
        parent.free_float = 0
        parent.is_critical = any(c.is_critical for c in dated)
        parent.float_conflict = any(c.float_conflict for c in dated)
        parent.scheduling_mode = SchedulingMode.AUTO
        updated.append(parent_id)

    return updated
