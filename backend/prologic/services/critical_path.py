"""
Critical Path Method (CPM) implementation.

Calculates, over working days of the project calendar:
- Forward pass: Earliest Start (ES), Earliest Finish (EF)
- Backward pass: Latest Start (LS), Latest Finish (LF)
- Total float: working days between EF and LF (negative = constraint conflict)
- Free float: slack before the earliest successor is pushed
- Critical path: every task with total float <= 0

The engine is pure. It works on copies of the input tasks and returns
new records; a structural error (parent cycle, dependency cycle) is
raised before anything is computed.
"""

from datetime import date

import networkx as nx

from prologic.exceptions import DependencyCycleError
from prologic.logging_config import get_logger
from prologic.services.calendar import (
    WorkCalendar,
    add_work_days,
    calc_work_days,
    calc_work_days_difference,
)
from prologic.services.constraints import (
    apply_backward,
    apply_forward,
    effective_duration,
    finish_from_start,
    start_from_finish,
)
from prologic.services.graph import build_dependency_graph, find_dependency_cycle, topological_order
from prologic.services.hierarchy import TaskHierarchy
from prologic.services.rollup import roll_up
from prologic.services.types import (
    CPMResult,
    CPMStats,
    DependencyLink,
    LinkType,
    ScheduleTask,
)

logger = get_logger(__name__)


def calculate(
    tasks: list[ScheduleTask],
    calendar: WorkCalendar,
    hierarchy: TaskHierarchy | None = None,
    project_start: date | None = None,
    today: date | None = None,
) -> CPMResult:
    """
    Run a full CPM pass over a task snapshot.

    Args:
        tasks: Snapshot of every task, parents included (not mutated)
        calendar: Working-day calendar
        hierarchy: Parent queries; built from the tasks when omitted
        project_start: Anchor for tasks without predecessors. When None,
            each such task stays anchored on its own current start.
        today: Fallback anchor for undated tasks (defaults to date.today())

    Raises:
        HierarchyCycleError: the parent relation loops
        DependencyCycleError: the dependency graph has a directed cycle
    """
    work = [task.copy() for task in tasks]
    if hierarchy is None:
        hierarchy = TaskHierarchy(work)
    hierarchy.validate()

    graph, dropped = build_dependency_graph(work, hierarchy)
    cycle = find_dependency_cycle(graph)
    if cycle:
        logger.error(f"Dependency cycle detected: {' -> '.join(cycle)}")
        raise DependencyCycleError(cycle)

    order = topological_order(graph)
    by_id = {task.id: task for task in work}
    fallback_anchor = today or date.today()

    # =========================================================================
    # Forward Pass: Calculate ES and EF
    # =========================================================================
    es: dict[str, date] = {}
    ef: dict[str, date] = {}
    span: dict[str, int] = {}

    for task_id in order:
        task = by_id[task_id]

        if task.is_manual and task.start is not None:
            # Pinned: dates come from the task, not from the network
            start = task.start
            if task.end is not None and task.end >= start:
                finish = task.end
            else:
                finish = finish_from_start(start, effective_duration(task), calendar)
            es[task_id], ef[task_id] = start, finish
            span[task_id] = max(calc_work_days(start, finish, calendar), 1)
            continue

        duration = effective_duration(task)
        bounds = [
            _forward_bound(link, es[pred_id], ef[pred_id], duration, calendar)
            for pred_id in graph.predecessors(task_id)
            for link in graph.edges[pred_id, task_id]["links"]
        ]
        if bounds:
            start = max(bounds)
        else:
            start = project_start or task.start or fallback_anchor

        start = apply_forward(task, start, calendar)
        es[task_id] = start
        ef[task_id] = finish_from_start(start, duration, calendar)
        span[task_id] = duration

    # Project finish = latest EF over every leaf task; no task may finish later
    project_finish = max(ef.values(), default=None)

    # =========================================================================
    # Backward Pass: Calculate LF and LS
    # =========================================================================
    ls: dict[str, date] = {}
    lf: dict[str, date] = {}

    for task_id in reversed(order):
        task = by_id[task_id]
        duration = span[task_id]

        bounds = [
            _backward_bound(link, ls[succ_id], lf[succ_id], duration, calendar)
            for succ_id in graph.successors(task_id)
            for link in graph.edges[task_id, succ_id]["links"]
        ]
        latest_finish = min(bounds + [project_finish])

        latest_finish = apply_backward(task, latest_finish, calendar)
        lf[task_id] = latest_finish
        ls[task_id] = start_from_finish(latest_finish, duration, calendar)

    # =========================================================================
    # Float, Critical Path and final dates
    # =========================================================================
    critical_ids = []
    conflict_ids = []

    for task_id in order:
        task = by_id[task_id]
        total_float = calc_work_days_difference(ef[task_id], lf[task_id], calendar)

        if total_float < 0:
            free_float = 0
        elif graph.out_degree(task_id) == 0:
            free_float = total_float
        else:
            free_float = min(
                _free_gap(link, es[task_id], ef[task_id], es[succ_id], ef[succ_id], calendar)
                for succ_id in graph.successors(task_id)
                for link in graph.edges[task_id, succ_id]["links"]
            )
            free_float = min(max(free_float, 0), total_float)

        task.total_float = total_float
        task.free_float = free_float
        task.is_critical = total_float <= 0
        task.float_conflict = total_float < 0
        task.late_start = ls[task_id]
        task.late_finish = lf[task_id]

        if task.is_manual and task.start is not None:
            if task.end is None or task.end < task.start:
                task.end = ef[task_id]
        else:
            task.start = es[task_id]
            task.end = ef[task_id]
            task.duration = span[task_id]

        if task.is_critical:
            critical_ids.append(task_id)
        if task.float_conflict:
            conflict_ids.append(task_id)

    if conflict_ids:
        logger.warning(f"Negative float on {len(conflict_ids)} task(s): {', '.join(conflict_ids)}")

    roll_up(work, hierarchy, calendar)

    stats = _build_stats(work, hierarchy, es, ef, lf, critical_ids, conflict_ids, dropped, calendar)
    logger.debug(
        f"CPM pass: {stats.task_count} tasks, {stats.critical_count} critical, "
        f"finish {stats.project_end}, {dropped} dependencies dropped"
    )
    return CPMResult(tasks=work, stats=stats)


def _forward_bound(
    link: DependencyLink,
    pred_start: date,
    pred_finish: date,
    duration: int,
    calendar: WorkCalendar,
) -> date:
    """Earliest start the link allows for the successor."""
    if link.type == LinkType.SS:
        return add_work_days(pred_start, link.lag, calendar)
    if link.type == LinkType.FF:
        finish = add_work_days(pred_finish, link.lag, calendar)
        return start_from_finish(finish, duration, calendar)
    if link.type == LinkType.SF:
        finish = add_work_days(pred_start, link.lag, calendar)
        return start_from_finish(finish, duration, calendar)
    return add_work_days(pred_finish, 1 + link.lag, calendar)


def _backward_bound(
    link: DependencyLink,
    succ_late_start: date,
    succ_late_finish: date,
    duration: int,
    calendar: WorkCalendar,
) -> date:
    """Latest finish the link allows for the predecessor."""
    if link.type == LinkType.SS:
        latest_start = add_work_days(succ_late_start, -link.lag, calendar)
        return finish_from_start(latest_start, duration, calendar)
    if link.type == LinkType.FF:
        return add_work_days(succ_late_finish, -link.lag, calendar)
    if link.type == LinkType.SF:
        latest_start = add_work_days(succ_late_finish, -link.lag, calendar)
        return finish_from_start(latest_start, duration, calendar)
    return add_work_days(succ_late_start, -1 - link.lag, calendar)


def _free_gap(
    link: DependencyLink,
    start: date,
    finish: date,
    succ_start: date,
    succ_finish: date,
    calendar: WorkCalendar,
) -> int:
    """Working days the predecessor can slip before this link moves the successor."""
    if link.type == LinkType.SS:
        allowed = add_work_days(start, link.lag, calendar)
        return calc_work_days_difference(allowed, succ_start, calendar)
    if link.type == LinkType.FF:
        allowed = add_work_days(finish, link.lag, calendar)
        return calc_work_days_difference(allowed, succ_finish, calendar)
    if link.type == LinkType.SF:
        allowed = add_work_days(start, link.lag, calendar)
        return calc_work_days_difference(allowed, succ_finish, calendar)
    allowed = add_work_days(finish, 1 + link.lag, calendar)
    return calc_work_days_difference(allowed, succ_start, calendar)


def _build_stats(
    tasks: list[ScheduleTask],
    hierarchy: TaskHierarchy,
    es: dict[str, date],
    ef: dict[str, date],
    lf: dict[str, date],
    critical_ids: list[str],
    conflict_ids: list[str],
    dropped: int,
    calendar: WorkCalendar,
) -> CPMStats:
    stats = CPMStats(
        task_count=len(tasks),
        critical_count=len(critical_ids),
        critical_path_ids=critical_ids,
        conflict_count=len(conflict_ids),
        conflict_task_ids=conflict_ids,
        dropped_dependencies=dropped,
    )
    if es:
        stats.project_start = min(es.values())
        stats.project_end = max(ef.values())
        stats.project_latest_finish = max(lf.values())
        stats.duration = calc_work_days(stats.project_start, stats.project_end, calendar)
    return stats


def critical_chains(result: CPMResult) -> list[list[str]]:
    """
    Split the critical set into driving chains.

    A chain follows links whose predecessor and successor are both
    critical. Several chains are returned when the network has more
    than one zero-float path.
    """
    tasks = [t for t in result.tasks if t.id in set(result.stats.critical_path_ids)]
    graph, _ = build_dependency_graph(tasks, TaskHierarchy(tasks))
    order = topological_order(graph)
    chains = []
    for component in nx.weakly_connected_components(graph):
        chains.append([task_id for task_id in order if task_id in component])
    chains.sort(key=lambda chain: order.index(chain[0]))
    return chains
