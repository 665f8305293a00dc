"""
Mapping between database rows and engine snapshots.

Loads a project's tasks, links and calendar into plain engine types, and
writes an engine snapshot back onto the ORM rows. Dependency rows are
re-synced only for tasks whose link list actually changed.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from prologic.exceptions import NotFoundError
from prologic.models import CalendarException, Dependency, Project, Task
from prologic.services import calendar as cal
from prologic.services.types import (
    ConstraintType,
    DependencyLink,
    LinkType,
    SchedulingMode,
    ScheduleTask,
)

# Task columns mirrored one-to-one on ScheduleTask
PERSISTED_FIELDS = (
    "name",
    "notes",
    "parent_id",
    "start",
    "end",
    "duration",
    "constraint_type",
    "constraint_date",
    "scheduling_mode",
    "actual_start",
    "actual_finish",
    "progress",
    "remaining_duration",
    "baseline_start",
    "baseline_finish",
    "baseline_duration",
    "trade_partner_ids",
    "extra",
    "is_critical",
    "total_float",
    "free_float",
    "late_start",
    "late_finish",
    "float_conflict",
)


@dataclass
class ProjectState:
    """Everything a CPM pass needs for one project."""
    project: Project
    rows: dict[str, Task]
    links: dict[str, list[Dependency]]
    tasks: list[ScheduleTask]
    calendar: cal.WorkCalendar


def to_schedule_task(row: Task, links: list[Dependency]) -> ScheduleTask:
    return ScheduleTask(
        id=row.id,
        name=row.name,
        notes=row.notes or "",
        parent_id=row.parent_id,
        start=row.start,
        end=row.end,
        duration=row.duration,
        dependencies=[
            DependencyLink(id=dep.predecessor_id, type=LinkType(dep.link_type), lag=dep.lag)
            for dep in sorted(links, key=lambda d: d.position)
        ],
        constraint_type=ConstraintType(row.constraint_type),
        constraint_date=row.constraint_date,
        scheduling_mode=SchedulingMode(row.scheduling_mode),
        actual_start=row.actual_start,
        actual_finish=row.actual_finish,
        progress=row.progress,
        remaining_duration=row.remaining_duration,
        baseline_start=row.baseline_start,
        baseline_finish=row.baseline_finish,
        baseline_duration=row.baseline_duration,
        trade_partner_ids=list(row.trade_partner_ids or []),
        extra=dict(row.extra or {}),
        is_critical=row.is_critical,
        total_float=row.total_float,
        free_float=row.free_float,
        late_start=row.late_start,
        late_finish=row.late_finish,
        float_conflict=row.float_conflict,
    )


def write_back(row: Task, task: ScheduleTask) -> bool:
    """Copy engine values onto a row. Returns True if anything changed."""
    changed = False
    for name in PERSISTED_FIELDS:
        value = getattr(task, name)
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, list):
            value = list(value)
        elif isinstance(value, dict):
            value = dict(value)
        if getattr(row, name) != value:
            setattr(row, name, value)
            changed = True
    if changed:
        row.updated_at = datetime.utcnow()
    return changed


def calendar_for(project: Project, exceptions: list[CalendarException]) -> cal.WorkCalendar:
    return cal.WorkCalendar(
        working_days=frozenset(project.working_days or []),
        exceptions={
            e.date: cal.CalendarException(e.date, e.working, e.description)
            for e in exceptions
        },
    )


async def load_calendar(session: AsyncSession, project: Project) -> cal.WorkCalendar:
    result = await session.execute(
        select(CalendarException).where(CalendarException.project_id == project.id)
    )
    return calendar_for(project, list(result.scalars().all()))


async def load_project_state(session: AsyncSession, project_id: uuid.UUID) -> ProjectState:
    project = await session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project", str(project_id))

    tasks_result = await session.execute(
        select(Task)
        .where(Task.project_id == project_id)
        .order_by(Task.sort_order, Task.created_at)
    )
    rows = {row.id: row for row in tasks_result.scalars().all()}

    links: dict[str, list[Dependency]] = {task_id: [] for task_id in rows}
    if rows:
        deps_result = await session.execute(
            select(Dependency).where(Dependency.successor_id.in_(list(rows)))
        )
        for dep in deps_result.scalars().all():
            links[dep.successor_id].append(dep)

    return ProjectState(
        project=project,
        rows=rows,
        links=links,
        tasks=[to_schedule_task(row, links[task_id]) for task_id, row in rows.items()],
        calendar=await load_calendar(session, project),
    )


def _same_links(rows: list[Dependency], links: list[DependencyLink]) -> bool:
    current = [(d.predecessor_id, d.link_type, d.lag) for d in sorted(rows, key=lambda d: d.position)]
    wanted = [(link.id, LinkType(link.type).value, link.lag) for link in links]
    return current == wanted


async def save_project_state(
    session: AsyncSession,
    state: ProjectState,
    tasks: list[ScheduleTask],
) -> int:
    """
    Persist a snapshot over the loaded rows.

    Links to tasks that no longer exist are not written. Returns the
    number of task rows that changed.
    """
    changed = 0
    for task in tasks:
        row = state.rows.get(task.id)
        if row is None:
            continue
        if write_back(row, task):
            session.add(row)
            changed += 1

        existing = state.links.get(task.id, [])
        valid_links = []
        seen = set()
        for link in task.dependencies:
            key = (link.id, LinkType(link.type).value)
            if link.id in state.rows and key not in seen:
                seen.add(key)
                valid_links.append(link)
        if _same_links(existing, valid_links):
            continue
        for dep in existing:
            await session.delete(dep)
        await session.flush()
        fresh = [
            Dependency(
                predecessor_id=link.id,
                successor_id=task.id,
                link_type=LinkType(link.type).value,
                lag=link.lag,
                position=position,
            )
            for position, link in enumerate(valid_links)
        ]
        session.add_all(fresh)
        state.links[task.id] = fresh

    await session.flush()
    return changed
