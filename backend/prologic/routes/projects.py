"""
Project routes for the Pro Logic Scheduler API.

Besides CRUD, a project exposes its computed schedule, critical path,
working calendar, baseline and variance.
"""

import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, status
from sqlalchemy import delete, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from prologic.database import get_session
from prologic.models import CalendarException, Dependency, Project, Task
from prologic.schemas import (
    BaselineRead,
    CalendarExceptionSchema,
    CalendarSchema,
    CriticalPathRead,
    ProjectCreate,
    ProjectRead,
    ProjectUpdate,
    ScheduleRead,
    ScheduleStats,
    TaskImportRequest,
    TaskImportResult,
    TaskRead,
    TaskVarianceRead,
)
from prologic.exceptions import NotFoundError, ValidationError
from prologic.logging_config import get_logger
from prologic.services import calendar as cal
from prologic.services.baseline import calculate_variance, clear_baseline, set_baseline
from prologic.services.critical_path import calculate, critical_chains
from prologic.services.persistence import ProjectState, load_project_state, save_project_state, write_back
from prologic.services.recalc import get_project_lock, request_recalc
from prologic.services.types import CPMResult, DependencyLink, ScheduleTask

logger = get_logger(__name__)

router = APIRouter()


async def get_project_or_404(session: AsyncSession, project_id: uuid.UUID) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project", str(project_id))
    return project


def schedule_read(state: ProjectState, result: CPMResult | None) -> ScheduleRead:
    return ScheduleRead(
        project_id=state.project.id,
        tasks=[TaskRead.from_row(row, state.links.get(task_id, [])) for task_id, row in state.rows.items()],
        stats=ScheduleStats.model_validate(result.stats) if result else None,
    )


def dry_run(state: ProjectState) -> CPMResult:
    """Run CPM without persisting anything."""
    return calculate(state.tasks, state.calendar, project_start=state.project.start_date)


# =============================================================================
# CRUD
# =============================================================================

@router.post("/", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_in: ProjectCreate,
    session: AsyncSession = Depends(get_session),
) -> Project:
    """Create a new project."""
    project = Project(**project_in.model_dump())
    session.add(project)
    await session.flush()
    await session.refresh(project)

    logger.info(f"Created project: id={project.id} name='{project.name}'")

    return project


@router.get("/", response_model=list[ProjectRead])
async def list_projects(
    session: AsyncSession = Depends(get_session),
) -> list[Project]:
    """List all projects."""
    result = await session.execute(select(Project).order_by(Project.created_at))
    projects = list(result.scalars().all())

    logger.debug(f"Listed {len(projects)} projects")

    return projects


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> Project:
    """Get a project by ID."""
    return await get_project_or_404(session, project_id)


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: uuid.UUID,
    project_in: ProjectUpdate,
    session: AsyncSession = Depends(get_session),
) -> Project:
    """
    Update a project.

    Changing start_date moves every task without predecessors, so it
    triggers a recalculation.
    """
    async with get_project_lock(project_id):
        project = await get_project_or_404(session, project_id)
        update_data = project_in.model_dump(exclude_unset=True)

        logger.info(f"Updating project {project_id}: {update_data}")

        for field, value in update_data.items():
            setattr(project, field, value)
        project.updated_at = datetime.utcnow()
        await session.flush()

        if "start_date" in update_data:
            await request_recalc(session, project_id)

        await session.commit()
        await session.refresh(project)
        return project


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> None:
    """Delete a project with its tasks, links and calendar exceptions."""
    project = await get_project_or_404(session, project_id)

    logger.info(f"Deleting project {project_id}: '{project.name}'")

    task_ids = select(Task.id).where(Task.project_id == project_id)
    await session.execute(
        delete(Dependency).where(
            or_(Dependency.predecessor_id.in_(task_ids), Dependency.successor_id.in_(task_ids))
        )
    )
    await session.execute(delete(Task).where(Task.project_id == project_id))
    await session.execute(delete(CalendarException).where(CalendarException.project_id == project_id))
    await session.delete(project)


# =============================================================================
# Schedule
# =============================================================================

@router.get("/{project_id}/schedule", response_model=ScheduleRead)
async def get_schedule(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> ScheduleRead:
    """Stored tasks plus the stats of a fresh (not persisted) CPM pass."""
    state = await load_project_state(session, project_id)
    return schedule_read(state, dry_run(state))


@router.post("/{project_id}/recalculate", response_model=ScheduleRead)
async def recalculate(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> ScheduleRead:
    """
    Run a full recalculation now.

    In worker mode the pass is queued and stats are null in the response.
    """
    async with get_project_lock(project_id):
        await get_project_or_404(session, project_id)
        result = await request_recalc(session, project_id)
        await session.commit()
        state = await load_project_state(session, project_id)
        return schedule_read(state, result)


@router.get("/{project_id}/critical-path", response_model=CriticalPathRead)
async def get_critical_path(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> CriticalPathRead:
    """Every zero-float task, plus the chains they form."""
    state = await load_project_state(session, project_id)
    result = dry_run(state)
    return CriticalPathRead(
        project_id=project_id,
        task_ids=result.stats.critical_path_ids,
        chains=critical_chains(result),
        project_end=result.stats.project_end,
    )


# =============================================================================
# Calendar
# =============================================================================

@router.get("/{project_id}/calendar", response_model=CalendarSchema)
async def get_calendar(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> CalendarSchema:
    project = await get_project_or_404(session, project_id)
    result = await session.execute(
        select(CalendarException)
        .where(CalendarException.project_id == project_id)
        .order_by(CalendarException.date)
    )
    return CalendarSchema(
        working_days=project.working_days,
        exceptions=[CalendarExceptionSchema.model_validate(e) for e in result.scalars().all()],
    )


@router.put("/{project_id}/calendar", response_model=CalendarSchema)
async def update_calendar(
    project_id: uuid.UUID,
    calendar_in: CalendarSchema,
    session: AsyncSession = Depends(get_session),
) -> CalendarSchema:
    """Replace the working pattern and exceptions, then recalculate."""
    # Raises InvalidCalendarError without a working weekday
    cal.WorkCalendar(
        working_days=frozenset(calendar_in.working_days),
        exceptions={e.date: cal.CalendarException(e.date, e.working, e.description) for e in calendar_in.exceptions},
    )

    dates = [e.date for e in calendar_in.exceptions]
    if len(dates) != len(set(dates)):
        raise ValidationError("Calendar exceptions must have distinct dates")

    async with get_project_lock(project_id):
        project = await get_project_or_404(session, project_id)
        project.working_days = list(calendar_in.working_days)
        project.updated_at = datetime.utcnow()
        session.add(project)

        await session.execute(delete(CalendarException).where(CalendarException.project_id == project_id))
        session.add_all([
            CalendarException(project_id=project_id, date=e.date, working=e.working, description=e.description)
            for e in calendar_in.exceptions
        ])
        await session.flush()

        logger.info(
            f"Calendar for {project_id}: working_days={project.working_days} "
            f"exceptions={len(calendar_in.exceptions)}"
        )

        await request_recalc(session, project_id)
        await session.commit()

    return calendar_in


# =============================================================================
# Baseline and variance
# =============================================================================

@router.post("/{project_id}/baseline", response_model=BaselineRead)
async def create_baseline(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> BaselineRead:
    """Capture current start/finish/duration of every task as the baseline."""
    async with get_project_lock(project_id):
        state = await load_project_state(session, project_id)
        count = set_baseline(state.tasks)
        await save_project_state(session, state, state.tasks)
        await session.commit()

    logger.info(f"Baseline set for project {project_id}: {count} tasks")
    return BaselineRead(project_id=project_id, task_count=count)


@router.delete("/{project_id}/baseline", status_code=status.HTTP_204_NO_CONTENT)
async def delete_baseline(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> None:
    async with get_project_lock(project_id):
        state = await load_project_state(session, project_id)
        clear_baseline(state.tasks)
        await save_project_state(session, state, state.tasks)
        await session.commit()


@router.get("/{project_id}/variance", response_model=list[TaskVarianceRead])
async def get_variance(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> list[TaskVarianceRead]:
    """Start/finish variance against the baseline, in work days (positive = ahead)."""
    state = await load_project_state(session, project_id)
    return [
        TaskVarianceRead.model_validate(calculate_variance(task, state.calendar))
        for task in state.tasks
    ]


# =============================================================================
# Bulk import
# =============================================================================

@router.post("/{project_id}/tasks/import", response_model=TaskImportResult)
async def import_tasks(
    project_id: uuid.UUID,
    import_in: TaskImportRequest,
    session: AsyncSession = Depends(get_session),
) -> TaskImportResult:
    """
    Load an array of tasks, keeping their ids.

    Links to ids that are not part of the project after the import are
    dropped. A parent or dependency cycle rejects the whole import.
    """
    incoming = [
        ScheduleTask(
            id=item.id or str(uuid.uuid4()),
            **item.model_dump(exclude={"id", "dependencies"}),
            dependencies=[DependencyLink(id=d.id, type=d.type, lag=d.lag) for d in item.dependencies],
        )
        for item in import_in.tasks
    ]
    ids = [task.id for task in incoming]
    if len(ids) != len(set(ids)):
        raise ValidationError("Imported task ids must be unique")

    async with get_project_lock(project_id):
        await get_project_or_404(session, project_id)

        if import_in.replace:
            existing = select(Task.id).where(Task.project_id == project_id)
            await session.execute(
                delete(Dependency).where(
                    or_(Dependency.predecessor_id.in_(existing), Dependency.successor_id.in_(existing))
                )
            )
            await session.execute(delete(Task).where(Task.project_id == project_id))
            await session.flush()

        clash = await session.execute(select(Task.id).where(Task.id.in_(ids)))
        taken = list(clash.scalars().all())
        if taken:
            raise ValidationError(f"Task ids already in use: {', '.join(taken[:5])}")

        max_order = await _max_sort_order(session, project_id)
        for position, task in enumerate(incoming, start=1):
            row = Task(id=task.id, project_id=project_id, sort_order=max_order + position)
            write_back(row, task)
            session.add(row)
        await session.flush()

        state = await load_project_state(session, project_id)
        await save_project_state(session, state, incoming)

        known = set(state.rows)
        dropped = sum(1 for task in incoming for link in task.dependencies if link.id not in known)

        await request_recalc(session, project_id)
        await session.commit()

    logger.info(f"Imported {len(incoming)} tasks into project {project_id} ({dropped} links dropped)")
    return TaskImportResult(imported=len(incoming), dropped_dependencies=dropped)


async def _max_sort_order(session: AsyncSession, project_id: uuid.UUID) -> int:
    result = await session.execute(select(Task.sort_order).where(Task.project_id == project_id))
    return max(result.scalars().all(), default=0)
