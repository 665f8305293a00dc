"""
Task routes for the Pro Logic Scheduler API.

Field edits go through the Scheduling Logic Service (POST /tasks/{id}/edit)
so every change lands as one consistent patch, followed by a full
recalculation when the rule says one is owed.
"""

import uuid
from datetime import date
from fastapi import APIRouter, Depends, status
from sqlalchemy import delete, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from prologic.database import get_session
from prologic.models import Task, Project, Dependency
from prologic.schemas import TaskCreate, TaskRead, TaskEditRequest, TaskEditResponse
from prologic.exceptions import NotFoundError, ValidationError
from prologic.logging_config import get_logger
from prologic.services.graph import validate_dependencies
from prologic.services.hierarchy import TaskHierarchy
from prologic.services.persistence import load_project_state, save_project_state, write_back
from prologic.services.recalc import get_project_lock, request_recalc
from prologic.services.scheduling_logic import EditContext, SchedulingLogicService
from prologic.services.task_store import InMemoryTaskStore
from prologic.services.types import DependencyLink, ScheduleTask

logger = get_logger(__name__)

router = APIRouter()


async def get_task_or_404(session: AsyncSession, task_id: str) -> Task:
    task = await session.get(Task, task_id)
    if not task:
        raise NotFoundError("Task", task_id)
    return task


async def read_task(session: AsyncSession, task: Task) -> TaskRead:
    await session.refresh(task)
    links = await session.execute(select(Dependency).where(Dependency.successor_id == task.id))
    return TaskRead.from_row(task, list(links.scalars().all()))


@router.post("/", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    session: AsyncSession = Depends(get_session),
) -> TaskRead:
    """
    Create a new task.

    If start is not provided, it defaults to the project start (or today).
    """
    async with get_project_lock(task_in.project_id):
        project = await session.get(Project, task_in.project_id)
        if not project:
            raise NotFoundError("Project", str(task_in.project_id))

        state = await load_project_state(session, project.id)
        task_id = task_in.id or str(uuid.uuid4())
        if await session.get(Task, task_id) is not None:
            raise ValidationError(f"Task id {task_id} already exists")
        if task_in.parent_id is not None and task_in.parent_id not in state.rows:
            raise NotFoundError("Parent task", task_in.parent_id)

        new_task = ScheduleTask(
            id=task_id,
            **task_in.model_dump(exclude={"id", "project_id", "dependencies"}),
            dependencies=[DependencyLink(id=d.id, type=d.type, lag=d.lag) for d in task_in.dependencies],
        )
        if new_task.start is None:
            new_task.start = project.start_date or date.today()

        problem = validate_dependencies(task_id, new_task.dependencies, state.tasks + [new_task])
        if problem:
            raise ValidationError(problem, details=[{"loc": ["body", "dependencies"], "msg": problem, "type": "dependency_error"}])

        task = Task(
            id=task_id,
            project_id=project.id,
            sort_order=max((row.sort_order for row in state.rows.values()), default=0) + 1,
        )
        write_back(task, new_task)
        session.add(task)
        await session.flush()

        state.rows[task_id] = task
        state.links[task_id] = []
        await save_project_state(session, state, [new_task])

        logger.info(f"Created task: id={task.id} name='{task.name}' project={task.project_id}")

        await request_recalc(session, project.id)
        await session.commit()
        return await read_task(session, task)


@router.get("/", response_model=list[TaskRead])
async def list_tasks(
    project_id: uuid.UUID | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[TaskRead]:
    """
    List tasks.

    Optionally filter by project_id.
    """
    query = select(Task).order_by(Task.sort_order, Task.created_at)
    if project_id:
        query = query.where(Task.project_id == project_id)

    result = await session.execute(query)
    tasks = list(result.scalars().all())

    links: dict[str, list[Dependency]] = {task.id: [] for task in tasks}
    if tasks:
        deps = await session.execute(select(Dependency).where(Dependency.successor_id.in_(list(links))))
        for dep in deps.scalars().all():
            links[dep.successor_id].append(dep)

    logger.debug(f"Listed {len(tasks)} tasks" + (f" for project={project_id}" if project_id else ""))

    return [TaskRead.from_row(task, links[task.id]) for task in tasks]


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: str,
    session: AsyncSession = Depends(get_session),
) -> TaskRead:
    """Get a task by ID."""
    task = await get_task_or_404(session, task_id)
    return await read_task(session, task)


@router.post("/{task_id}/edit", response_model=TaskEditResponse)
async def edit_task(
    task_id: str,
    edit_in: TaskEditRequest,
    session: AsyncSession = Depends(get_session),
) -> TaskEditResponse:
    """
    Apply one field edit with full scheduling semantics.

    A rejected edit returns success=false and leaves the task unchanged.
    A successful one is persisted; when it affects dates, links or the
    hierarchy the project is recalculated before responding.
    """
    task = await get_task_or_404(session, task_id)
    project_id = task.project_id

    async with get_project_lock(project_id):
        state = await load_project_state(session, project_id)
        store = InMemoryTaskStore(state.tasks)
        logic = SchedulingLogicService()

        result = logic.apply_edit(task_id, edit_in.field, edit_in.value, EditContext(store, state.calendar))
        logger.info(
            f"Edit {task_id[:8]}.{edit_in.field}: success={result.success} "
            f"recalc={result.needs_recalc}" + (f" ({result.message})" if result.message else "")
        )

        if result.success:
            await save_project_state(session, state, store.snapshot())
            if result.needs_recalc:
                await request_recalc(session, project_id)
            await session.commit()

        return TaskEditResponse(
            success=result.success,
            needs_recalc=result.needs_recalc,
            needs_render=result.needs_render,
            message=result.message,
            message_type=result.message_type,
            task=await read_task(session, task),
        )


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: str,
    session: AsyncSession = Depends(get_session),
) -> None:
    """
    Delete a task and all of its descendants.

    Links to or from the deleted tasks are removed and the project is
    recalculated (successors may now start earlier).
    """
    task = await get_task_or_404(session, task_id)
    project_id = task.project_id

    async with get_project_lock(project_id):
        state = await load_project_state(session, project_id)
        doomed = [task_id] + TaskHierarchy(state.tasks).descendants(task_id)

        logger.info(f"Deleting task {task_id}: '{task.name}' ({len(doomed) - 1} descendants)")

        await session.execute(
            delete(Dependency).where(
                or_(Dependency.predecessor_id.in_(doomed), Dependency.successor_id.in_(doomed))
            )
        )
        await session.execute(delete(Task).where(Task.id.in_(doomed)))
        await session.flush()

        await request_recalc(session, project_id)
        await session.commit()
