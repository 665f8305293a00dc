"""
Dependency routes for the Pro Logic Scheduler API.

Links are checked in a fixed order before anything is written:
self link, missing task, cross-project, duplicate, parent/child, cycle.
"""

import uuid
from fastapi import APIRouter, Depends, status
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from prologic.database import get_session
from prologic.models import Task, Dependency
from prologic.schemas import DependencyCreate, DependencyUpdate, DependencyRead
from prologic.services.graph import detect_cycle
from prologic.services.hierarchy import TaskHierarchy
from prologic.services.persistence import load_project_state
from prologic.services.recalc import get_project_lock, request_recalc
from prologic.exceptions import (
    NotFoundError,
    CycleDetectedError,
    DuplicateDependencyError,
    SelfDependencyError,
    HierarchyDependencyError,
    CrossProjectDependencyError,
)
from prologic.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def _link_endpoints(session: AsyncSession, pred_id: str, succ_id: str) -> tuple[Task, Task]:
    if pred_id == succ_id:
        raise SelfDependencyError(pred_id)

    predecessor = await session.get(Task, pred_id)
    if predecessor is None:
        raise NotFoundError("Predecessor task", pred_id)
    successor = await session.get(Task, succ_id)
    if successor is None:
        raise NotFoundError("Successor task", succ_id)

    if predecessor.project_id != successor.project_id:
        logger.warning(f"Rejected link across projects {predecessor.project_id} / {successor.project_id}")
        raise CrossProjectDependencyError(str(predecessor.project_id), str(successor.project_id))
    return predecessor, successor


async def _ensure_unique(
    session: AsyncSession,
    pred_id: str,
    succ_id: str,
    link_type: str,
    ignore: uuid.UUID | None = None,
) -> None:
    query = select(Dependency.id).where(
        Dependency.predecessor_id == pred_id,
        Dependency.successor_id == succ_id,
        Dependency.link_type == link_type,
    )
    if ignore is not None:
        query = query.where(Dependency.id != ignore)
    if (await session.execute(query)).first() is not None:
        raise DuplicateDependencyError(pred_id, succ_id)


async def _ensure_schedulable(session: AsyncSession, project_id: uuid.UUID, pred_id: str, succ_id: str) -> None:
    """Reject links inside one branch of the hierarchy and links that close a cycle."""
    state = await load_project_state(session, project_id)
    hierarchy = TaskHierarchy(state.tasks)
    if pred_id in hierarchy.ancestors(succ_id) or pred_id in hierarchy.descendants(succ_id):
        raise HierarchyDependencyError(pred_id, succ_id)

    if await detect_cycle(session, project_id, pred_id, succ_id):
        logger.warning(f"{pred_id} -> {succ_id} would close a cycle")
        raise CycleDetectedError(pred_id, succ_id)


@router.post("/", response_model=DependencyRead, status_code=status.HTTP_201_CREATED)
async def create_dependency(
    dep_in: DependencyCreate,
    session: AsyncSession = Depends(get_session),
) -> Dependency:
    """
    Link two tasks of one project.

    400 for a self link, a parent/child link, a link across projects or
    one that closes a cycle; 404 for an unknown task; 409 when the pair
    is already linked with the same type.
    """
    pred_id, succ_id = dep_in.predecessor_id, dep_in.successor_id
    predecessor, successor = await _link_endpoints(session, pred_id, succ_id)
    project_id = successor.project_id

    async with get_project_lock(project_id):
        await _ensure_unique(session, pred_id, succ_id, dep_in.link_type.value)
        await _ensure_schedulable(session, project_id, pred_id, succ_id)

        count = await session.execute(
            select(func.count()).select_from(Dependency).where(Dependency.successor_id == succ_id)
        )
        dependency = Dependency(
            predecessor_id=pred_id,
            successor_id=succ_id,
            link_type=dep_in.link_type.value,
            lag=dep_in.lag,
            position=count.scalar_one(),
        )
        session.add(dependency)
        await session.flush()
        await session.refresh(dependency)
        logger.info(
            f"Linked {predecessor.name} -{dependency.link_type}({dependency.lag:+d})-> {successor.name}"
        )

        await request_recalc(session, project_id)
        await session.commit()

    return dependency


@router.get("/", response_model=list[DependencyRead])
async def list_dependencies(
    project_id: uuid.UUID | None = None,
    task_id: str | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[Dependency]:
    """
    List dependencies, optionally for one project or for the links
    touching one task (as predecessor or successor).
    """
    query = select(Dependency)
    if project_id:
        query = query.where(
            Dependency.successor_id.in_(select(Task.id).where(Task.project_id == project_id))
        )
    elif task_id:
        query = query.where((Dependency.predecessor_id == task_id) | (Dependency.successor_id == task_id))

    result = await session.execute(query.order_by(Dependency.successor_id, Dependency.position))
    return list(result.scalars().all())


@router.patch("/{dependency_id}", response_model=DependencyRead)
async def update_dependency(
    dependency_id: uuid.UUID,
    dep_in: DependencyUpdate,
    session: AsyncSession = Depends(get_session),
) -> Dependency:
    """Change a link's type or lag and reschedule."""
    dependency = await session.get(Dependency, dependency_id)
    if dependency is None:
        raise NotFoundError("Dependency", str(dependency_id))
    successor = await session.get(Task, dependency.successor_id)

    async with get_project_lock(successor.project_id):
        if dep_in.link_type is not None and dep_in.link_type.value != dependency.link_type:
            await _ensure_unique(
                session,
                dependency.predecessor_id,
                dependency.successor_id,
                dep_in.link_type.value,
                ignore=dependency.id,
            )
            dependency.link_type = dep_in.link_type.value
        if dep_in.lag is not None:
            dependency.lag = dep_in.lag

        session.add(dependency)
        await session.flush()
        await request_recalc(session, successor.project_id)
        await session.commit()
        await session.refresh(dependency)

    return dependency


@router.delete("/{dependency_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_dependency(
    dependency_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> None:
    """Remove a link; the successor may now start earlier."""
    dependency = await session.get(Dependency, dependency_id)
    if dependency is None:
        raise NotFoundError("Dependency", str(dependency_id))
    successor = await session.get(Task, dependency.successor_id)

    logger.info(f"Unlinking {dependency.predecessor_id} -> {dependency.successor_id}")
    async with get_project_lock(successor.project_id):
        await session.delete(dependency)
        await session.flush()
        await request_recalc(session, successor.project_id)
        await session.commit()
