"""
Recalculation orchestration.

This module handles:
- RecalcCoordinator: IDLE -> RECALCULATING -> IDLE state machine that
  coalesces requests arriving mid-pass into one follow-up pass
- ProjectScheduler: edit -> rule -> store -> CPM -> rollup over an in-memory store
- recalculate_project: the same pass over a project stored in the database
- recalc_project: ARQ job with a calc_version_id guard against stale work
"""

import asyncio
import time
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from prologic.config import get_settings
from prologic.database import get_session_context
from prologic.exceptions import NotFoundError, StructuralError
from prologic.logging_config import get_logger, project_context
from prologic.models import Project
from prologic.services.calendar import WorkCalendar
from prologic.services.critical_path import calculate
from prologic.services.persistence import load_project_state, save_project_state
from prologic.services.scheduling_logic import EditContext, SchedulingLogicService, TaskEditResult
from prologic.services.task_store import InMemoryTaskStore, StoreChange
from prologic.services.types import CPMResult, ScheduleTask

logger = get_logger(__name__)


# =============================================================================
# Coordinator
# =============================================================================

class RecalcState(str, Enum):
    IDLE = "idle"
    RECALCULATING = "recalculating"


class RecalcCoordinator:
    """
    Guarantees at most one pass at a time.

    A request that arrives while a pass is running (including one fired by
    the pass's own writes) sets a single pending flag instead of recursing.
    When the pass finishes, one follow-up pass runs if the flag is set, no
    matter how many requests were coalesced into it.
    """

    def __init__(self, run_pass: Callable[[], Any]):
        self._run_pass = run_pass
        self.state = RecalcState.IDLE
        self.pending = False
        self.passes = 0
        self.coalesced = 0
        self.last_error: Exception | None = None

    def request(self) -> bool:
        """Ask for a pass. Returns False when it was folded into a pending one."""
        if self.state == RecalcState.RECALCULATING:
            if self.pending:
                self.coalesced += 1
            self.pending = True
            return False

        self.state = RecalcState.RECALCULATING
        try:
            while True:
                self.pending = False
                self._run_pass()
                self.passes += 1
                if not self.pending:
                    break
            self.last_error = None
        except StructuralError as exc:
            self.pending = False
            self.last_error = exc
            logger.error(f"Recalculation aborted: {exc.message}")
            raise
        finally:
            self.state = RecalcState.IDLE
        return True


# =============================================================================
# In-memory orchestrator
# =============================================================================

class ProjectScheduler:
    """
    Thin orchestrator over one task store.

    Edits go through the Scheduling Logic Service; when an edit owes a
    recalculation the coordinator runs a full pass. Structural store
    changes (add, delete, import) request a pass through the store's
    change notifications.
    """

    STRUCTURAL_CHANGES = ("add", "delete", "replace")

    def __init__(
        self,
        tasks: Iterable[ScheduleTask] = (),
        calendar: WorkCalendar | None = None,
        project_start: date | None = None,
        logic: SchedulingLogicService | None = None,
        store: InMemoryTaskStore | None = None,
    ):
        self.store = store if store is not None else InMemoryTaskStore(tasks)
        self.calendar = calendar or WorkCalendar()
        self.project_start = project_start
        self.logic = logic or SchedulingLogicService()
        self.coordinator = RecalcCoordinator(self._run_pass)
        self.last_result: CPMResult | None = None
        self._unsubscribe = self.store.subscribe(self._on_store_change)

    def close(self) -> None:
        self._unsubscribe()

    @property
    def tasks(self) -> list[ScheduleTask]:
        return self.store.snapshot()

    def _on_store_change(self, change: StoreChange) -> None:
        if change.kind in self.STRUCTURAL_CHANGES:
            self.coordinator.request()

    def _run_pass(self) -> None:
        started = time.perf_counter()
        result = calculate(
            self.store.snapshot(),
            self.calendar,
            project_start=self.project_start,
        )
        result.stats.calc_time_ms = (time.perf_counter() - started) * 1000
        self.store.replace_all(result.tasks, notify=False)
        self.last_result = result

    def recalculate(self) -> CPMResult | None:
        self.coordinator.request()
        return self.last_result

    def edit(self, task_id: str, field: str, value: Any) -> TaskEditResult:
        result = self.logic.apply_edit(task_id, field, value, EditContext(self.store, self.calendar))
        if result.success and result.needs_recalc:
            self.coordinator.request()
        return result

    def set_calendar(self, calendar: WorkCalendar) -> None:
        self.calendar = calendar
        self.coordinator.request()

    def add_task(self, task: ScheduleTask) -> ScheduleTask:
        return self.store.add_task(task)

    def delete_task(self, task_id: str) -> list[str]:
        return self.store.delete_task(task_id)

    def import_tasks(self, tasks: Iterable[ScheduleTask]) -> int:
        return self.store.import_tasks(tasks)


# =============================================================================
# Database-backed recalculation
# =============================================================================

_project_locks: dict[uuid.UUID, asyncio.Lock] = {}


def get_project_lock(project_id: uuid.UUID) -> asyncio.Lock:
    """One lock per project: load -> edit -> recalc -> persist never interleaves."""
    lock = _project_locks.get(project_id)
    if lock is None:
        lock = _project_locks[project_id] = asyncio.Lock()
    return lock


async def recalculate_project(session: AsyncSession, project_id: uuid.UUID) -> CPMResult:
    """
    Run a full CPM pass over a stored project and persist the results.

    Structural errors propagate before anything is written.
    """
    with project_context(project_id):
        state = await load_project_state(session, project_id)

        started = time.perf_counter()
        result = calculate(state.tasks, state.calendar, project_start=state.project.start_date)
        result.stats.calc_time_ms = (time.perf_counter() - started) * 1000

        changed = await save_project_state(session, state, result.tasks)

        state.project.last_calc_ms = result.stats.calc_time_ms
        state.project.updated_at = datetime.utcnow()
        session.add(state.project)
        await session.flush()

        logger.info(
            f"Recalculated: {changed} task(s) changed, "
            f"{result.stats.critical_count} critical, {result.stats.calc_time_ms:.1f}ms"
        )
    return result


async def bump_version(session: AsyncSession, project: Project) -> str:
    """Give the project a new calc_version_id; queued jobs for older ids become stale."""
    project.calc_version_id = uuid.uuid4()
    session.add(project)
    await session.flush()
    return str(project.calc_version_id)


async def request_recalc(session: AsyncSession, project_id: uuid.UUID) -> CPMResult | None:
    """
    Recalculate after a mutation, honouring RECALC_MODE.

    inline: run the pass now, inside the caller's transaction.
    worker: bump the version, commit, and enqueue an ARQ job. Returns None.
    """
    if get_settings().recalc_mode == "worker":
        from prologic.worker import enqueue_recalc

        project = await session.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project", str(project_id))
        version_id = await bump_version(session, project)
        # The job must see the new version when it starts
        await session.commit()
        await enqueue_recalc(str(project_id), version_id)
        return None

    return await recalculate_project(session, project_id)


async def recalc_project(ctx: dict, project_id: str, version_id: str) -> str:
    """
    ARQ job: recalculate a whole project.

    Args:
        ctx: ARQ context
        project_id: Project to recalculate
        version_id: The calc_version_id at the time the job was queued

    Returns:
        Status message
    """
    pid = uuid.UUID(project_id)

    async with get_session_context() as session:
        # Guard clause - a newer request supersedes this one
        project = await session.get(Project, pid)
        if project is None:
            return f"Project {project_id} not found - may have been deleted"

        if str(project.calc_version_id) != version_id:
            return f"Stale job: version mismatch (expected {version_id}, got {project.calc_version_id})"

        async with get_project_lock(pid):
            try:
                result = await recalculate_project(session, pid)
            except StructuralError as exc:
                # Raised before any write, so the stored results stay as they were
                with project_context(pid):
                    logger.error(f"Recalc job failed: {exc.message}")
                return f"Error: {exc.message}"

        return f"Updated {result.stats.task_count} tasks"
