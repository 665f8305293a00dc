"""
In-memory task store.

Implements the store contract the Scheduling Logic Service edits through
(get_task_by_id, update_task, is_parent) plus the structural operations
the orchestrator needs:
- snapshot(): structural copies for the CPM engine
- replace_all(): swap in a computed snapshot, optionally without notifying
- add/delete/import with change notifications
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from prologic.logging_config import get_logger
from prologic.services.hierarchy import TaskHierarchy
from prologic.services.types import TASK_FIELD_NAMES, ScheduleTask

logger = get_logger(__name__)


@dataclass
class StoreChange:
    """What changed in one store mutation."""
    kind: str  # "update", "add", "delete", "replace"
    task_ids: list[str] = field(default_factory=list)
    fields: list[str] = field(default_factory=list)


Listener = Callable[[StoreChange], None]


class InMemoryTaskStore:
    """Ordered task collection keyed by id."""

    def __init__(self, tasks: Iterable[ScheduleTask] = ()):
        self._tasks: dict[str, ScheduleTask] = {}
        for task in tasks:
            self._tasks[task.id] = task.copy()
        self._listeners: list[Listener] = []
        self._hierarchy: TaskHierarchy | None = None

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    # =========================================================================
    # Change notification
    # =========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: StoreChange) -> None:
        for listener in list(self._listeners):
            listener(change)

    def _changed(self) -> None:
        self._hierarchy = None

    # =========================================================================
    # Queries
    # =========================================================================

    def get_task_by_id(self, task_id: str) -> ScheduleTask | None:
        task = self._tasks.get(task_id)
        return task.copy() if task is not None else None

    def is_parent(self, task_id: str) -> bool:
        return self.hierarchy().is_parent(task_id)

    def hierarchy(self) -> TaskHierarchy:
        if self._hierarchy is None:
            self._hierarchy = TaskHierarchy(self._tasks.values())
        return self._hierarchy

    def snapshot(self) -> list[ScheduleTask]:
        """Structural copies of every task, in store order."""
        return [task.copy() for task in self._tasks.values()]

    def ids(self) -> list[str]:
        return list(self._tasks)

    # =========================================================================
    # Mutations
    # =========================================================================

    def update_task(self, task_id: str, patch: dict[str, Any]) -> ScheduleTask | None:
        """
        Apply a partial patch to one task.

        Keys that are not task attributes are stored in `extra`.
        Returns the updated task (a copy), or None for an unknown id.
        """
        task = self._tasks.get(task_id)
        if task is None:
            return None
        for key, value in patch.items():
            if key == "id":
                continue
            if key in TASK_FIELD_NAMES:
                setattr(task, key, value)
            else:
                task.extra[key] = value
        if "parent_id" in patch:
            self._changed()
        self._notify(StoreChange("update", [task_id], list(patch)))
        return task.copy()

    def add_task(self, task: ScheduleTask, notify: bool = True) -> ScheduleTask:
        if task.id in self._tasks:
            raise ValueError(f"Task {task.id} already exists")
        self._tasks[task.id] = task.copy()
        self._changed()
        if notify:
            self._notify(StoreChange("add", [task.id]))
        return task.copy()

    def delete_task(self, task_id: str) -> list[str]:
        """
        Delete a task and all its descendants.

        Dependency references to the deleted tasks are left in place; the
        CPM engine drops dangling references. Returns the deleted ids.
        """
        if task_id not in self._tasks:
            return []
        doomed = [task_id] + self.hierarchy().descendants(task_id)
        for doomed_id in doomed:
            del self._tasks[doomed_id]
        self._changed()
        logger.debug(f"Deleted {len(doomed)} task(s) starting at {task_id}")
        self._notify(StoreChange("delete", doomed))
        return doomed

    def replace_all(self, tasks: Iterable[ScheduleTask], notify: bool = True) -> None:
        """
        Replace the whole collection with a new snapshot.

        The orchestrator persists computed results with notify=False so the
        write does not request another recalculation.
        """
        self._tasks = {task.id: task.copy() for task in tasks}
        self._changed()
        if notify:
            self._notify(StoreChange("replace", list(self._tasks)))

    def import_tasks(self, tasks: Iterable[ScheduleTask], replace: bool = True) -> int:
        """Bulk load (ids preserved). Returns the number of tasks imported."""
        incoming = [task.copy() for task in tasks]
        if replace:
            self._tasks = {}
        for task in incoming:
            self._tasks[task.id] = task
        self._changed()
        self._notify(StoreChange("replace", [task.id for task in incoming]))
        return len(incoming)
