"""
Parent/child queries over a task list.

TaskHierarchy is the small capability object the CPM and rollup
engines need (is_parent, get_depth, children). It is built from a
snapshot and never mutated afterwards.
"""

from typing import Iterable

from prologic.exceptions import HierarchyCycleError
from prologic.services.types import ScheduleTask


class TaskHierarchy:
    """Read-only view of the parent relation of one task snapshot."""

    def __init__(self, tasks: Iterable[ScheduleTask]):
        self._parent: dict[str, str | None] = {}
        self._children: dict[str, list[str]] = {}
        for task in tasks:
            self._parent[task.id] = task.parent_id
            self._children.setdefault(task.id, [])
        for task_id, parent_id in self._parent.items():
            # A parent id that points nowhere makes the task a root
            if parent_id is not None and parent_id in self._parent:
                self._children[parent_id].append(task_id)
        self._depth: dict[str, int] = {}

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._parent

    def parent_of(self, task_id: str) -> str | None:
        parent_id = self._parent.get(task_id)
        return parent_id if parent_id in self._parent else None

    def is_parent(self, task_id: str) -> bool:
        return bool(self._children.get(task_id))

    def children(self, task_id: str) -> list[str]:
        return list(self._children.get(task_id, []))

    def descendants(self, task_id: str) -> list[str]:
        """All descendants, depth-first in child order."""
        result = []
        stack = list(reversed(self._children.get(task_id, [])))
        seen = {task_id}
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            result.append(current)
            stack.extend(reversed(self._children.get(current, [])))
        return result

    def ancestors(self, task_id: str) -> list[str]:
        """Parent chain from nearest to root. Stops if the chain loops."""
        result = []
        seen = {task_id}
        current = self.parent_of(task_id)
        while current is not None and current not in seen:
            result.append(current)
            seen.add(current)
            current = self.parent_of(current)
        return result

    def get_depth(self, task_id: str) -> int:
        """Number of ancestors; roots are depth 0."""
        if task_id not in self._depth:
            self._depth[task_id] = len(self.ancestors(task_id))
        return self._depth[task_id]

    def parents_deepest_first(self) -> list[str]:
        parents = [task_id for task_id in self._parent if self.is_parent(task_id)]
        # sorted() is stable, so equal depths keep snapshot order
        return sorted(parents, key=self.get_depth, reverse=True)

    def find_cycle(self) -> list[str] | None:
        """Return the ids of one parent cycle, or None."""
        state: dict[str, int] = {}  # 1 = on current chain, 2 = done
        for start in self._parent:
            if state.get(start):
                continue
            chain = []
            current = start
            while current is not None and current in self._parent and not state.get(current):
                state[current] = 1
                chain.append(current)
                current = self._parent[current]
            if current is not None and state.get(current) == 1:
                return chain[chain.index(current):]
            for task_id in chain:
                state[task_id] = 2
        return None

    def validate(self) -> None:
        """Raise HierarchyCycleError if the parent relation is not a forest."""
        cycle = self.find_cycle()
        if cycle:
            raise HierarchyCycleError(cycle)

    def would_create_cycle(self, task_id: str, new_parent_id: str | None) -> bool:
        if new_parent_id is None:
            return False
        if new_parent_id == task_id:
            return True
        return task_id in self.ancestors(new_parent_id)
