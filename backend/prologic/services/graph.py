"""
Dependency graph operations using NetworkX.

This module handles:
- Building the scheduling graph over non-parent tasks
- Cycle detection (whole network, or for a proposed new edge)
- Deterministic topological ordering
- Validation of dependency lists supplied by edits and imports
"""

import uuid
from typing import Iterable

import networkx as nx
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from prologic.logging_config import get_logger
from prologic.models import Task, Dependency
from prologic.services.hierarchy import TaskHierarchy
from prologic.services.types import (
    LINK_TYPE_LABELS,
    DependencyLink,
    LinkType,
    ScheduleTask,
    describe_choices,
    is_valid_link_type,
)

logger = get_logger(__name__)


# =============================================================================
# Engine graph (pure, over a task snapshot)
# =============================================================================

def build_dependency_graph(
    tasks: list[ScheduleTask],
    hierarchy: TaskHierarchy,
) -> tuple[nx.DiGraph, int]:
    """
    Build a DiGraph from the dependency lists of schedulable tasks.

    Returns (graph, dropped) where:
    - Nodes are non-parent task ids, added in snapshot order
    - Edges go predecessor -> successor; the edge attribute "links" holds
      every DependencyLink between that pair
    - dropped counts references that were ignored (missing id, self link,
      link to or from a parent task)
    """
    graph = nx.DiGraph()
    for task in tasks:
        if not hierarchy.is_parent(task.id):
            graph.add_node(task.id)

    dropped = 0
    for task in tasks:
        if task.id not in graph:
            if task.dependencies:
                dropped += len(task.dependencies)
                logger.debug(f"Dropping {len(task.dependencies)} dependencies on parent task {task.id}")
            continue
        for link in task.dependencies:
            if link.id == task.id or link.id not in graph:
                dropped += 1
                logger.debug(f"Dropping dependency {link.id} -> {task.id}")
                continue
            if graph.has_edge(link.id, task.id):
                graph.edges[link.id, task.id]["links"].append(link)
            else:
                graph.add_edge(link.id, task.id, links=[link])

    return graph, dropped


def find_dependency_cycle(graph: nx.DiGraph) -> list[str] | None:
    """Return the task ids of one directed cycle, or None."""
    try:
        edges = nx.find_cycle(graph)
    except nx.NetworkXNoCycle:
        return None
    return [u for u, _ in edges]


def topological_order(graph: nx.DiGraph) -> list[str]:
    """
    Topological sort with snapshot order as the tie-breaker.

    For every edge (u, v), u comes before v. Among tasks that are free to
    go next, the one that appears first in the snapshot wins, so the same
    input always produces the same order.
    """
    position = {node: index for index, node in enumerate(graph.nodes)}
    return list(nx.lexicographical_topological_sort(graph, key=position.__getitem__))


# =============================================================================
# Dependency validation
# =============================================================================

def coerce_links(raw: Iterable) -> list[DependencyLink]:
    """
    Turn boundary dependency dicts into DependencyLink objects.

    Accepts {"id", "type", "lag"} dicts, DependencyLink instances, or bare ids.
    Raises ValueError on an invalid link type or a non-integer lag.
    """
    links = []
    for item in raw:
        if isinstance(item, DependencyLink):
            links.append(item.copy())
            continue
        if isinstance(item, str):
            links.append(DependencyLink(id=item))
            continue
        if not isinstance(item, dict) or not item.get("id"):
            raise ValueError("Each dependency needs a predecessor id")
        link_type = item.get("type") or LinkType.FS.value
        if not is_valid_link_type(link_type):
            raise ValueError(f"Invalid link type {link_type!r}; expected one of {describe_choices(LINK_TYPE_LABELS)}")
        lag = item.get("lag", 0) or 0
        if isinstance(lag, bool) or not isinstance(lag, (int, float)) or int(lag) != lag:
            raise ValueError(f"Lag must be a whole number of work days: {lag!r}")
        links.append(DependencyLink(id=str(item["id"]), type=LinkType(link_type), lag=int(lag)))
    return links


def validate_dependencies(
    task_id: str,
    links: list[DependencyLink],
    tasks: list[ScheduleTask],
) -> str | None:
    """
    Check a proposed dependency list for one task.

    Returns a human-readable reason when the list is invalid:
    - missing predecessor
    - self dependency
    - link to an ancestor or descendant
    - the new list would close a cycle
    """
    by_id = {task.id: task for task in tasks}
    hierarchy = TaskHierarchy(tasks)
    family = set(hierarchy.ancestors(task_id)) | set(hierarchy.descendants(task_id))

    for link in links:
        if link.id == task_id:
            return "A task cannot depend on itself"
        if link.id not in by_id:
            return f"Predecessor {link.id} does not exist"
        if link.id in family:
            return "A task cannot depend on its own parent or child"

    trial = []
    for task in tasks:
        if task.id == task_id:
            task = task.copy()
            task.dependencies = [link.copy() for link in links]
        trial.append(task)
    graph, _ = build_dependency_graph(trial, TaskHierarchy(trial))
    cycle = find_dependency_cycle(graph)
    if cycle:
        return f"Circular dependency: {' -> '.join(cycle + cycle[:1])}"
    return None


# =============================================================================
# Database graph (used when links are added through the API)
# =============================================================================

async def build_project_graph(
    session: AsyncSession,
    project_id: uuid.UUID,
) -> nx.DiGraph:
    """
    Build a NetworkX DiGraph from all tasks and dependencies in a project.

    Nodes are task ids, edges go predecessor -> successor.
    """
    tasks_result = await session.execute(select(Task.id).where(Task.project_id == project_id))
    task_ids = list(tasks_result.scalars().all())

    deps_result = await session.execute(
        select(Dependency).where(Dependency.successor_id.in_(task_ids))
    )
    dependencies = deps_result.scalars().all()

    graph = nx.DiGraph()
    graph.add_nodes_from(task_ids)
    for dep in dependencies:
        graph.add_edge(dep.predecessor_id, dep.successor_id)
    return graph


async def detect_cycle(
    session: AsyncSession,
    project_id: uuid.UUID,
    new_predecessor_id: str,
    new_successor_id: str,
) -> bool:
    """
    Check if adding an edge (predecessor -> successor) would create a cycle.

    Returns True if a cycle would be created, False otherwise.
    """
    graph = await build_project_graph(session, project_id)
    graph.add_edge(new_predecessor_id, new_successor_id)
    return find_dependency_cycle(graph) is not None
