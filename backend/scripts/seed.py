#!/usr/bin/env python3
"""
Seed script to generate a large schedule for performance testing.

Generates a project with:
- One summary (parent) task per wave
- Tasks in each wave linked to 1-3 tasks of recent waves
- Mostly FS links, with some SS/FF and occasional lag
- A few SNET constraints

Usage:
    python -m scripts.seed [--nodes 500] [--clear] [--benchmark]

Options:
    --nodes N    Number of leaf tasks to generate (default: 500)
    --clear      Clear existing data before seeding
    --project    Name of the project to create
    --benchmark  Time a duration edit followed by a full recalculation
"""

import argparse
import asyncio
import random
import time
import uuid
from datetime import date, timedelta

from sqlalchemy import delete, func
from sqlmodel import select

from prologic.database import async_session_maker, init_db
from prologic.models import CalendarException, Dependency, Project, Task
from prologic.services.persistence import load_project_state
from prologic.services.recalc import ProjectScheduler, recalculate_project

LINK_TYPES = ["FS"] * 8 + ["SS", "FF"]


async def clear_data():
    """Clear all existing data."""
    print("Clearing existing data...")
    async with async_session_maker() as session:
        for model in (Dependency, Task, CalendarException, Project):
            await session.execute(delete(model))
        await session.commit()
    print("Data cleared.")


async def create_project(name: str, start: date) -> Project:
    async with async_session_maker() as session:
        project = Project(name=name, description="Performance test project", start_date=start)
        session.add(project)
        await session.commit()
        await session.refresh(project)
        return project


def generate_schedule(
    project_id: uuid.UUID,
    num_nodes: int = 500,
) -> tuple[list[Task], list[Dependency]]:
    """
    Build tasks in waves (levels); each wave sits under its own phase task.

    Returns:
        Tuple of (tasks, dependencies)
    """
    tasks = []
    dependencies = []
    seen = set()

    num_waves = max(10, num_nodes // 50)
    tasks_per_wave = num_nodes // num_waves
    start = date(2025, 1, 6)
    order = 0

    print(f"Generating {num_nodes} tasks in {num_waves} waves...")

    waves: list[list[Task]] = []
    for wave in range(num_waves):
        order += 1
        phase = Task(
            id=f"phase-{wave:02d}",
            name=f"Phase {wave + 1}",
            project_id=project_id,
            sort_order=order,
        )
        tasks.append(phase)

        wave_size = tasks_per_wave if wave < num_waves - 1 else num_nodes - tasks_per_wave * (num_waves - 1)
        wave_tasks = []
        for i in range(wave_size):
            order += 1
            task = Task(
                id=f"W{wave:02d}-{i:03d}",
                name=f"Task W{wave:02d}-{i:03d}",
                parent_id=phase.id,
                duration=random.randint(1, 10),
                start=start,
                project_id=project_id,
                sort_order=order,
            )
            if random.random() < 0.03:
                task.constraint_type = "snet"
                task.constraint_date = start + timedelta(days=7 * wave + random.randint(0, 20))
            wave_tasks.append(task)
        tasks.extend(wave_tasks)
        waves.append(wave_tasks)

        if wave == 0:
            continue

        for task in wave_tasks:
            # Prefer recent waves but occasionally reach back further
            available_waves = list(range(max(0, wave - 3), wave))
            for position in range(random.randint(1, 3)):
                pred = random.choice(waves[random.choice(available_waves)])
                link_type = random.choice(LINK_TYPES)
                if (pred.id, task.id, link_type) in seen:
                    continue
                seen.add((pred.id, task.id, link_type))
                dependencies.append(Dependency(
                    predecessor_id=pred.id,
                    successor_id=task.id,
                    link_type=link_type,
                    lag=random.choice([0, 0, 0, 1, 2]),
                    position=position,
                ))

    return tasks, dependencies


async def insert_batch(tasks: list[Task], dependencies: list[Dependency]):
    """Insert tasks and dependencies in batches."""
    async with async_session_maker() as session:
        batch_size = 100

        print(f"Inserting {len(tasks)} tasks...")
        for i in range(0, len(tasks), batch_size):
            session.add_all(tasks[i:i + batch_size])
            await session.flush()

        print(f"Inserting {len(dependencies)} dependencies...")
        for i in range(0, len(dependencies), batch_size):
            session.add_all(dependencies[i:i + batch_size])
            await session.flush()

        await session.commit()


async def recalc(project_id: uuid.UUID):
    async with async_session_maker() as session:
        result = await recalculate_project(session, project_id)
        await session.commit()

    stats = result.stats
    print("\n=== Schedule ===")
    print(f"Tasks:        {stats.task_count}")
    print(f"Critical:     {stats.critical_count}")
    print(f"Conflicts:    {stats.conflict_count}")
    print(f"Finish:       {stats.project_end} ({stats.duration} work days)")
    print(f"CPM pass:     {stats.calc_time_ms:.1f}ms")


async def run_benchmark(project_id: uuid.UUID):
    """Edit the duration of a root task and time the recalculation in memory."""
    async with async_session_maker() as session:
        state = await load_project_state(session, project_id)

    scheduler = ProjectScheduler(state.tasks, state.calendar, state.project.start_date)
    scheduler.recalculate()

    root = next(t for t in scheduler.tasks if t.parent_id and not t.dependencies)
    print(f"\n=== Benchmark: duration edit on {root.name} ===")

    started = time.perf_counter()
    scheduler.edit(root.id, "duration", str(root.duration + 5))
    elapsed = (time.perf_counter() - started) * 1000

    print(f"Edit + full recalculation: {elapsed:.1f}ms")
    print(f"Passes run: {scheduler.coordinator.passes}")


async def get_stats(project_id: uuid.UUID):
    async with async_session_maker() as session:
        num_tasks = await session.scalar(
            select(func.count()).select_from(Task).where(Task.project_id == project_id)
        )
        task_ids = select(Task.id).where(Task.project_id == project_id)
        num_deps = await session.scalar(
            select(func.count()).select_from(Dependency).where(Dependency.successor_id.in_(task_ids))
        )

    print("\n=== Graph Statistics ===")
    print(f"Tasks:         {num_tasks}")
    print(f"Dependencies:  {num_deps}")
    print(f"Avg deps/task: {num_deps / num_tasks if num_tasks else 0:.2f}")


async def main():
    parser = argparse.ArgumentParser(description="Seed the database with a large schedule")
    parser.add_argument("--nodes", type=int, default=500, help="Number of leaf tasks to create")
    parser.add_argument("--clear", action="store_true", help="Clear existing data first")
    parser.add_argument("--project", type=str, default="Performance Test", help="Project name")
    parser.add_argument("--benchmark", action="store_true", help="Time an edit after seeding")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")

    args = parser.parse_args()
    if args.seed is not None:
        random.seed(args.seed)

    await init_db()
    if args.clear:
        await clear_data()

    project = await create_project(args.project, date(2025, 1, 6))
    print(f"Created project {project.name} ({project.id})")

    started = time.perf_counter()
    tasks, dependencies = generate_schedule(project.id, args.nodes)
    await insert_batch(tasks, dependencies)
    print(f"Inserted in {time.perf_counter() - started:.2f}s")

    await get_stats(project.id)
    await recalc(project.id)

    if args.benchmark:
        await run_benchmark(project.id)


if __name__ == "__main__":
    asyncio.run(main())
