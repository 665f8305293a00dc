"""
Worker-mode recalculation: version bumping on request and the stale-job
guard in the ARQ job.
"""

import uuid
from datetime import date

import pytest
from sqlmodel import select

from prologic import worker
from prologic.models import Dependency, Project, Task
from prologic.services import recalc
from prologic.services.recalc import recalc_project, request_recalc


async def seed_project(session, parent_cycle: bool = False) -> Project:
    project = Project(name="Worker Project")
    session.add(project)
    await session.flush()

    session.add_all([
        Task(id="A", project_id=project.id, name="A", start=date(2024, 1, 1), duration=3, sort_order=1,
             parent_id="B" if parent_cycle else None),
        Task(id="B", project_id=project.id, name="B", start=date(2024, 1, 1), duration=5, sort_order=2,
             parent_id="A" if parent_cycle else None),
    ])
    await session.flush()
    if not parent_cycle:
        session.add(Dependency(predecessor_id="A", successor_id="B", link_type="FS"))
    await session.commit()
    return project


class TestRecalcJob:

    @pytest.mark.asyncio
    async def test_current_version_runs(self, test_session, session_context, monkeypatch):
        monkeypatch.setattr(recalc, "get_session_context", session_context)
        project = await seed_project(test_session)

        result = await recalc_project({}, str(project.id), str(project.calc_version_id))
        assert result == "Updated 2 tasks"

        async with session_context() as session:
            rows = await session.execute(select(Task).where(Task.id == "B"))
            task = rows.scalars().one()
            assert task.start == date(2024, 1, 4)
            assert task.end == date(2024, 1, 10)
            assert task.is_critical

    @pytest.mark.asyncio
    async def test_stale_version_is_skipped(self, test_session, session_context, monkeypatch):
        """A job queued before a newer request must not overwrite anything."""
        monkeypatch.setattr(recalc, "get_session_context", session_context)
        project = await seed_project(test_session)

        result = await recalc_project({}, str(project.id), str(uuid.uuid4()))
        assert result.startswith("Stale job")

        async with session_context() as session:
            task = await session.get(Task, "B")
            assert task.start == date(2024, 1, 1)

    @pytest.mark.asyncio
    async def test_missing_project(self, session_context, monkeypatch):
        monkeypatch.setattr(recalc, "get_session_context", session_context)
        result = await recalc_project({}, str(uuid.uuid4()), str(uuid.uuid4()))
        assert "not found" in result

    @pytest.mark.asyncio
    async def test_structural_error_is_reported(self, test_session, session_context, monkeypatch):
        monkeypatch.setattr(recalc, "get_session_context", session_context)
        project = await seed_project(test_session, parent_cycle=True)

        result = await recalc_project({}, str(project.id), str(project.calc_version_id))
        assert result.startswith("Error:")


class TestRequestRecalc:

    @pytest.mark.asyncio
    async def test_worker_mode_bumps_version_and_enqueues(self, test_session, inline_recalc, monkeypatch):
        inline_recalc.recalc_mode = "worker"
        queued = []

        async def fake_enqueue(project_id, version_id):
            queued.append((project_id, version_id))

        monkeypatch.setattr(worker, "enqueue_recalc", fake_enqueue)
        project = await seed_project(test_session)
        old_version = project.calc_version_id

        result = await request_recalc(test_session, project.id)

        assert result is None
        assert project.calc_version_id != old_version
        assert queued == [(str(project.id), str(project.calc_version_id))]

        # Nothing was calculated in the request
        task = await test_session.get(Task, "B")
        assert task.end is None

    @pytest.mark.asyncio
    async def test_inline_mode_calculates(self, test_session):
        project = await seed_project(test_session)

        result = await request_recalc(test_session, project.id)

        assert result.stats.critical_count == 2
        task = await test_session.get(Task, "B")
        assert task.start == date(2024, 1, 4)


class TestRedisUrl:

    def test_host_port_and_database(self):
        settings = worker.parse_redis_url("redis://cache:6380/2")
        assert settings.host == "cache"
        assert settings.port == 6380
        assert settings.database == 2

    def test_host_only(self):
        settings = worker.parse_redis_url("redis://localhost")
        assert settings.host == "localhost"
        assert settings.database == 0

    def test_password(self):
        settings = worker.parse_redis_url("redis://:secret@cache:6379/1")
        assert settings.password == "secret"
        assert settings.database == 1
