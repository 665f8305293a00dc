"""
arq worker for RECALC_MODE=worker.

The API bumps a project's calc_version_id, commits, and enqueues
recalc_project(project_id, version_id). The job drops itself when the
version it carries is no longer the project's current one, so a burst
of edits costs one real pass.

Usage:
    arq prologic.worker.WorkerSettings
"""

from arq import create_pool
from arq.connections import RedisSettings, ArqRedis

from prologic.config import get_settings
from prologic.services.recalc import recalc_project
from prologic.logging_config import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)


def parse_redis_url(url: str) -> RedisSettings:
    """redis://[user:pass@]host[:port][/db] -> RedisSettings."""
    return RedisSettings.from_dsn(url)


async def on_startup(ctx: dict) -> None:
    redis: RedisSettings = WorkerSettings.redis_settings
    logger.info(f"Recalc worker listening on {redis.host}:{redis.port}/{redis.database}")


async def on_shutdown(ctx: dict) -> None:
    logger.info("Recalc worker stopped")


class WorkerSettings:
    functions = [recalc_project]
    on_startup = on_startup
    on_shutdown = on_shutdown
    redis_settings = parse_redis_url(get_settings().redis_url)
    max_jobs = 10
    job_timeout = 300
    # A failed pass is superseded by the next edit's job
    max_tries = 1


_pool: ArqRedis | None = None


async def enqueue_recalc(project_id: str, version_id: str) -> None:
    global _pool
    if _pool is None:
        _pool = await create_pool(parse_redis_url(get_settings().redis_url))
    job = await _pool.enqueue_job("recalc_project", project_id, version_id)
    logger.debug(f"Queued recalc for {project_id[:8]} at version {version_id[:8]} (job={job.job_id if job else None})")


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
