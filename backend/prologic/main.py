"""
Pro Logic Scheduler API.

    uvicorn prologic.main:app --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from prologic.config import get_settings
from prologic.database import init_db
from prologic.exceptions import register_exception_handlers
from prologic.logging_config import get_logger, setup_logging
from prologic.routes import dependencies, projects, tasks

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    mode = get_settings().recalc_mode
    await init_db()
    logger.info(f"API ready (recalc mode: {mode})")
    yield
    if mode == "worker":
        from prologic.worker import close_pool

        await close_pool()
    logger.info("API stopped")


def create_app() -> FastAPI:
    application = FastAPI(
        title="Pro Logic Scheduler",
        description="Critical Path Method scheduling with calendars, constraints and rollup",
        version="0.1.0",
        lifespan=lifespan,
    )
    register_exception_handlers(application)

    for module, prefix, tag in (
        (projects, "/projects", "Projects"),
        (tasks, "/tasks", "Tasks"),
        (dependencies, "/dependencies", "Dependencies"),
    ):
        application.include_router(module.router, prefix=prefix, tags=[tag])

    @application.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return application


app = create_app()
