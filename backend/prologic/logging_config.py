"""
Logging configuration for Pro Logic Scheduler.

Every record carries the id of the project being scheduled (or "-")
so the lines of one recalculation can be picked out of interleaved
API and worker output.

- Console output with a color per level (default)
- One JSON object per line when LOG_JSON=true
- LOG_LEVEL wins; otherwise DEBUG when DEBUG=true, else INFO
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from prologic.config import get_settings

_current_project: ContextVar[str] = ContextVar("prologic_project", default="-")

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(project)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_COLORS = {
    logging.DEBUG: "\x1b[38;20m",     # grey
    logging.INFO: "\x1b[32;20m",      # green
    logging.WARNING: "\x1b[33;20m",   # yellow
    logging.ERROR: "\x1b[31;20m",     # red
    logging.CRITICAL: "\x1b[31;1m",   # bold red
}
RESET = "\x1b[0m"

# Third-party loggers that are too chatty at DEBUG
QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "asyncpg": logging.WARNING,
    "httpcore": logging.WARNING,
    "httpx": logging.WARNING,
    "arq": logging.INFO,
}


@contextmanager
def project_context(project_id) -> Iterator[None]:
    """Tag every record logged inside the block with a short project id."""
    token = _current_project.set(str(project_id)[:8])
    try:
        yield
    finally:
        _current_project.reset(token)


class ProjectFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.project = _current_project.get()
        return True


class ColoredFormatter(logging.Formatter):
    """Wraps each line in the color of its level."""

    def format(self, record):
        line = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{RESET}" if color else line


class JsonFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "project": getattr(record, "project", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
) -> None:
    """
    Configure the root logger (idempotent; replaces existing handlers).

    Args:
        level: Log level name; defaults to LOG_LEVEL / DEBUG settings
        json_format: Force JSON output on or off; defaults to LOG_JSON
    """
    settings = get_settings()

    level_name = level or settings.log_level or ("DEBUG" if settings.debug else "INFO")
    numeric_level = getattr(logging, level_name.upper(), logging.INFO)
    if json_format is None:
        json_format = settings.log_json

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.addFilter(ProjectFilter())
    handler.setFormatter(JsonFormatter() if json_format else ColoredFormatter(LOG_FORMAT, DATE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
    logging.getLogger("prologic").setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    """
    Logger under the "prologic" namespace.

    Usage:
        logger = get_logger(__name__)
    """
    if not name.startswith("prologic"):
        name = f"prologic.{name}"
    return logging.getLogger(name)
