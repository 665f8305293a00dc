"""
Structured exceptions and error responses for Pro Logic Scheduler.

Engine code raises these directly; the API turns them into
{"error", "message", "details"} bodies with the class's status code.

Structural errors (a cycle in the dependency graph or in the parent
relation) are raised before anything is computed or written, so the
caller can always keep the previous valid schedule.
"""

from typing import Any, Dict, Optional, List
from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from prologic.logging_config import get_logger

logger = get_logger(__name__)


# =============================================================================
# Error Response Schema
# =============================================================================

class ErrorDetail(BaseModel):
    loc: Optional[List[str]] = None  # e.g. ["body", "dependencies"]
    msg: str
    type: str


class ErrorResponse(BaseModel):
    error: str  # machine-readable code, e.g. "cycle_detected"
    message: str
    details: Optional[List[ErrorDetail]] = None


def detail(loc: List[str], msg: str, kind: str) -> Dict[str, Any]:
    return {"loc": loc, "msg": msg, "type": kind}


# =============================================================================
# Base classes
# =============================================================================

class PrologicException(Exception):
    """Base exception; subclasses set error_code and status_code."""

    error_code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class StructuralError(PrologicException):
    """The task network cannot be scheduled at all."""

    status_code = status.HTTP_409_CONFLICT


class ValidationError(PrologicException):
    error_code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


# =============================================================================
# Lookup
# =============================================================================

class NotFoundError(PrologicException):
    error_code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} with ID {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


# =============================================================================
# Structural
# =============================================================================

class DependencyCycleError(StructuralError):
    """The dependency graph contains a directed cycle."""

    error_code = "cycle_detected"

    def __init__(self, cycle: List[str]):
        path = " -> ".join(cycle + cycle[:1]) if cycle else ""
        super().__init__(
            "The dependency graph contains a cycle",
            details=[detail(["dependencies"], f"Cycle: {path}", "cycle_error")],
        )
        self.cycle = cycle


class HierarchyCycleError(StructuralError):
    """A task is (transitively) its own parent."""

    error_code = "hierarchy_cycle"

    def __init__(self, task_ids: List[str]):
        super().__init__(
            "The task hierarchy contains a cycle",
            details=[detail(["parent_id"], f"Tasks in parent cycle: {', '.join(task_ids)}", "hierarchy_error")],
        )
        self.task_ids = task_ids


# =============================================================================
# Rejected links
# =============================================================================

class CycleDetectedError(PrologicException):
    """A proposed link would close a cycle; nothing was stored."""

    error_code = "cycle_detected"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, predecessor_id: str, successor_id: str):
        super().__init__(
            "Adding this dependency would create a cycle in the task graph",
            details=[detail(
                ["body"],
                f"Dependency {predecessor_id} -> {successor_id} would create a cycle",
                "cycle_error",
            )],
        )
        self.predecessor_id = predecessor_id
        self.successor_id = successor_id


class DuplicateDependencyError(PrologicException):
    error_code = "duplicate_dependency"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, predecessor_id: str, successor_id: str):
        super().__init__(f"{predecessor_id} -> {successor_id} already exists with this link type")


class SelfDependencyError(PrologicException):
    error_code = "self_dependency"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} cannot depend on itself")


class HierarchyDependencyError(PrologicException):
    """Summary tasks take their dates from children, so links inside a branch are meaningless."""

    error_code = "hierarchy_dependency"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, predecessor_id: str, successor_id: str):
        super().__init__(
            "A task cannot depend on its own parent or child",
            details=[detail(["body"], f"{predecessor_id} and {successor_id} are in the same branch", "hierarchy_error")],
        )


class CrossProjectDependencyError(PrologicException):
    error_code = "cross_project_dependency"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, predecessor_project: str, successor_project: str):
        super().__init__(
            f"Cannot link tasks of project {predecessor_project} and project {successor_project}"
        )


class InvalidCalendarError(ValidationError):
    def __init__(self):
        super().__init__(
            "Calendar must have at least one working weekday",
            details=[detail(["body", "working_days"], "working_days is empty", "calendar_error")],
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def prologic_exception_handler(request: Request, exc: PrologicException) -> JSONResponse:
    """Render a PrologicException as an ErrorResponse body."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    else:
        logger.debug(f"{exc.error_code} on {request.url.path}: {exc.message}")
    body = ErrorResponse(error=exc.error_code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(PrologicException, prologic_exception_handler)
