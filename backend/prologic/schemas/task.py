import uuid
from datetime import date, datetime
from typing import Any
from pydantic import BaseModel, Field

from prologic.schemas.dependency import DependencyLinkSchema
from prologic.services.types import ConstraintType, SchedulingMode


class TaskFields(BaseModel):
    """User-editable task fields shared by create and import."""
    name: str = ""
    notes: str = ""
    parent_id: str | None = None
    start: date | None = None  # Defaults to today for tasks without predecessors
    end: date | None = None
    duration: int = Field(default=1, ge=1)
    dependencies: list[DependencyLinkSchema] = []
    constraint_type: ConstraintType = ConstraintType.ASAP
    constraint_date: date | None = None
    scheduling_mode: SchedulingMode = SchedulingMode.AUTO
    actual_start: date | None = None
    actual_finish: date | None = None
    progress: int = Field(default=0, ge=0, le=100)
    remaining_duration: int | None = None
    trade_partner_ids: list[str] = []
    extra: dict[str, Any] = {}


class TaskCreate(TaskFields):
    """Schema for creating a new task."""
    project_id: uuid.UUID
    id: str | None = None  # Generated when omitted


class TaskImport(TaskFields):
    """One row of a bulk import; ids are preserved."""
    id: str | None = None
    baseline_start: date | None = None
    baseline_finish: date | None = None
    baseline_duration: int | None = None


class TaskImportRequest(BaseModel):
    tasks: list[TaskImport]
    replace: bool = True  # Drop existing tasks first


class TaskImportResult(BaseModel):
    imported: int
    dropped_dependencies: int = 0


class TaskRead(BaseModel):
    """Schema for reading a task, computed CPM fields included."""
    id: str
    project_id: uuid.UUID
    name: str
    notes: str
    parent_id: str | None
    sort_order: int
    start: date | None
    end: date | None
    duration: int
    dependencies: list[DependencyLinkSchema] = []
    constraint_type: ConstraintType
    constraint_date: date | None
    scheduling_mode: SchedulingMode
    actual_start: date | None
    actual_finish: date | None
    progress: int
    remaining_duration: int | None
    baseline_start: date | None
    baseline_finish: date | None
    baseline_duration: int | None
    trade_partner_ids: list[str]
    extra: dict[str, Any]
    is_critical: bool
    total_float: int
    free_float: int
    late_start: date | None
    late_finish: date | None
    float_conflict: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_row(cls, row, links) -> "TaskRead":
        """Build from a Task row plus its incoming Dependency rows."""
        read = cls.model_validate(row)
        read.dependencies = [
            DependencyLinkSchema(id=dep.predecessor_id, type=dep.link_type, lag=dep.lag)
            for dep in sorted(links, key=lambda d: d.position)
        ]
        return read


class TaskEditRequest(BaseModel):
    """
    A single-field edit.

    field accepts boundary names (actualStart, constraintType, ...) and
    attribute names (actual_start, ...). Dates are YYYY-MM-DD strings.
    """
    field: str
    value: Any = None


class TaskEditResponse(BaseModel):
    success: bool
    needs_recalc: bool
    needs_render: bool
    message: str | None = None
    message_type: str | None = None
    task: TaskRead | None = None
