import uuid
from datetime import date, datetime
from pydantic import BaseModel, field_validator

from prologic.schemas.calendar import validate_weekdays
from prologic.schemas.task import TaskRead


class ProjectCreate(BaseModel):
    """Schema for creating a new project."""
    name: str
    description: str | None = None
    start_date: date | None = None
    working_days: list[int] = [1, 2, 3, 4, 5]

    @field_validator("working_days")
    @classmethod
    def check_weekdays(cls, value: list[int]) -> list[int]:
        return validate_weekdays(value)


class ProjectUpdate(BaseModel):
    """Schema for updating a project."""
    name: str | None = None
    description: str | None = None
    start_date: date | None = None


class ProjectRead(BaseModel):
    """Schema for reading a project."""
    id: uuid.UUID
    name: str
    description: str | None
    start_date: date | None
    working_days: list[int]
    calc_version_id: uuid.UUID
    last_calc_ms: float | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ScheduleStats(BaseModel):
    """Aggregate figures from one CPM pass."""
    task_count: int
    critical_count: int
    critical_path_ids: list[str]
    project_start: date | None
    project_end: date | None
    project_latest_finish: date | None
    duration: int
    conflict_count: int
    conflict_task_ids: list[str]
    dropped_dependencies: int
    calc_time_ms: float | None = None

    model_config = {"from_attributes": True}


class ScheduleRead(BaseModel):
    """Tasks of a project plus the stats of the pass that produced them."""
    project_id: uuid.UUID
    tasks: list[TaskRead]
    stats: ScheduleStats | None = None


class CriticalPathRead(BaseModel):
    project_id: uuid.UUID
    task_ids: list[str]
    chains: list[list[str]]
    project_end: date | None


class TaskVarianceRead(BaseModel):
    task_id: str
    name: str
    start_variance: int | None  # work days, positive = ahead of baseline
    finish_variance: int | None

    model_config = {"from_attributes": True}


class BaselineRead(BaseModel):
    project_id: uuid.UUID
    task_count: int
