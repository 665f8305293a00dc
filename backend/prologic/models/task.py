import uuid
from datetime import date, datetime
from typing import Any, TYPE_CHECKING
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field, Relationship

if TYPE_CHECKING:
    from prologic.models.project import Project
    from prologic.models.dependency import Dependency


def new_task_id() -> str:
    return str(uuid.uuid4())


class Task(SQLModel, table=True):
    """
    Task model holding both user-entered and CPM-computed fields.

    Key fields:
    - start/end/duration: Scheduled dates in work days (computed for Auto tasks)
    - scheduling_mode: "Auto" lets CPM move dates, "Manual" pins them
    - constraint_type/constraint_date: asap, snet, snlt, fnet, fnlt, mfo
    - is_critical, total_float, free_float, late_*: owned by the CPM engine

    Ids are opaque strings so imported schedules keep their own ids.
    """

    __tablename__ = "tasks"

    id: str = Field(default_factory=new_task_id, primary_key=True)
    name: str = Field(default="", index=True)
    notes: str = Field(default="")
    parent_id: str | None = Field(default=None, index=True)
    sort_order: int = Field(default=0)

    start: date | None = Field(default=None)
    end: date | None = Field(default=None)
    duration: int = Field(default=1, ge=1)

    constraint_type: str = Field(default="asap")
    constraint_date: date | None = Field(default=None)
    scheduling_mode: str = Field(default="Auto")

    actual_start: date | None = Field(default=None)
    actual_finish: date | None = Field(default=None)
    progress: int = Field(default=0, ge=0, le=100)
    remaining_duration: int | None = Field(default=None)

    baseline_start: date | None = Field(default=None)
    baseline_finish: date | None = Field(default=None)
    baseline_duration: int | None = Field(default=None)

    trade_partner_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    extra: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    # Computed by the CPM engine
    is_critical: bool = Field(default=False)
    total_float: int = Field(default=0)
    free_float: int = Field(default=0)
    late_start: date | None = Field(default=None)
    late_finish: date | None = Field(default=None)
    float_conflict: bool = Field(default=False)

    # Foreign keys
    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    project: "Project" = Relationship(back_populates="tasks")

    # Dependencies where this task is the predecessor
    successors: list["Dependency"] = Relationship(
        back_populates="predecessor",
        sa_relationship_kwargs={"foreign_keys": "Dependency.predecessor_id"},
    )

    # Dependencies where this task is the successor
    predecessors: list["Dependency"] = Relationship(
        back_populates="successor",
        sa_relationship_kwargs={"foreign_keys": "Dependency.successor_id"},
    )
