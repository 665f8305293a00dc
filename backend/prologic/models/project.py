import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field, Relationship

if TYPE_CHECKING:
    from prologic.models.task import Task
    from prologic.models.calendar import CalendarException


class Project(SQLModel, table=True):
    """
    Project model - owns tasks and the working calendar.

    Key fields:
    - start_date: Anchor for tasks without predecessors (None = keep each task's own start)
    - working_days: Weekday indices, 0=Sunday .. 6=Saturday
    - calc_version_id: Concurrency guard - changes on every recalculation request
    """

    __tablename__ = "projects"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True)
    description: str | None = Field(default=None)
    start_date: date | None = Field(default=None)
    working_days: list[int] = Field(
        default_factory=lambda: [1, 2, 3, 4, 5],
        sa_column=Column(JSON, nullable=False),
    )
    calc_version_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    last_calc_ms: float | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tasks: list["Task"] = Relationship(back_populates="project")
    calendar_exceptions: list["CalendarException"] = Relationship(back_populates="project")
