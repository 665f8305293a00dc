import uuid
import datetime
from typing import TYPE_CHECKING
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship

if TYPE_CHECKING:
    from prologic.models.project import Project


class CalendarException(SQLModel, table=True):
    """A project date that overrides the weekly working pattern."""

    __tablename__ = "calendar_exceptions"
    __table_args__ = (UniqueConstraint("project_id", "date"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)
    date: datetime.date
    working: bool = Field(default=False)  # True = extra working day
    description: str = Field(default="")

    project: "Project" = Relationship(back_populates="calendar_exceptions")
