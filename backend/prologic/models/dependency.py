import uuid
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship

if TYPE_CHECKING:
    from prologic.models.task import Task


class Dependency(SQLModel, table=True):
    """
    Dependency model representing a directed edge in the task network.

    predecessor_id -> successor_id with a link type and a lag in work days:
    - FS: successor starts after the predecessor finishes
    - SS: successor starts when the predecessor starts
    - FF: successor finishes when the predecessor finishes
    - SF: successor finishes when the predecessor starts

    The same pair may be linked more than once with different link types.
    """

    __tablename__ = "dependencies"
    __table_args__ = (UniqueConstraint("predecessor_id", "successor_id", "link_type"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    predecessor_id: str = Field(foreign_key="tasks.id", index=True)
    successor_id: str = Field(foreign_key="tasks.id", index=True)
    link_type: str = Field(default="FS")
    lag: int = Field(default=0)
    position: int = Field(default=0)  # order within the successor's list

    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    predecessor: "Task" = Relationship(
        back_populates="successors",
        sa_relationship_kwargs={"foreign_keys": "Dependency.predecessor_id"},
    )
    successor: "Task" = Relationship(
        back_populates="predecessors",
        sa_relationship_kwargs={"foreign_keys": "Dependency.successor_id"},
    )
