import uuid
from datetime import datetime
from pydantic import BaseModel

from prologic.services.types import LinkType


class DependencyCreate(BaseModel):
    """Schema for creating a new dependency."""
    predecessor_id: str
    successor_id: str
    link_type: LinkType = LinkType.FS
    lag: int = 0  # work days, may be negative (lead)


class DependencyUpdate(BaseModel):
    """Change the type or lag of an existing link; omitted fields stay as they are."""
    link_type: LinkType | None = None
    lag: int | None = None


class DependencyRead(BaseModel):
    """Schema for reading a dependency."""
    id: uuid.UUID
    predecessor_id: str
    successor_id: str
    link_type: LinkType
    lag: int
    created_at: datetime

    model_config = {"from_attributes": True}


class DependencyLinkSchema(BaseModel):
    """A predecessor reference as carried on a task."""
    id: str
    type: LinkType = LinkType.FS
    lag: int = 0

    model_config = {"from_attributes": True}
