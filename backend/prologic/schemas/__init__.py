from prologic.schemas.calendar import CalendarExceptionSchema, CalendarSchema
from prologic.schemas.dependency import DependencyCreate, DependencyUpdate, DependencyRead, DependencyLinkSchema
from prologic.schemas.task import (
    TaskCreate,
    TaskRead,
    TaskImport,
    TaskImportRequest,
    TaskImportResult,
    TaskEditRequest,
    TaskEditResponse,
)
from prologic.schemas.project import (
    ProjectCreate,
    ProjectUpdate,
    ProjectRead,
    ScheduleStats,
    ScheduleRead,
    CriticalPathRead,
    TaskVarianceRead,
    BaselineRead,
)

__all__ = [
    "CalendarExceptionSchema",
    "CalendarSchema",
    "DependencyCreate",
    "DependencyUpdate",
    "DependencyRead",
    "DependencyLinkSchema",
    "TaskCreate",
    "TaskRead",
    "TaskImport",
    "TaskImportRequest",
    "TaskImportResult",
    "TaskEditRequest",
    "TaskEditResponse",
    "ProjectCreate",
    "ProjectUpdate",
    "ProjectRead",
    "ScheduleStats",
    "ScheduleRead",
    "CriticalPathRead",
    "TaskVarianceRead",
    "BaselineRead",
]
