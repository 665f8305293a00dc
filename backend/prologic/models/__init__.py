from prologic.models.project import Project
from prologic.models.calendar import CalendarException
from prologic.models.task import Task
from prologic.models.dependency import Dependency

__all__ = ["Project", "CalendarException", "Task", "Dependency"]
