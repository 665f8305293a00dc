from datetime import date
from pydantic import BaseModel, field_validator


def validate_weekdays(value: list[int]) -> list[int]:
    """Weekday indices 0=Sunday .. 6=Saturday, deduplicated and sorted."""
    for day in value:
        if day < 0 or day > 6:
            raise ValueError(f"Weekday index out of range (0-6): {day}")
    return sorted(set(value))


class CalendarExceptionSchema(BaseModel):
    """One date overriding the weekly pattern."""
    date: date
    working: bool = False
    description: str = ""

    model_config = {"from_attributes": True}


class CalendarSchema(BaseModel):
    """Project calendar: weekly working pattern plus date exceptions."""
    working_days: list[int] = [1, 2, 3, 4, 5]
    exceptions: list[CalendarExceptionSchema] = []

    @field_validator("working_days")
    @classmethod
    def check_weekdays(cls, value: list[int]) -> list[int]:
        return validate_weekdays(value)
