"""
Plain data types shared by the scheduling engine.

Task records are value types: `ScheduleTask.copy()` produces a structural
copy with no shared mutable sub-structure, which is what snapshots,
undo checkpoints and the CPM engine's private working set rely on.
"""

from dataclasses import dataclass, field, fields
from datetime import date
from enum import Enum
from typing import Any


class LinkType(str, Enum):
    """Dependency relation between a predecessor and a successor."""
    FS = "FS"  # Finish-to-Start
    SS = "SS"  # Start-to-Start
    FF = "FF"  # Finish-to-Finish
    SF = "SF"  # Start-to-Finish


class ConstraintType(str, Enum):
    """Date constraint on a single task."""
    ASAP = "asap"
    SNET = "snet"  # Start No Earlier Than
    SNLT = "snlt"  # Start No Later Than
    FNET = "fnet"  # Finish No Earlier Than
    FNLT = "fnlt"  # Finish No Later Than
    MFO = "mfo"    # Must Finish On


class SchedulingMode(str, Enum):
    """Auto lets CPM move the dates, Manual pins them."""
    AUTO = "Auto"
    MANUAL = "Manual"


LINK_TYPE_LABELS = {
    LinkType.FS: "Finish-to-Start",
    LinkType.SS: "Start-to-Start",
    LinkType.FF: "Finish-to-Finish",
    LinkType.SF: "Start-to-Finish",
}

CONSTRAINT_TYPE_LABELS = {
    ConstraintType.ASAP: "As Soon As Possible",
    ConstraintType.SNET: "Start No Earlier Than",
    ConstraintType.SNLT: "Start No Later Than",
    ConstraintType.FNET: "Finish No Earlier Than",
    ConstraintType.FNLT: "Finish No Later Than",
    ConstraintType.MFO: "Must Finish On",
}


def describe_choices(labels: dict) -> str:
    """'FS (Finish-to-Start), SS (Start-to-Start), ...' for validation messages."""
    return ", ".join(f"{key.value} ({label})" for key, label in labels.items())


def is_valid_link_type(value: Any) -> bool:
    try:
        LinkType(value)
    except ValueError:
        return False
    return True


def is_valid_constraint_type(value: Any) -> bool:
    try:
        ConstraintType(value)
    except ValueError:
        return False
    return True


@dataclass
class DependencyLink:
    """A predecessor reference stored on the successor task."""
    id: str
    type: LinkType = LinkType.FS
    lag: int = 0

    def copy(self) -> "DependencyLink":
        return DependencyLink(id=self.id, type=self.type, lag=self.lag)


# Fields the CPM engine owns; edits never write them.
COMPUTED_FIELDS = frozenset({
    "is_critical",
    "total_float",
    "free_float",
    "late_start",
    "late_finish",
    "float_conflict",
})


@dataclass
class ScheduleTask:
    """One schedulable unit or summary (parent) row."""
    id: str
    name: str = ""
    notes: str = ""
    parent_id: str | None = None

    start: date | None = None
    end: date | None = None
    duration: int = 1

    dependencies: list[DependencyLink] = field(default_factory=list)
    constraint_type: ConstraintType = ConstraintType.ASAP
    constraint_date: date | None = None
    scheduling_mode: SchedulingMode = SchedulingMode.AUTO

    actual_start: date | None = None
    actual_finish: date | None = None
    progress: int = 0
    remaining_duration: int | None = None

    baseline_start: date | None = None
    baseline_finish: date | None = None
    baseline_duration: int | None = None

    trade_partner_ids: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    # Computed by the CPM engine
    is_critical: bool = False
    total_float: int = 0
    free_float: int = 0
    late_start: date | None = None
    late_finish: date | None = None
    float_conflict: bool = False

    @property
    def is_manual(self) -> bool:
        return self.scheduling_mode == SchedulingMode.MANUAL

    def copy(self) -> "ScheduleTask":
        """Structural copy: new lists and dicts, immutable values shared."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values["dependencies"] = [dep.copy() for dep in self.dependencies]
        values["trade_partner_ids"] = list(self.trade_partner_ids)
        values["extra"] = dict(self.extra)
        return ScheduleTask(**values)


TASK_FIELD_NAMES = frozenset(f.name for f in fields(ScheduleTask))


@dataclass
class CPMStats:
    """Aggregate figures for one CPM pass."""
    task_count: int = 0
    critical_count: int = 0
    critical_path_ids: list[str] = field(default_factory=list)
    project_start: date | None = None
    project_end: date | None = None
    project_latest_finish: date | None = None
    duration: int = 0
    conflict_count: int = 0
    conflict_task_ids: list[str] = field(default_factory=list)
    dropped_dependencies: int = 0
    # Filled in by the caller that timed the pass
    calc_time_ms: float | None = None


@dataclass
class CPMResult:
    tasks: list[ScheduleTask]
    stats: CPMStats
