"""Data models for project interchange."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import IntEnum


class LinkType(IntEnum):
    """Dependency type numbering used by the Gantt application."""

    START_TO_START = 0
    START_TO_FINISH = 1
    FINISH_TO_START = 2
    FINISH_TO_FINISH = 3


class WireLinkType(IntEnum):
    """Dependency type numbering used by MSPDI ``PredecessorLink/Type``."""

    FINISH_TO_FINISH = 0
    FINISH_TO_START = 1
    START_TO_FINISH = 2
    START_TO_START = 3


# Application side ─────────────────────────────────────────────────────────────

DateLike = date | datetime | str | None


@dataclass
class ProjectTask:
    id: str | None = None
    name: str = ""
    start_date: DateLike = None
    end_date: DateLike = None  # exclusive: the day after the last working day
    finish_date: DateLike = None  # inclusive: the last working day
    duration: float | None = None  # days
    percent_done: float | None = None
    effort: float | None = None  # hours
    notes: str | None = None
    parent_id: str | None = None
    external_id: str | None = None
    children: list["ProjectTask"] = field(default_factory=list)


@dataclass
class ProjectResource:
    id: str | None = None
    name: str = ""
    email: str | None = None


@dataclass
class ProjectAssignment:
    task_id: str | None = None
    resource_id: str | None = None
    units: float | None = None  # percent
    id: str | None = None


@dataclass
class ProjectDependency:
    from_task: str | None = None
    to_task: str | None = None
    type: int = LinkType.FINISH_TO_START
    lag: float | None = None  # days


@dataclass
class Snapshot:
    project_name: str | None = None
    start_date: DateLike = None
    tasks: list[ProjectTask] = field(default_factory=list)
    resources: list[ProjectResource] = field(default_factory=list)
    assignments: list[ProjectAssignment] = field(default_factory=list)
    dependencies: list[ProjectDependency] = field(default_factory=list)


# Interchange side ─────────────────────────────────────────────────────────────


@dataclass
class PredecessorLink:
    predecessor_uid: int
    type: int = WireLinkType.FINISH_TO_START
    lag: float | None = None  # days


@dataclass
class InterchangeTask:
    uid: int
    id: int
    name: str
    start: date | None = None
    finish: date | None = None
    duration: float = 0.0  # days
    percent_complete: float = 0.0
    work: float = 0.0  # hours
    outline_level: int = 1
    parent_uid: int | None = None
    notes: str | None = None
    external_id: str | None = None
    is_summary: bool = False
    is_milestone: bool = False
    wbs: str | None = None
    predecessors: list[PredecessorLink] = field(default_factory=list)


@dataclass
class InterchangeResource:
    uid: int
    id: int
    name: str
    email: str | None = None


@dataclass
class InterchangeAssignment:
    uid: int
    task_uid: int
    resource_uid: int
    units: float = 100.0  # percent
    external_id: str | None = None


@dataclass
class InterchangeDependency:
    from_task_uid: int
    to_task_uid: int
    type: int = WireLinkType.FINISH_TO_START
    lag: float | None = None  # days


@dataclass
class InterchangeProject:
    project_name: str | None = None
    start_date: date | None = None
    finish_date: date | None = None
    tasks: list[InterchangeTask] = field(default_factory=list)
    resources: list[InterchangeResource] = field(default_factory=list)
    assignments: list[InterchangeAssignment] = field(default_factory=list)
    dependencies: list[InterchangeDependency] = field(default_factory=list)


# Gantt application records produced from an import ───────────────────────────


@dataclass
class GanttTask:
    id: str
    name: str
    start_date: date | None = None
    end_date: date | None = None  # exclusive
    duration: float = 0.0
    percent_done: float = 0.0
    effort: float = 0.0
    note: str | None = None
    parent_id: str | None = None
    import_uid: int = 0
    outline_level: int = 1
    external_id: str | None = None
    children: list["GanttTask"] = field(default_factory=list)


@dataclass
class GanttResource:
    id: str
    name: str
    email: str
    import_uid: int = 0


@dataclass
class GanttAssignment:
    id: str
    event: str
    resource: str
    units: float = 100.0
    external_id: str | None = None


@dataclass
class GanttDependency:
    id: str
    from_task: str
    to_task: str
    type: int = LinkType.FINISH_TO_START
    lag: float | None = None


@dataclass
class GanttImport:
    tasks: list[GanttTask] = field(default_factory=list)
    resources: list[GanttResource] = field(default_factory=list)
    assignments: list[GanttAssignment] = field(default_factory=list)
    dependencies: list[GanttDependency] = field(default_factory=list)
