"""Conversions between the Gantt application's records and interchange records."""

import logging
from collections.abc import Mapping
from dataclasses import asdict, is_dataclass
from datetime import date
from enum import IntEnum

from project_interchange.core import codec
from project_interchange.core.identity import (
    LINK_TYPE_CODES,
    normalize_external_id,
    to_app_link_type,
)
from project_interchange.core.models import (
    GanttAssignment,
    GanttDependency,
    GanttImport,
    GanttResource,
    GanttTask,
    InterchangeProject,
    LinkType,
    ProjectAssignment,
    ProjectDependency,
    ProjectResource,
    ProjectTask,
    Snapshot,
)

logger = logging.getLogger(__name__)

IMPORT_TASK_PREFIX = "import_"
IMPORTED_EMAIL_DOMAIN = "imported.local"


class SnapshotError(ValueError):
    """Raised when a snapshot document does not have the expected shape."""


# ── Snapshot loading ──────────────────────────────────────────────────────────


def _pick(data: Mapping, *keys):
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _str(value) -> str | None:
    return None if value is None else str(value)


def _items(value) -> list:
    """Treat a missing value as empty and a lone mapping as a one-item list."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        value = value.get("rows", [value])
    if isinstance(value, (list, tuple)):
        return [item for item in value if isinstance(item, Mapping)]
    return []


def task_from_dict(data: Mapping, embed_ids: bool = True) -> ProjectTask:
    task_id = _str(_pick(data, "id", "taskId"))
    external_id = _pick(data, "externalId", "external_id")
    if external_id is None and embed_ids:
        external_id = task_id
    return ProjectTask(
        id=task_id,
        name=_str(_pick(data, "name", "title")) or "",
        start_date=_pick(data, "startDate", "start_date"),
        end_date=_pick(data, "endDate", "end_date"),
        finish_date=_pick(data, "finishDate", "finish_date"),
        duration=codec.to_number(_pick(data, "duration")),
        percent_done=codec.to_number(_pick(data, "percentDone", "percent_done")),
        effort=codec.to_number(_pick(data, "effort")),
        notes=_str(_pick(data, "note", "notes")),
        parent_id=_str(_pick(data, "parentId", "parent_id")),
        external_id=normalize_external_id(external_id),
        children=[task_from_dict(c, embed_ids) for c in _items(data.get("children"))],
    )


def load_snapshot(data, embed_ids: bool = True) -> Snapshot:
    """Build application records from a decoded JSON snapshot.

    With ``embed_ids`` every task and assignment without an explicit
    ``externalId`` carries its own id as the identity tag, so a later import
    of the exported file updates the same records.
    """
    if not isinstance(data, Mapping):
        raise SnapshotError("Snapshot must be a JSON object")

    tasks = [task_from_dict(t, embed_ids) for t in _items(data.get("tasks"))]
    resources = [
        ProjectResource(
            id=_str(_pick(r, "id", "email")),
            name=_str(_pick(r, "name")) or "",
            email=_str(_pick(r, "email")),
        )
        for r in _items(data.get("resources"))
    ]
    assignments = []
    for a in _items(data.get("assignments")):
        assignment_id = _pick(a, "externalId", "external_id")
        if assignment_id is None and embed_ids:
            assignment_id = _pick(a, "id", "assignmentId")
        assignments.append(
            ProjectAssignment(
                task_id=_str(_pick(a, "event", "taskId", "task")),
                resource_id=_str(_pick(a, "resource", "resourceId")),
                units=codec.to_number(_pick(a, "units")),
                id=_str(assignment_id),
            )
        )
    dependencies = []
    for d in _items(data.get("dependencies")):
        dep_type = codec.to_number(_pick(d, "type"))
        dependencies.append(
            ProjectDependency(
                from_task=_str(_pick(d, "fromTask", "from", "from_task")),
                to_task=_str(_pick(d, "toTask", "to", "to_task")),
                type=int(dep_type) if dep_type is not None else LinkType.FINISH_TO_START,
                lag=codec.to_number(_pick(d, "lag")),
            )
        )

    return Snapshot(
        project_name=_str(_pick(data, "projectName", "project_name", "name")),
        start_date=_pick(data, "startDate", "start_date"),
        tasks=tasks,
        resources=resources,
        assignments=assignments,
        dependencies=dependencies,
    )


# ── Import conversion ─────────────────────────────────────────────────────────


def import_task_id(uid: int) -> str:
    return f"{IMPORT_TASK_PREFIX}{uid}"


def resource_key(uid: int, email: str | None) -> str:
    """Resources are keyed by e-mail; a synthetic address stands in when absent."""
    return (email or f"resource_{uid}@{IMPORTED_EMAIL_DOMAIN}").lower()


def to_gantt(project: InterchangeProject) -> GanttImport:
    """Convert imported interchange records to Gantt application records.

    Task ids are temporary (``import_<uid>``) until the caller maps them to
    durable ids. Finish dates become exclusive end dates, wire link types
    become application link types, and references to unknown tasks or
    resources are dropped.
    """
    task_uids = {t.uid for t in project.tasks}
    tasks = [
        GanttTask(
            id=import_task_id(t.uid),
            name=t.name,
            start_date=t.start,
            end_date=codec.exclusive_end(t.finish),
            duration=t.duration,
            percent_done=t.percent_complete,
            effort=t.work,
            note=t.notes,
            parent_id=import_task_id(t.parent_uid) if t.parent_uid in task_uids else None,
            import_uid=t.uid,
            outline_level=t.outline_level,
            external_id=t.external_id,
        )
        for t in project.tasks
    ]

    resource_ids = {r.uid: resource_key(r.uid, r.email) for r in project.resources}
    resources = [
        GanttResource(id=resource_ids[r.uid], name=r.name, email=resource_ids[r.uid], import_uid=r.uid)
        for r in project.resources
    ]

    assignments = [
        GanttAssignment(
            id=f"assignment_{a.uid}",
            event=import_task_id(a.task_uid),
            resource=resource_ids[a.resource_uid],
            units=a.units or 100.0,
            external_id=a.external_id,
        )
        for a in project.assignments
        if a.task_uid in task_uids and a.resource_uid in resource_ids
    ]

    dependencies = []
    for dep in project.dependencies:
        if dep.from_task_uid not in task_uids or dep.to_task_uid not in task_uids:
            continue
        dependencies.append(
            GanttDependency(
                id=f"dep_{len(dependencies)}",
                from_task=import_task_id(dep.from_task_uid),
                to_task=import_task_id(dep.to_task_uid),
                type=to_app_link_type(dep.type),
                lag=dep.lag,
            )
        )

    return GanttImport(tasks=tasks, resources=resources, assignments=assignments, dependencies=dependencies)


def build_task_tree(tasks: list[GanttTask]) -> list[GanttTask]:
    """Nest flat tasks under their parents; unknown parents become roots.

    Input order is kept for siblings. The input records gain ``children``.
    """
    by_id = {t.id: t for t in tasks}
    roots = []
    for task in tasks:
        task.children = []
    for task in tasks:
        parent = by_id.get(task.parent_id) if task.parent_id else None
        if parent is None or parent is task:
            roots.append(task)
        else:
            parent.children.append(task)
    return roots


def creation_order(tasks: list[GanttTask]) -> list[GanttTask]:
    """Parents before children, so a parent's durable id exists first."""
    return sorted(tasks, key=lambda t: t.outline_level)


def split_by_identity(tasks: list[GanttTask]) -> tuple[list[GanttTask], list[GanttTask]]:
    """Split into (updates, creates) by the carried identity tag."""
    updates = [t for t in tasks if t.external_id]
    creates = [t for t in tasks if not t.external_id]
    return updates, creates


def _link_tokens(deps: list[GanttDependency], attr: str, id_map: Mapping[str, str]) -> str:
    tokens = []
    for dep in deps:
        other = getattr(dep, attr)
        token = f"{id_map.get(other, other)}{LINK_TYPE_CODES.get(dep.type, 'FS')}"
        if dep.lag:
            sign = "+" if dep.lag > 0 else ""
            token += f"{sign}{codec.format_number(dep.lag)}d"
        tokens.append(token)
    return ";".join(tokens)


def predecessor_string(task_id: str, dependencies: list[GanttDependency], id_map: Mapping[str, str]) -> str:
    """Predecessors of ``task_id`` as ``<id><type>[+lag d]`` tokens."""
    return _link_tokens([d for d in dependencies if d.to_task == task_id], "from_task", id_map)


def successor_string(task_id: str, dependencies: list[GanttDependency], id_map: Mapping[str, str]) -> str:
    """Successors of ``task_id`` as ``<id><type>[+lag d]`` tokens."""
    return _link_tokens([d for d in dependencies if d.from_task == task_id], "to_task", id_map)


# ── Serialization ─────────────────────────────────────────────────────────────


def to_jsonable(value):
    """Dataclasses, dates and enums to plain JSON types."""
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    if isinstance(value, Mapping):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, IntEnum):
        return int(value)
    return value
