"""MSPDI (Microsoft Project XML) importer.

Parses documents saved by Microsoft Project (File > Save As > XML) or by
``project_interchange.core.exporter`` into flat interchange records:

- tasks with outline level and a reconstructed parent UID
- work resources
- assignments (task-resource mappings)
- dependencies from predecessor links

Element lookups ignore the document namespace, and every repeatable element
goes through ``_all`` so one, many or zero occurrences read the same way.
"""

import logging
from xml.etree.ElementTree import Element, ParseError, fromstring

from project_interchange.core import codec
from project_interchange.core.identity import (
    ASSIGNMENT_EXTERNAL_ID_FIELD,
    TASK_EXTERNAL_ID_FIELD,
    normalize_external_id,
)
from project_interchange.core.models import (
    InterchangeAssignment,
    InterchangeDependency,
    InterchangeProject,
    InterchangeResource,
    InterchangeTask,
    WireLinkType,
)

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "Imported Project"
UNNAMED_TASK = "Unnamed Task"
UNKNOWN_RESOURCE = "Unknown Resource"
WORK_RESOURCE = 1


class MspdiParseError(Exception):
    """Raised when a document is not well-formed MSPDI."""


# ── Element helpers ───────────────────────────────────────────────────────────


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _all(parent: Element | None, name: str) -> list[Element]:
    """Every direct child called ``name``, as a list (possibly empty)."""
    if parent is None:
        return []
    return [child for child in parent if _local(child.tag) == name]


def _first(parent: Element | None, name: str) -> Element | None:
    found = _all(parent, name)
    return found[0] if found else None


def _text(parent: Element | None, name: str) -> str | None:
    el = _first(parent, name)
    if el is None or el.text is None:
        return None
    text = el.text.strip()
    return text or None


def _number(parent: Element | None, name: str) -> float | None:
    return codec.to_number(_text(parent, name))


def _int(parent: Element | None, name: str) -> int | None:
    num = _number(parent, name)
    return int(num) if num is not None else None


def _flag(parent: Element | None, name: str) -> bool:
    return (_text(parent, name) or "").lower() in ("1", "true")


def _extended_attribute(parent: Element, field_id: int) -> str | None:
    """Value of the custom field with ``field_id``, matched by number only."""
    for attr in _all(parent, "ExtendedAttribute"):
        if _int(attr, "FieldID") == field_id:
            return normalize_external_id(_text(attr, "Value"))
    return None


# ── Sections ──────────────────────────────────────────────────────────────────


def _task_elements(project: Element) -> list[Element]:
    return _all(_first(project, "Tasks"), "Task")


def _parse_task(el: Element) -> InterchangeTask | None:
    uid = _int(el, "UID")
    if uid is None or uid == 0:
        return None
    if _flag(el, "IsNull"):
        logger.debug("Skipping blank task row UID %s", uid)
        return None

    row = _int(el, "ID")
    return InterchangeTask(
        uid=uid,
        id=row if row is not None else uid,
        name=_text(el, "Name") or UNNAMED_TASK,
        start=codec.parse_date(_text(el, "Start")),
        finish=codec.parse_date(_text(el, "Finish")),
        duration=codec.parse_duration(_text(el, "Duration")) or 0.0,
        percent_complete=codec.clamp_percent(_number(el, "PercentComplete")),
        work=codec.parse_work(_text(el, "Work")) or 0.0,
        outline_level=max(_int(el, "OutlineLevel") or 1, 1),
        notes=_text(el, "Notes"),
        external_id=_extended_attribute(el, TASK_EXTERNAL_ID_FIELD),
        is_summary=_flag(el, "Summary"),
        is_milestone=_flag(el, "Milestone"),
        wbs=_text(el, "WBS"),
    )


def assign_parents(tasks: list[InterchangeTask]) -> None:
    """Rebuild parent UIDs from outline levels in document order.

    The stack holds the ancestors still in scope. Anything at the same or a
    deeper level than the current task cannot be its parent and is popped;
    what remains on top is the parent. A jump of more than one level (1 to 3)
    attaches to the nearest shallower task, and the level is then rewritten
    to one below its parent. Comparisons use the levels as written.
    """
    stack: list[tuple[int, InterchangeTask]] = []
    for task in tasks:
        level = task.outline_level
        while stack and stack[-1][0] >= level:
            stack.pop()
        parent = stack[-1][1] if stack else None
        task.parent_uid = parent.uid if parent else None
        task.outline_level = parent.outline_level + 1 if parent else 1
        stack.append((level, task))


def _parse_dependencies(task_elements: list[Element], known: set[int]) -> list[InterchangeDependency]:
    dependencies = []
    for el in task_elements:
        to_uid = _int(el, "UID")
        if to_uid is None or to_uid not in known:
            continue
        for link in _all(el, "PredecessorLink"):
            from_uid = _int(link, "PredecessorUID")
            if from_uid is None or from_uid == 0:
                continue
            if from_uid not in known:
                logger.debug("Dropping link from unknown task UID %s", from_uid)
                continue
            link_type = _int(link, "Type")
            dependencies.append(
                InterchangeDependency(
                    from_task_uid=from_uid,
                    to_task_uid=to_uid,
                    type=link_type if link_type is not None else WireLinkType.FINISH_TO_START,
                    lag=codec.parse_lag(_text(link, "LinkLag")),
                )
            )
    return dependencies


def _parse_resources(project: Element) -> list[InterchangeResource]:
    resources = []
    for el in _all(_first(project, "Resources"), "Resource"):
        uid = _int(el, "UID")
        if uid is None or uid == 0:
            continue
        resource_type = _int(el, "Type")
        if resource_type is not None and resource_type != WORK_RESOURCE:
            logger.debug("Skipping non-work resource UID %s", uid)
            continue
        row = _int(el, "ID")
        resources.append(
            InterchangeResource(
                uid=uid,
                id=row if row is not None else uid,
                name=_text(el, "Name") or UNKNOWN_RESOURCE,
                email=_text(el, "EmailAddress"),
            )
        )
    return resources


def _parse_assignments(
    project: Element, task_uids: set[int], resource_uids: set[int]
) -> list[InterchangeAssignment]:
    assignments = []
    for el in _all(_first(project, "Assignments"), "Assignment"):
        uid = _int(el, "UID")
        task_uid = _int(el, "TaskUID")
        resource_uid = _int(el, "ResourceUID")
        if uid is None or task_uid is None or resource_uid is None:
            continue
        if task_uid == 0 or resource_uid == 0:
            continue
        if task_uid not in task_uids or resource_uid not in resource_uids:
            logger.debug("Dropping assignment UID %s with unknown endpoints", uid)
            continue
        units = _number(el, "Units")
        assignments.append(
            InterchangeAssignment(
                uid=uid,
                task_uid=task_uid,
                resource_uid=resource_uid,
                units=units * 100 if units is not None else 100.0,
                external_id=_extended_attribute(el, ASSIGNMENT_EXTERNAL_ID_FIELD),
            )
        )
    return assignments


# ── Entry point ───────────────────────────────────────────────────────────────


def parse_mspdi_xml(content: str | bytes) -> InterchangeProject:
    """Parse MSPDI text into flat interchange records.

    Raises MspdiParseError if the text is not well-formed XML or its root is
    not a ``Project`` element. Every other anomaly falls back to a default.
    """
    try:
        root = fromstring(content)
    except ParseError as e:
        raise MspdiParseError(f"Failed to parse XML: {e}") from e

    if _local(root.tag) != "Project":
        raise MspdiParseError("Invalid MSPDI XML: Missing Project element")

    task_elements = _task_elements(root)
    tasks = [t for t in (_parse_task(el) for el in task_elements) if t is not None]
    assign_parents(tasks)

    task_uids = {t.uid for t in tasks}
    resources = _parse_resources(root)
    resource_uids = {r.uid for r in resources}

    project = InterchangeProject(
        project_name=_text(root, "Name") or _text(root, "Title") or DEFAULT_PROJECT_NAME,
        start_date=codec.parse_date(_text(root, "StartDate")),
        finish_date=codec.parse_date(_text(root, "FinishDate")),
        tasks=tasks,
        resources=resources,
        assignments=_parse_assignments(root, task_uids, resource_uids),
        dependencies=_parse_dependencies(task_elements, task_uids),
    )
    logger.info(
        "Parsed %d tasks, %d resources, %d assignments, %d dependencies",
        len(project.tasks),
        len(project.resources),
        len(project.assignments),
        len(project.dependencies),
    )
    return project
