"""MSPDI (Microsoft Project XML) exporter.

Turns an application snapshot (a task forest plus flat resource, assignment
and dependency lists) into a document that Microsoft Project opens directly.
Export runs in two steps: ``flatten_project`` numbers and classifies the
tasks into interchange records, and ``generate_mspdi_xml`` serialises them.
Neither step raises for missing or malformed optional fields.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from xml.etree.ElementTree import Element, SubElement
from xml.sax.saxutils import escape

from project_interchange.core import codec
from project_interchange.core.identity import (
    ASSIGNMENT_EXTERNAL_ID_FIELD,
    EXTERNAL_ID_FIELDS,
    TASK_EXTERNAL_ID_FIELD,
    normalize_external_id,
    to_wire_link_type,
)
from project_interchange.core.models import (
    InterchangeAssignment,
    InterchangeDependency,
    InterchangeProject,
    InterchangeResource,
    InterchangeTask,
    PredecessorLink,
    ProjectAssignment,
    ProjectDependency,
    ProjectResource,
    ProjectTask,
    Snapshot,
)

logger = logging.getLogger(__name__)

NS = "http://schemas.microsoft.com/project"
DEFAULT_PROJECT_NAME = "Exported Project"
UNNAMED_TASK = "Unnamed Task"
UNKNOWN_RESOURCE = "Unknown Resource"
INDENT = "    "

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}
# Anything outside the XML 1.0 Char production.
_ILLEGAL_XML_CHARS = re.compile("[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


def escape_xml(text) -> str:
    """Drop characters XML 1.0 cannot carry, then escape the five metacharacters."""
    if text is None:
        return ""
    return escape(_ILLEGAL_XML_CHARS.sub("", str(text)), _XML_ENTITIES)


def _key(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ── Flatten ───────────────────────────────────────────────────────────────────


@dataclass
class _Node:
    task: ProjectTask
    parent: int | None = None
    children: list[int] = field(default_factory=list)


def _collect_nodes(tasks: list[ProjectTask]) -> list[_Node]:
    """Pre-order walk of the forest into an index-addressed arena."""
    nodes: list[_Node] = []
    stack = [(task, None) for task in reversed(tasks or [])]
    while stack:
        task, parent = stack.pop()
        index = len(nodes)
        nodes.append(_Node(task=task, parent=parent))
        for child in reversed(task.children or []):
            stack.append((child, index))
    return nodes


def _resolve_parents(nodes: list[_Node]):
    """Attach top-level tasks that name a parent, then break any cycle."""
    by_id: dict[str, int] = {}
    for index, node in enumerate(nodes):
        key = _key(node.task.id)
        if key is not None:
            by_id.setdefault(key, index)

    for index, node in enumerate(nodes):
        if node.parent is not None:
            continue
        target = by_id.get(_key(node.task.parent_id))
        if target is not None and target != index:
            node.parent = target

    for index in range(len(nodes)):
        seen = {index}
        current = index
        while nodes[current].parent is not None:
            nxt = nodes[current].parent
            if nxt in seen:
                logger.debug("Parent cycle at task %r, promoting to root", nodes[current].task.id)
                nodes[current].parent = None
                break
            seen.add(nxt)
            current = nxt

    for index, node in enumerate(nodes):
        if node.parent is not None:
            nodes[node.parent].children.append(index)


def _task_dates(task: ProjectTask) -> tuple[date | None, date | None, float | None]:
    start = codec.to_date(task.start_date)
    finish = codec.to_date(task.finish_date)
    if finish is None:
        finish = codec.inclusive_finish(task.end_date)

    duration = codec.to_number(task.duration)
    if duration is not None and duration < 0:
        duration = 0.0

    if start is not None and finish is None and duration:
        finish = codec.shift_days(start, max(math.ceil(duration) - 1, 0))
    if start is not None and finish is not None and finish < start:
        finish = start
    if duration is None:
        duration = codec.inclusive_day_count(start, finish)
    return start, finish, duration


def flatten_tasks(tasks: list[ProjectTask]) -> tuple[list[InterchangeTask], dict[str, int]]:
    """Number the forest in document order and classify every task.

    Returns the interchange tasks and a map from caller id to UID.
    """
    nodes = _collect_nodes(tasks)
    _resolve_parents(nodes)

    order: list[tuple[int, int, str]] = []  # (node index, outline level, outline number)
    roots = [i for i, node in enumerate(nodes) if node.parent is None]
    stack = [(i, 1, str(pos + 1)) for pos, i in reversed(list(enumerate(roots)))]
    while stack:
        index, level, number = stack.pop()
        order.append((index, level, number))
        children = nodes[index].children
        for pos in range(len(children) - 1, -1, -1):
            stack.append((children[pos], level + 1, f"{number}.{pos + 1}"))

    uid_of_node: dict[int, int] = {}
    id_to_uid: dict[str, int] = {}
    result: list[InterchangeTask] = []

    for uid, (index, level, number) in enumerate(order, start=1):
        node = nodes[index]
        task = node.task
        uid_of_node[index] = uid
        key = _key(task.id)
        if key is not None:
            id_to_uid.setdefault(key, uid)

        start, finish, duration = _task_dates(task)
        is_summary = bool(node.children)
        result.append(
            InterchangeTask(
                uid=uid,
                id=uid,
                name=task.name or UNNAMED_TASK,
                start=start,
                finish=finish,
                duration=duration or 0.0,
                percent_complete=codec.clamp_percent(task.percent_done),
                work=max(codec.to_number(task.effort) or 0.0, 0.0),
                outline_level=level,
                parent_uid=uid_of_node.get(node.parent) if node.parent is not None else None,
                notes=task.notes or None,
                external_id=normalize_external_id(task.external_id),
                is_summary=is_summary,
                is_milestone=not duration and not is_summary,
                wbs=number,
            )
        )

    return result, id_to_uid


def _attach_dependencies(
    tasks: list[InterchangeTask],
    dependencies: list[ProjectDependency],
    id_to_uid: dict[str, int],
) -> list[InterchangeDependency]:
    by_uid = {t.uid: t for t in tasks}
    links: list[InterchangeDependency] = []
    for dep in dependencies or []:
        from_uid = id_to_uid.get(_key(dep.from_task))
        to_uid = id_to_uid.get(_key(dep.to_task))
        if from_uid is None or to_uid is None or from_uid == to_uid:
            logger.debug("Dropping dependency %r -> %r", dep.from_task, dep.to_task)
            continue
        target = by_uid[to_uid]
        if any(p.predecessor_uid == from_uid for p in target.predecessors):
            continue
        wire_type = to_wire_link_type(dep.type)
        lag = codec.to_number(dep.lag) or None
        target.predecessors.append(PredecessorLink(from_uid, wire_type, lag))
        links.append(InterchangeDependency(from_uid, to_uid, wire_type, lag))
    return links


def _number_resources(resources: list[ProjectResource]) -> tuple[list[InterchangeResource], dict[str, int]]:
    result: list[InterchangeResource] = []
    key_to_uid: dict[str, int] = {}
    for index, resource in enumerate(resources or []):
        uid = index + 1
        email = _key(resource.email)
        result.append(
            InterchangeResource(
                uid=uid,
                id=uid,
                name=resource.name or email or UNKNOWN_RESOURCE,
                email=email,
            )
        )
        for key in (_key(resource.id), email, email.lower() if email else None):
            if key is not None:
                key_to_uid.setdefault(key, uid)
    return result, key_to_uid


def _number_assignments(
    assignments: list[ProjectAssignment],
    task_uids: dict[str, int],
    resource_uids: dict[str, int],
) -> list[InterchangeAssignment]:
    result: list[InterchangeAssignment] = []
    for assignment in assignments or []:
        task_uid = task_uids.get(_key(assignment.task_id))
        resource_key = _key(assignment.resource_id)
        resource_uid = resource_uids.get(resource_key)
        if resource_uid is None and resource_key is not None:
            resource_uid = resource_uids.get(resource_key.lower())
        if task_uid is None or resource_uid is None:
            logger.debug("Dropping assignment %r -> %r", assignment.task_id, assignment.resource_id)
            continue
        result.append(
            InterchangeAssignment(
                uid=len(result) + 1,
                task_uid=task_uid,
                resource_uid=resource_uid,
                units=codec.to_number(assignment.units) or 100.0,
                external_id=normalize_external_id(assignment.id),
            )
        )
    return result


def _project_dates(tasks: list[InterchangeTask], start_date) -> tuple[date, date]:
    starts = [t.start for t in tasks if t.start is not None]
    finishes = [t.finish for t in tasks if t.finish is not None]

    project_start = codec.to_date(start_date)
    if project_start is None:
        project_start = min(starts) if starts else date.today()

    if finishes:
        project_finish = max(finishes)
    elif starts:
        project_finish = max(starts)
    else:
        project_finish = project_start
    return project_start, max(project_finish, project_start)


def flatten_project(
    tasks: list[ProjectTask],
    resources: list[ProjectResource] | None = None,
    assignments: list[ProjectAssignment] | None = None,
    dependencies: list[ProjectDependency] | None = None,
    project_name: str | None = None,
    start_date=None,
) -> InterchangeProject:
    """Convert application records to numbered interchange records."""
    flat_tasks, task_uids = flatten_tasks(tasks)
    links = _attach_dependencies(flat_tasks, dependencies, task_uids)
    flat_resources, resource_uids = _number_resources(resources)
    flat_assignments = _number_assignments(assignments, task_uids, resource_uids)
    project_start, project_finish = _project_dates(flat_tasks, start_date)

    return InterchangeProject(
        project_name=project_name or DEFAULT_PROJECT_NAME,
        start_date=project_start,
        finish_date=project_finish,
        tasks=flat_tasks,
        resources=flat_resources,
        assignments=flat_assignments,
        dependencies=links,
    )


# ── XML builder ───────────────────────────────────────────────────────────────


def _se(parent, tag, text=None):
    """SubElement shorthand."""
    el = SubElement(parent, tag)
    if text is not None:
        el.text = str(text)
    return el


def _fill(parent, fields):
    for tag, value in fields:
        _se(parent, tag, value)


def build_header(root, project: InterchangeProject, now: datetime):
    start = codec.format_date(project.start_date)
    finish = codec.format_date(project.finish_date)
    stamp = now.strftime(codec.WIRE_DATETIME_FORMAT)
    _fill(root, [
        ("SaveVersion", "14"),
        ("Name", project.project_name),
        ("Title", project.project_name),
        ("ScheduleFromStart", "1"),
        ("StartDate", start),
        ("FinishDate", finish),
        ("FYStartDate", "1"),
        ("CriticalSlackLimit", "0"),
        ("CurrencyDigits", "2"),
        ("CurrencySymbol", "$"),
        ("CurrencyCode", "USD"),
        ("CurrencySymbolPosition", "0"),
        ("CalendarUID", "1"),
        ("DefaultStartTime", "08:00:00"),
        ("DefaultFinishTime", "17:00:00"),
        ("MinutesPerDay", str(codec.MINUTES_PER_DAY)),
        ("MinutesPerWeek", str(codec.MINUTES_PER_DAY * 5)),
        ("DaysPerMonth", "20"),
        ("DefaultTaskType", "1"),
        ("DefaultFixedCostAccrual", "2"),
        ("DefaultStandardRate", "0"),
        ("DefaultOvertimeRate", "0"),
        ("DurationFormat", "7"),
        ("WorkFormat", "2"),
        ("EditableActualCosts", "0"),
        ("HonorConstraints", "1"),
        ("InsertedProjectsLikeSummary", "1"),
        ("MultipleCriticalPaths", "0"),
        ("NewTasksEffortDriven", "1"),
        ("NewTasksEstimated", "1"),
        ("SplitsInProgressTasks", "1"),
        ("SpreadActualCost", "0"),
        ("SpreadPercentComplete", "0"),
        ("TaskUpdatesResource", "1"),
        ("FiscalYearStart", "0"),
        ("WeekStartDay", "0"),
        ("MoveCompletedEndsBack", "0"),
        ("MoveRemainingStartsBack", "0"),
        ("MoveRemainingStartsForward", "0"),
        ("MoveCompletedEndsForward", "0"),
        ("BaselineForEarnedValue", "0"),
        ("AutoAddNewResourcesAndTasks", "1"),
        ("CurrentDate", stamp),
        ("MicrosoftProjectServerURL", "1"),
        ("Autolink", "1"),
        ("NewTaskStartDate", "0"),
        ("NewTasksAreManual", "0"),
        ("DefaultTaskEVMethod", "0"),
        ("ProjectExternallyEdited", "0"),
        ("ExtendedCreationDate", stamp),
        ("ActualsInSync", "1"),
        ("RemoveFileProperties", "0"),
        ("AdminProject", "0"),
    ])

    definitions = _se(root, "ExtendedAttributes")
    for field_id, field_name, alias in EXTERNAL_ID_FIELDS:
        ea = _se(definitions, "ExtendedAttribute")
        _se(ea, "FieldID", field_id)
        _se(ea, "FieldName", field_name)
        _se(ea, "Alias", alias)


def build_calendar(parent):
    """Standard 5-day, 8-hour work-week calendar."""
    calendars = _se(parent, "Calendars")
    cal = _se(calendars, "Calendar")
    _se(cal, "UID", "1")
    _se(cal, "Name", "Standard")
    _se(cal, "IsBaseCalendar", "1")
    _se(cal, "IsBaselineCalendar", "0")

    week_days = _se(cal, "WeekDays")
    for day_num in range(1, 8):  # 1=Sun .. 7=Sat
        wd = _se(week_days, "WeekDay")
        _se(wd, "DayType", str(day_num))
        if day_num in (1, 7):
            _se(wd, "DayWorking", "0")
            continue
        _se(wd, "DayWorking", "1")
        wt = _se(wd, "WorkingTimes")
        for from_time, to_time in (("08:00:00", "12:00:00"), ("13:00:00", "17:00:00")):
            slot = _se(wt, "WorkingTime")
            _se(slot, "FromTime", from_time)
            _se(slot, "ToTime", to_time)


def _extended_attribute(parent, field_id: int, value: str):
    ea = _se(parent, "ExtendedAttribute")
    _se(ea, "FieldID", field_id)
    _se(ea, "Value", value)


def _build_task(tasks_el, task: InterchangeTask, stamp: str, summary_row: bool = False):
    start = codec.format_date(task.start)
    finish = codec.format_date(task.finish)
    duration = codec.format_duration(task.duration)
    work = codec.format_work(task.work)
    percent = codec.format_number(codec.round_half_up(task.percent_complete))

    t = _se(tasks_el, "Task")
    _fill(t, [
        ("UID", task.uid),
        ("ID", task.id),
        ("Name", task.name),
        ("Type", "1"),
        ("IsNull", "0"),
        ("CreateDate", stamp),
        ("WBS", task.wbs or task.id),
        ("OutlineNumber", task.wbs or task.id),
        ("OutlineLevel", task.outline_level),
        ("Priority", "500"),
        ("Start", start),
        ("Finish", finish),
        ("Duration", duration),
        ("DurationFormat", "7"),
        ("Work", work),
        ("ResumeValid", "0"),
        ("EffortDriven", "0" if summary_row else "1"),
        ("Recurring", "0"),
        ("OverAllocated", "0"),
        ("Estimated", "1" if summary_row else "0"),
        ("Milestone", "1" if task.is_milestone else "0"),
        ("Summary", "1" if task.is_summary else "0"),
        ("Critical", "0"),
        ("IsSubproject", "0"),
        ("IsSubprojectReadOnly", "0"),
        ("ExternalTask", "0"),
        ("EarlyStart", start),
        ("EarlyFinish", finish),
        ("LateStart", start),
        ("LateFinish", finish),
        ("StartVariance", "0"),
        ("FinishVariance", "0"),
        ("WorkVariance", "0"),
        ("FreeSlack", "0"),
        ("TotalSlack", "0"),
        ("FixedCost", "0"),
        ("FixedCostAccrual", "3"),
        ("PercentComplete", percent),
        ("PercentWorkComplete", percent),
        ("Cost", "0"),
        ("OvertimeCost", "0"),
        ("OvertimeWork", codec.ZERO_SPAN),
        ("ActualDuration", codec.ZERO_SPAN),
        ("ActualCost", "0"),
        ("ActualOvertimeCost", "0"),
        ("ActualWork", codec.ZERO_SPAN),
        ("ActualOvertimeWork", codec.ZERO_SPAN),
        ("RegularWork", work),
        ("RemainingDuration", duration),
        ("RemainingCost", "0"),
        ("RemainingWork", work),
        ("RemainingOvertimeCost", "0"),
        ("RemainingOvertimeWork", codec.ZERO_SPAN),
        ("ACWP", "0"),
        ("CV", "0"),
        ("ConstraintType", "0"),
        ("CalendarUID", "-1"),
        ("LevelAssignments", "1"),
        ("LevelingCanSplit", "1"),
        ("LevelingDelay", "0"),
        ("LevelingDelayFormat", "8"),
        ("IgnoreResourceCalendar", "0"),
    ])
    if task.notes:
        _se(t, "Notes", task.notes)
    _fill(t, [
        ("HideBar", "0"),
        ("Rollup", "0"),
        ("BCWS", "0"),
        ("BCWP", "0"),
        ("PhysicalPercentComplete", "0"),
        ("EarnedValueMethod", "0"),
    ])

    for link in task.predecessors:
        pl = _se(t, "PredecessorLink")
        _se(pl, "PredecessorUID", link.predecessor_uid)
        _se(pl, "Type", int(link.type))
        _se(pl, "CrossProject", "0")
        lag = codec.format_lag(link.lag)
        if lag is not None:
            _se(pl, "LinkLag", lag)
            _se(pl, "LagFormat", "7")

    if task.external_id:
        _extended_attribute(t, TASK_EXTERNAL_ID_FIELD, task.external_id)


def build_tasks(parent, project: InterchangeProject, stamp: str):
    """Build <Tasks> with the project summary row at UID 0."""
    tasks_el = _se(parent, "Tasks")
    summary = InterchangeTask(
        uid=0,
        id=0,
        name=project.project_name or DEFAULT_PROJECT_NAME,
        start=project.start_date,
        finish=project.finish_date,
        outline_level=0,
        is_summary=True,
        wbs="0",
    )
    _build_task(tasks_el, summary, stamp, summary_row=True)
    for task in project.tasks:
        _build_task(tasks_el, task, stamp)


def build_resources(parent, project: InterchangeProject):
    resources_el = _se(parent, "Resources")
    for resource in project.resources:
        r = _se(resources_el, "Resource")
        _fill(r, [
            ("UID", resource.uid),
            ("ID", resource.id),
            ("Name", resource.name),
            ("Type", "1"),  # work resource
            ("IsNull", "0"),
        ])
        if resource.email:
            _se(r, "EmailAddress", resource.email)
        _fill(r, [
            ("MaxUnits", "1"),
            ("PeakUnits", "1"),
            ("OverAllocated", "0"),
            ("CanLevel", "1"),
            ("AccrueAt", "3"),
            ("Work", codec.ZERO_SPAN),
            ("RegularWork", codec.ZERO_SPAN),
            ("OvertimeWork", codec.ZERO_SPAN),
            ("ActualWork", codec.ZERO_SPAN),
            ("RemainingWork", codec.ZERO_SPAN),
            ("ActualOvertimeWork", codec.ZERO_SPAN),
            ("RemainingOvertimeWork", codec.ZERO_SPAN),
            ("PercentWorkComplete", "0"),
            ("StandardRate", "0"),
            ("StandardRateFormat", "2"),
            ("Cost", "0"),
            ("OvertimeRate", "0"),
            ("OvertimeRateFormat", "2"),
            ("OvertimeCost", "0"),
            ("CostPerUse", "0"),
            ("CalendarUID", "1"),
            ("IsGeneric", "0"),
            ("IsInactive", "0"),
            ("IsEnterprise", "0"),
            ("BookingType", "0"),
            ("IsCostResource", "0"),
        ])


def build_assignments(parent, project: InterchangeProject, stamp: str):
    assignments_el = _se(parent, "Assignments")
    tasks = {t.uid: t for t in project.tasks}
    for assignment in project.assignments:
        task = tasks.get(assignment.task_uid)
        a = _se(assignments_el, "Assignment")
        _fill(a, [
            ("UID", assignment.uid),
            ("TaskUID", assignment.task_uid),
            ("ResourceUID", assignment.resource_uid),
            ("PercentWorkComplete", "0"),
            ("ActualCost", "0"),
            ("ActualOvertimeCost", "0"),
            ("ActualOvertimeWork", codec.ZERO_SPAN),
            ("ActualWork", codec.ZERO_SPAN),
            ("ACWP", "0"),
            ("Confirmed", "0"),
            ("Cost", "0"),
            ("CostRateTable", "0"),
            ("CostVariance", "0"),
            ("CV", "0"),
            ("Delay", "0"),
            ("Finish", codec.format_date(task.finish if task else None)),
            ("FinishVariance", "0"),
            ("HasFixedRateUnits", "1"),
            ("FixedMaterial", "0"),
            ("LevelingDelay", "0"),
            ("LevelingDelayFormat", "8"),
            ("LinkedFields", "0"),
            ("Milestone", "1" if task and task.is_milestone else "0"),
            ("Overallocated", "0"),
            ("OvertimeCost", "0"),
            ("OvertimeWork", codec.ZERO_SPAN),
            ("RegularWork", codec.ZERO_SPAN),
            ("RemainingCost", "0"),
            ("RemainingOvertimeCost", "0"),
            ("RemainingOvertimeWork", codec.ZERO_SPAN),
            ("RemainingWork", codec.ZERO_SPAN),
            ("ResponsePending", "0"),
            ("Start", codec.format_date(task.start if task else None)),
            ("StartVariance", "0"),
            ("Units", codec.format_number(assignment.units / 100, default="1")),
            ("Work", codec.ZERO_SPAN),
            ("WorkContour", "0"),
            ("BCWS", "0"),
            ("BCWP", "0"),
            ("BookingType", "0"),
            ("CreationDate", stamp),
        ])
        if assignment.external_id:
            _extended_attribute(a, ASSIGNMENT_EXTERNAL_ID_FIELD, assignment.external_id)


def build_project(project: InterchangeProject, now: datetime | None = None) -> Element:
    """Build the complete <Project> element tree."""
    now = now or datetime.now()
    stamp = now.strftime(codec.WIRE_DATETIME_FORMAT)

    root = Element("Project")
    root.set("xmlns", NS)
    build_header(root, project, now)
    build_calendar(root)
    build_tasks(root, project, stamp)
    build_resources(root, project)
    build_assignments(root, project, stamp)
    return root


def _serialize(el: Element, depth: int, out: list[str]):
    pad = INDENT * depth
    attrs = "".join(f' {k}="{escape_xml(v)}"' for k, v in el.attrib.items())
    children = list(el)
    if children:
        out.append(f"{pad}<{el.tag}{attrs}>")
        for child in children:
            _serialize(child, depth + 1, out)
        out.append(f"{pad}</{el.tag}>")
    else:
        out.append(f"{pad}<{el.tag}{attrs}>{escape_xml(el.text)}</{el.tag}>")


def to_xml_string(root: Element) -> str:
    out = ['<?xml version="1.0" encoding="UTF-8" standalone="yes"?>']
    _serialize(root, 0, out)
    return "\n".join(out) + "\n"


def generate_mspdi_xml(project: InterchangeProject, now: datetime | None = None) -> str:
    """Serialise interchange records to MSPDI text."""
    xml = to_xml_string(build_project(project, now))
    logger.info(
        "Exported %d tasks, %d resources, %d assignments",
        len(project.tasks), len(project.resources), len(project.assignments),
    )
    return xml


def export_project(
    tasks: list[ProjectTask],
    resources: list[ProjectResource] | None = None,
    assignments: list[ProjectAssignment] | None = None,
    dependencies: list[ProjectDependency] | None = None,
    project_name: str | None = None,
    start_date=None,
    now: datetime | None = None,
) -> str:
    """Flatten an application project and serialise it to MSPDI text."""
    project = flatten_project(tasks, resources, assignments, dependencies, project_name, start_date)
    return generate_mspdi_xml(project, now)


def export_snapshot(snapshot: Snapshot, project_name: str | None = None, now: datetime | None = None) -> str:
    return export_project(
        snapshot.tasks,
        snapshot.resources,
        snapshot.assignments,
        snapshot.dependencies,
        project_name or snapshot.project_name,
        snapshot.start_date,
        now,
    )
