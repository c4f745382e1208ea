"""MCP server exposing the MS Project XML export and import tools."""

from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from project_interchange.config import get_config
from project_interchange.core import exporter as exporter_mod
from project_interchange.core import gantt as gantt_mod
from project_interchange.core import importer as importer_mod

mcp = FastMCP("project-interchange")


@mcp.tool()
def export_project_xml(snapshot: dict, project_name: str | None = None, embed_ids: bool = True) -> dict:
    """Export a Gantt project snapshot (tasks tree, resources, assignments,
    dependencies) to MS Project XML. Returns the document text."""
    try:
        project = gantt_mod.load_snapshot(snapshot, embed_ids=embed_ids)
    except gantt_mod.SnapshotError as e:
        return {"error": str(e)}
    name = project_name or project.project_name or get_config().project_name
    return {"project_name": name, "xml": exporter_mod.export_snapshot(project, name)}


@mcp.tool()
def import_project_xml(xml: str, gantt: bool = True) -> dict:
    """Parse MS Project XML. With gantt=True, returns Gantt application records
    (temporary import_<uid> ids, exclusive end dates); otherwise the raw rows."""
    try:
        project = importer_mod.parse_mspdi_xml(xml)
    except importer_mod.MspdiParseError as e:
        return {"error": str(e)}
    result = gantt_mod.to_gantt(project) if gantt else project
    return {"project_name": project.project_name, **gantt_mod.to_jsonable(result)}


@mcp.tool()
def outline_project_xml(xml: str) -> list[dict] | dict:
    """List the task outline of an MS Project XML document."""
    try:
        project = importer_mod.parse_mspdi_xml(xml)
    except importer_mod.MspdiParseError as e:
        return {"error": str(e)}
    return [
        {
            "uid": t.uid,
            "name": t.name,
            "outline_level": t.outline_level,
            "parent_uid": t.parent_uid,
            "summary": t.is_summary,
            "milestone": t.is_milestone,
            "external_id": t.external_id,
        }
        for t in project.tasks
    ]
