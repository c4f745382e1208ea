"""CLI entry point for project interchange."""

import json
import logging
import sys

import click

from project_interchange.config import get_config
from project_interchange.core import exporter as exporter_mod
from project_interchange.core import gantt as gantt_mod
from project_interchange.core import importer as importer_mod


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log codec activity to stderr")
def main(verbose):
    """pix - MS Project XML interchange for Gantt projects"""
    config = get_config()
    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _read_document(source) -> str:
    with click.open_file(source, "r", encoding="utf-8") as f:
        return f.read()


def _parse_or_exit(source):
    try:
        return importer_mod.parse_mspdi_xml(_read_document(source))
    except (importer_mod.MspdiParseError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


# ── Export ────────────────────────────────────────────────────────────────────


@main.command("export")
@click.argument("snapshot", type=click.Path(allow_dash=True))
@click.option("--output", "-o", default="-", type=click.Path(allow_dash=True), help="Where to write the XML")
@click.option("--name", default=None, help="Project title (overrides the snapshot)")
@click.option("--embed-ids/--no-embed-ids", default=True, help="Carry task and assignment ids for re-import")
def export_cmd(snapshot, output, name, embed_ids):
    """Export a JSON project snapshot to MS Project XML."""
    try:
        data = json.loads(_read_document(snapshot))
        project = gantt_mod.load_snapshot(data, embed_ids=embed_ids)
    except (ValueError, OSError) as e:
        click.echo(f"Error: could not read snapshot: {e}", err=True)
        sys.exit(1)

    xml = exporter_mod.export_snapshot(project, name or project.project_name or get_config().project_name)
    with click.open_file(output, "w", encoding="utf-8") as f:
        f.write(xml)
    if output != "-":
        click.echo(f"Exported {_count_tasks(project.tasks)} tasks to {output}")


def _count_tasks(tasks) -> int:
    return sum(1 + _count_tasks(t.children) for t in tasks)


# ── Import ────────────────────────────────────────────────────────────────────


@main.command("import")
@click.argument("document", type=click.Path(allow_dash=True))
@click.option("--gantt", "gantt_output", is_flag=True, help="Emit Gantt application records instead of raw rows")
def import_cmd(document, gantt_output):
    """Parse an MS Project XML file and print its records as JSON."""
    project = _parse_or_exit(document)
    result = gantt_mod.to_gantt(project) if gantt_output else project
    click.echo(json.dumps(gantt_mod.to_jsonable(result), indent=2))


@main.command("inspect")
@click.argument("document", type=click.Path(allow_dash=True))
def inspect_cmd(document):
    """Print the task outline of an MS Project XML file."""
    project = _parse_or_exit(document)
    click.echo(f"Project: {project.project_name}")
    if project.start_date:
        click.echo(f"  Start: {project.start_date.isoformat()}")

    if not project.tasks:
        click.echo("No tasks found.")
        return

    for task in project.tasks:
        indent = "  " * task.outline_level
        marker = "▸" if task.is_summary else ("◆" if task.is_milestone else "•")
        ext = f" [id: {task.external_id}]" if task.external_id else ""
        click.echo(f"{indent}{marker} {task.uid}: {task.name} ({task.duration:g}d){ext}")

    click.echo(
        f"{len(project.tasks)} tasks, {len(project.resources)} resources, "
        f"{len(project.assignments)} assignments, {len(project.dependencies)} dependencies"
    )


# ── Server ────────────────────────────────────────────────────────────────────


@main.command("serve")
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to listen on")
def serve_command(host, port):
    """Run the HTTP export/import API."""
    from project_interchange.web.app import run_server

    config = get_config()
    host = host or config.host
    port = port or config.port
    click.echo(f"Serving interchange API at http://{host}:{port}")
    run_server(host=host, port=port)


# ── MCP Server Command ───────────────────────────────────────────────────────


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport)."""
    from project_interchange.mcp.server import mcp

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
