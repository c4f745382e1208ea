"""HTTP API for exporting and importing MS Project XML."""

import json
import logging
import re
from urllib.parse import quote

import uvicorn
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from project_interchange.config import get_config
from project_interchange.core import exporter as exporter_mod
from project_interchange.core import gantt as gantt_mod
from project_interchange.core import importer as importer_mod

logger = logging.getLogger(__name__)

XML_MEDIA_TYPE = "application/xml"


def _filename(project_name: str) -> str:
    slug = re.sub(r"[^\w\s-]", "", project_name, flags=re.ASCII).strip()
    slug = re.sub(r"[\s]+", "_", slug)
    return f"{slug or 'project'}.xml"


def _content_disposition(project_name: str) -> str:
    """ASCII ``filename`` plus RFC 5987 ``filename*`` carrying the real name."""
    real_name = re.sub(r"[\s]+", "_", project_name.strip()) or "project"
    encoded = quote(f"{real_name}.xml", safe="")
    return f"attachment; filename=\"{_filename(project_name)}\"; filename*=UTF-8''{encoded}"


async def _read_body(request: Request, limit: int) -> bytes | None:
    """Read the request body, or None once it exceeds ``limit`` bytes."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        return None

    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


# ── Handlers ──────────────────────────────────────────────────────────────────


async def api_health(request: Request):
    return JSONResponse({"status": "ok"})


async def api_export(request: Request):
    config = get_config()
    body = await _read_body(request, config.max_upload_bytes)
    if body is None:
        return JSONResponse({"error": "Snapshot too large"}, status_code=413)

    try:
        snapshot = gantt_mod.load_snapshot(
            json.loads(body or b"{}"),
            embed_ids=request.query_params.get("embed_ids", "1") != "0",
        )
    except ValueError as e:
        return JSONResponse({"error": f"Invalid snapshot: {e}"}, status_code=400)

    name = request.query_params.get("name") or snapshot.project_name or config.project_name
    xml = exporter_mod.export_snapshot(snapshot, name)
    return Response(
        xml,
        media_type=XML_MEDIA_TYPE,
        headers={"Content-Disposition": _content_disposition(name)},
    )


async def api_import(request: Request):
    config = get_config()
    body = await _read_body(request, config.max_upload_bytes)
    if body is None:
        return JSONResponse({"error": "Document too large"}, status_code=413)
    if not body.strip():
        return JSONResponse(
            {"error": "No document uploaded. Export the project from MS Project as XML and upload that file."},
            status_code=400,
        )

    try:
        project = await run_in_threadpool(importer_mod.parse_mspdi_xml, body)
    except importer_mod.MspdiParseError as e:
        logger.warning("Rejected import: %s", e)
        return JSONResponse({"error": str(e)}, status_code=400)

    return JSONResponse({
        "project": gantt_mod.to_jsonable(project),
        "gantt": gantt_mod.to_jsonable(gantt_mod.to_gantt(project)),
    })


# ── App ───────────────────────────────────────────────────────────────────────


def create_app() -> Starlette:
    routes = [
        Route("/api/health", api_health),
        Route("/api/export", api_export, methods=["POST"]),
        Route("/api/import", api_import, methods=["POST"]),
    ]
    return Starlette(routes=routes)


def run_server(host: str = "127.0.0.1", port: int = 8788):
    app = create_app()
    uvicorn.run(app, host=host, port=port)
