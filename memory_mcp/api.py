"""
HTTP routes mounted on the MCP server's Starlette app.

REST resources under /api, the JSON-RPC endpoint at /mcp and its SSE
companion at /mcp/sse. Database work runs in the threadpool with a
connection per request.
"""

import functools
import hmac
import json
import logging
import os

from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse, Response

from memory_mcp import __version__, graph, search, tools
from memory_mcp.db import get_db
from memory_mcp.errors import NotFoundError, StorageError, ValidationError
from memory_mcp.models import (
    ContentsInput,
    EntityInput,
    GraphSnapshot,
    RelationInput,
    parse,
)

logger = logging.getLogger(__name__)

API_KEY = os.environ.get("MEMORY_API_KEY", "")

SSE_ENDPOINT_EVENT = "event: endpoint\ndata: /mcp\n\n"

# --- Helpers ---

def _authorized(request):
    if not API_KEY:
        return True
    auth = request.headers.get("authorization", "")
    key = auth[7:] if auth.startswith("Bearer ") else request.headers.get("x-api-key", "")
    return hmac.compare_digest(key.encode(), API_KEY.encode())

def _with_db(fn, *args):
    db = get_db()
    try:
        return fn(db, *args)
    finally:
        db.close()

async def _run(fn, *args):
    return await run_in_threadpool(_with_db, fn, *args)

async def _body(request):
    try:
        return await request.json()
    except ValueError as e:
        raise ValidationError("Invalid JSON body") from e

def protected(handler):
    """Require the API key, when one is configured."""
    @functools.wraps(handler)
    async def wrapper(request):
        if not _authorized(request):
            return JSONResponse({"error": "Unauthorized", "message": "Invalid or missing API key"},
                                status_code=401)
        return await handler(request)
    return wrapper

def rest(handler):
    """API key check plus mapping of graph errors onto JSON error responses."""
    @protected
    @functools.wraps(handler)
    async def wrapper(request):
        try:
            return await handler(request)
        except ValidationError as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        except NotFoundError:
            return JSONResponse({"error": "Entity not found"}, status_code=404)
        except StorageError as e:
            logger.exception("Storage failure on %s %s", request.method, request.url.path)
            return JSONResponse({"error": str(e)}, status_code=500)
    return wrapper

# --- REST ---

async def health(request):
    return JSONResponse({"name": "Memory MCP Server", "version": __version__,
                         "endpoints": {"mcp": "/mcp (JSON-RPC), /mcp/sse, /mcp/stream (streamable HTTP)",
                                       "api": "/api/* (REST API)"}})

@rest
async def list_entities(request):
    return JSONResponse(await _run(graph.get_all_entities, "updated"))

@rest
async def get_entity(request):
    return JSONResponse(await _run(graph.get_entity, request.path_params["name"]))

@rest
async def create_entity(request):
    entity = parse(EntityInput, await _body(request))
    entity_id = await _run(graph.create_entity, entity)
    return JSONResponse({"success": True, "id": entity_id})

@rest
async def add_observations(request):
    body = parse(ContentsInput, await _body(request))
    added = await _run(graph.append_observations, request.path_params["name"], body.contents)
    return JSONResponse({"success": True, "added": added})

@rest
async def delete_entity(request):
    name = request.path_params["name"]
    await _run(graph.delete_entity, name)
    return JSONResponse({"success": True, "deleted": name})

@rest
async def list_relations(request):
    return JSONResponse(await _run(graph.get_relations))

@rest
async def create_relation(request):
    rel = parse(RelationInput, await _body(request))
    await _run(graph.create_relation, rel)
    return JSONResponse({"success": True})

@rest
async def delete_relation(request):
    rel = parse(RelationInput, await _body(request))
    deleted = await _run(graph.delete_relation, rel)
    return JSONResponse({"success": True, "deleted": deleted})

@rest
async def search_graph(request):
    query = request.query_params.get("q")
    if not query:
        raise ValidationError("Query required")
    return JSONResponse(await _run(search.search, query))

@rest
async def full_graph(request):
    return JSONResponse(await _run(graph.read_graph))

@rest
async def import_graph(request):
    snapshot = parse(GraphSnapshot, await _body(request))
    counts = await _run(graph.bulk_import, snapshot)
    return JSONResponse({"success": True, "imported": counts})

# --- MCP over plain HTTP ---

@protected
async def rpc(request):
    try:
        message = json.loads(await request.body())
    except ValueError:
        return JSONResponse(tools.error_response(None, tools.PARSE_ERROR, "Parse error"))
    response = await run_in_threadpool(tools.handle_rpc, message)
    if response is None:
        return Response(status_code=202)
    return JSONResponse(response)

@protected
async def rpc_events(request):
    return Response(SSE_ENDPOINT_EVENT, media_type="text/event-stream",
                    headers={"Cache-Control": "no-cache", "Connection": "keep-alive"})

ROUTES = [
    ("/", ["GET"], health),
    ("/api/entities", ["GET"], list_entities),
    ("/api/entities", ["POST"], create_entity),
    ("/api/entities/{name}", ["GET"], get_entity),
    ("/api/entities/{name}", ["DELETE"], delete_entity),
    ("/api/entities/{name}/observations", ["POST"], add_observations),
    ("/api/relations", ["GET"], list_relations),
    ("/api/relations", ["POST"], create_relation),
    ("/api/relations", ["DELETE"], delete_relation),
    ("/api/search", ["GET"], search_graph),
    ("/api/graph", ["GET"], full_graph),
    ("/api/import", ["POST"], import_graph),
    ("/mcp", ["POST"], rpc),
    ("/mcp/sse", ["GET"], rpc_events),
]

def register_routes(mcp):
    for path, methods, handler in ROUTES:
        mcp.custom_route(path, methods=methods)(handler)
