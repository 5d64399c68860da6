"""
Tool registry and JSON-RPC 2.0 dispatch for the tool-call surface.

The eight tools form a closed set: each entry names its argument model (which
also yields the advertised input schema) and the handler that runs it against
an open connection. Requests are handled statelessly; ``initialize`` is
answered but no session is kept.
"""

import json
import logging
from typing import Any, Callable, NamedTuple, Type

from pydantic import BaseModel

from memory_mcp import __version__, graph, search
from memory_mcp.db import get_db
from memory_mcp.errors import GraphError, MethodNotFoundError
from memory_mcp.models import (
    AddObservationsArgs,
    CreateEntitiesArgs,
    CreateRelationsArgs,
    DeleteEntitiesArgs,
    DeleteRelationsArgs,
    OpenNodesArgs,
    ReadGraphArgs,
    SearchNodesArgs,
    parse,
)

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_INFO = {"name": "memory-mcp", "version": __version__}

METHOD_NOT_FOUND = -32601
EXECUTION_ERROR = -32000
PARSE_ERROR = -32700
INVALID_REQUEST = -32600

# --- Helpers ---

def compact(d):
    return json.dumps(d, ensure_ascii=False, separators=(',', ':'))


class Tool(NamedTuple):
    description: str
    args: Type[BaseModel]
    run: Callable[[Any, Any], dict]

# --- Registry ---

TOOLS = {
    "create_entities": Tool(
        "Create multiple new entities in the knowledge graph",
        CreateEntitiesArgs,
        lambda db, a: {"success": True, "created": graph.create_entities(db, a.entities)}),
    "create_relations": Tool(
        "Create relations between entities",
        CreateRelationsArgs,
        lambda db, a: {"success": True, "created": graph.create_relations(db, a.relations)}),
    "add_observations": Tool(
        "Add observations to existing entities",
        AddObservationsArgs,
        lambda db, a: {"success": True, "added": graph.add_observations(db, a.observations)}),
    "read_graph": Tool(
        "Read the entire knowledge graph",
        ReadGraphArgs,
        lambda db, a: graph.read_graph(db)),
    "search_nodes": Tool(
        "Search for nodes by query",
        SearchNodesArgs,
        lambda db, a: search.search(db, a.query)),
    "open_nodes": Tool(
        "Open specific nodes by name",
        OpenNodesArgs,
        lambda db, a: {"entities": graph.open_nodes(db, a.names)}),
    "delete_entities": Tool(
        "Delete entities from the graph",
        DeleteEntitiesArgs,
        lambda db, a: {"success": True, "deleted": graph.delete_entities(db, a.entity_names)}),
    "delete_relations": Tool(
        "Delete relations from the graph",
        DeleteRelationsArgs,
        lambda db, a: {"success": True, "deleted": graph.delete_relations(db, a.relations)}),
}

def list_tools():
    return [{"name": name, "description": t.description,
             "inputSchema": t.args.model_json_schema(by_alias=True)}
            for name, t in TOOLS.items()]

def call_tool(name, arguments):
    """Validate ``arguments`` for tool ``name`` and run it. Returns the plain result."""
    tool = TOOLS.get(name)
    if tool is None:
        raise MethodNotFoundError(f"Tool not found: {name}")
    args = parse(tool.args, arguments if arguments is not None else {})
    db = get_db()
    try:
        return tool.run(db, args)
    finally:
        db.close()

# --- JSON-RPC ---

def _initialize(params):
    return {"protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": SERVER_INFO}

def _tools_call(params):
    result = call_tool(params.get("name"), params.get("arguments"))
    return {"content": [{"type": "text", "text": compact(result)}]}

METHODS = {
    "initialize": _initialize,
    "ping": lambda params: {},
    "tools/list": lambda params: {"tools": list_tools()},
    "tools/call": _tools_call,
}

def error_response(req_id, code, message):
    return {"jsonrpc": "2.0", "id": req_id, "error": {"code": code, "message": message}}

def handle_rpc(message):
    """Answer one JSON-RPC message. Returns None for notifications."""
    if not isinstance(message, dict):
        return error_response(None, INVALID_REQUEST, "Invalid Request")
    req_id = message.get("id")
    method = message.get("method")
    if "id" not in message and isinstance(method, str) and method.startswith("notifications/"):
        return None
    params = message.get("params")
    if not isinstance(params, dict):
        params = {}
    try:
        handler = METHODS.get(method)
        if handler is None:
            raise MethodNotFoundError(f"Method not found: {method}")
        return {"jsonrpc": "2.0", "id": req_id, "result": handler(params)}
    except MethodNotFoundError as e:
        return error_response(req_id, METHOD_NOT_FOUND, str(e))
    except GraphError as e:
        logger.warning("%s failed: %s", method, e)
        return error_response(req_id, EXECUTION_ERROR, str(e))
    except Exception as e:
        logger.exception("Unexpected failure handling %s", method)
        return error_response(req_id, EXECUTION_ERROR, str(e))
