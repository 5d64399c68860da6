"""
memory_mcp - Knowledge Graph Memory Server

Named entities with free-text observations and typed directed relations,
persisted in SQLite with full-text search over observations.

Surfaces:
  MCP tools   create_entities, create_relations, add_observations, read_graph,
              search_nodes, open_nodes, delete_entities, delete_relations
              (streamable HTTP at /mcp/stream, stdio, or JSON-RPC at /mcp)
  REST        /api/entities, /api/relations, /api/search, /api/graph, /api/import
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import List

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.server import TransportSecuritySettings

from memory_mcp import api, db
from memory_mcp.models import (
    AddObservationsArgs,
    CreateEntitiesArgs,
    CreateRelationsArgs,
    DeleteEntitiesArgs,
    DeleteRelationsArgs,
    EntityInput,
    ObservationInput,
    OpenNodesArgs,
    ReadGraphArgs,
    RelationInput,
    SearchNodesArgs,
)
from memory_mcp.tools import TOOLS, compact

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(__name__)

def configure_logging():
    logging.basicConfig(
        level=os.environ.get("MEMORY_LOG_LEVEL", "INFO").upper(),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
    )
    logging.getLogger("mcp.server.streamable_http_manager").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

# --- Lifespan ---

@asynccontextmanager
async def app_lifespan(app):
    db.init_db()
    yield {}

# --- Server ---

mcp = FastMCP(
    "memory_mcp",
    lifespan=app_lifespan,
    host=os.environ.get("MEMORY_HOST", "0.0.0.0"),
    port=int(os.environ.get("MEMORY_PORT", "8099")),
    streamable_http_path="/mcp/stream",
    stateless_http=True,
    transport_security=TransportSecuritySettings(enable_dns_rebinding_protection=False),
)

api.register_routes(mcp)

def _call(name, args):
    conn = db.get_db()
    try:
        return compact(TOOLS[name].run(conn, args))
    finally:
        conn.close()

# ============================================================
# GRAPH TOOLS
# ============================================================

@mcp.tool(name="create_entities")
async def create_entities(entities: List[EntityInput]) -> str:
    """Create entities. Existing names are kept; their observations are appended. Returns {success,created}."""
    return _call("create_entities", CreateEntitiesArgs(entities=entities))

@mcp.tool(name="create_relations")
async def create_relations(relations: List[RelationInput]) -> str:
    """Create directed relations {from,to,relationType}. Pairs with a missing endpoint are skipped."""
    return _call("create_relations", CreateRelationsArgs(relations=relations))

@mcp.tool(name="add_observations")
async def add_observations(observations: List[ObservationInput]) -> str:
    """Append observations [{entityName,contents}] to existing entities. Returns {success,added}."""
    return _call("add_observations", AddObservationsArgs(observations=observations))

@mcp.tool(name="read_graph")
async def read_graph() -> str:
    """Whole graph. Returns {entities:[{name,entityType,observations}],relations:[{from,to,relationType}]}."""
    return _call("read_graph", ReadGraphArgs())

@mcp.tool(name="search_nodes")
async def search_nodes(query: str) -> str:
    """Substring match on name/type plus full-text match on observations. Returns {entities,observations}."""
    return _call("search_nodes", SearchNodesArgs(query=query))

@mcp.tool(name="open_nodes")
async def open_nodes(names: List[str]) -> str:
    """Entities by name with observations. Unknown names are left out."""
    return _call("open_nodes", OpenNodesArgs(names=names))

@mcp.tool(name="delete_entities")
async def delete_entities(entityNames: List[str]) -> str:
    """Delete entities with their observations and relations. Destructive."""
    return _call("delete_entities", DeleteEntitiesArgs(entity_names=entityNames))

@mcp.tool(name="delete_relations")
async def delete_relations(relations: List[RelationInput]) -> str:
    """Delete relation triples."""
    return _call("delete_relations", DeleteRelationsArgs(relations=relations))

# --- Entry ---

def main():
    configure_logging()
    db.init_db()
    transport = os.environ.get("MEMORY_TRANSPORT", "streamable-http")
    logger.info("Starting memory_mcp (%s), database %s", transport, db.DB_PATH)
    mcp.run(transport=transport)

if __name__ == "__main__":
    main()
