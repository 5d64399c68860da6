"""
Import a local graph export into a running server.

Usage:
  1. Export the local graph with the read_graph tool and save the JSON result.
  2. memory-mcp-migrate local-memory.json --url https://memory.example.com --api-key KEY
"""

import argparse
import json
import logging
import os
import sys

import httpx

from memory_mcp.errors import ValidationError
from memory_mcp.models import GraphSnapshot, parse

logger = logging.getLogger(__name__)

DEFAULT_URL = os.environ.get("MEMORY_URL", "http://localhost:8099")

def load_snapshot(path):
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return parse(GraphSnapshot, data)

def migrate(snapshot, url, api_key="", client=None):
    """POST ``snapshot`` to ``url``/api/import. Returns the server's JSON reply."""
    headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
    payload = snapshot.model_dump(by_alias=True)
    own = client is None
    client = client or httpx.Client(timeout=60)
    try:
        response = client.post(f"{url.rstrip('/')}/api/import", json=payload, headers=headers)
        response.raise_for_status()
        return response.json()
    finally:
        if own:
            client.close()

def main(argv=None):
    parser = argparse.ArgumentParser(description="Import a graph snapshot into a memory_mcp server")
    parser.add_argument("file", help="snapshot JSON: {entities:[...], relations:[...]}")
    parser.add_argument("--url", default=DEFAULT_URL, help=f"server base URL (default: {DEFAULT_URL})")
    parser.add_argument("--api-key", default=os.environ.get("MEMORY_API_KEY", ""))
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s - %(message)s", stream=sys.stderr)

    if not os.path.exists(args.file):
        logger.error("No snapshot found at %s. Export it with the read_graph tool first.", args.file)
        return 1
    try:
        snapshot = load_snapshot(args.file)
    except (ValueError, ValidationError) as e:
        logger.error("Invalid snapshot %s: %s", args.file, e)
        return 1

    logger.info("Found %d entities and %d relations", len(snapshot.entities), len(snapshot.relations))
    for entity in snapshot.entities:
        logger.info("  - %s (%s): %d observations", entity.name, entity.entity_type, len(entity.observations))

    logger.info("Importing to %s/api/import", args.url.rstrip("/"))
    try:
        result = migrate(snapshot, args.url, args.api_key)
    except httpx.HTTPError as e:
        logger.error("Import failed: %s", e)
        return 1
    logger.info("Import successful: %s", result)
    return 0

if __name__ == "__main__":
    sys.exit(main())
