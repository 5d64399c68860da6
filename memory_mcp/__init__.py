"""memory_mcp - persistent knowledge graph behind a REST API and MCP tools."""

__version__ = "1.0.0"
