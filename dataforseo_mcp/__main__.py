"""Main entry point for running the MCP server."""

from dataforseo_mcp.server import run

if __name__ == "__main__":
    run()
