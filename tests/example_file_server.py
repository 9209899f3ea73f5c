"""Minimal MCP file server used by the integration tests.

Usage: python example_file_server.py ROOT_DIR
"""

import sys
from pathlib import Path

from mcp.server.fastmcp import FastMCP

ROOT = Path(sys.argv[1]) if len(sys.argv) > 1 else Path.cwd()

mcp = FastMCP("example-server")


@mcp.tool(name="file-reader", description="Read a text file")
def read_file(path: str) -> str:
    return (ROOT / path).read_text(encoding="utf-8")


if __name__ == "__main__":
    mcp.run(transport="stdio")
