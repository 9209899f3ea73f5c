"""
Tool hub against a real MCP server process (tests/example_file_server.py).
"""

import logging
import sys
from pathlib import Path

import pytest

from mcpilot.errors import ToolInvocationError
from mcpilot.mcp.hub import ToolHub
from mcpilot.mcp.server_config import ToolServerConfig

SERVER_SCRIPT = Path(__file__).with_name("example_file_server.py")
CLOSE_WARNING = "Error while closing tool server"

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


@pytest.fixture
def hub(tmp_path):
    (tmp_path / "example.txt").write_text("Hello from a real server.\n", encoding="utf-8")
    config = ToolServerConfig(
        name="example-server",
        server_command=sys.executable,
        server_args=[str(SERVER_SCRIPT), str(tmp_path)],
        timeout=30,
        always_allow=["file-reader"],
    )
    return ToolHub([config])


async def test_call_tool_then_stop_cleanly(hub, caplog):
    with caplog.at_level(logging.WARNING):
        assert await hub.start_all() == ["example-server"]
        try:
            entry = hub.catalog.get("example-server", "file-reader")
            result = await hub.call_tool("example-server", "file-reader", {"path": "example.txt"})
            with pytest.raises(ToolInvocationError):
                await hub.call_tool("example-server", "file-reader", {"path": "missing.txt"})
        finally:
            await hub.stop_all()

    assert entry.description == "Read a text file"
    assert result.success
    assert result.output == "Hello from a real server.\n"
    assert not hub.started
    assert CLOSE_WARNING not in caplog.text


async def test_restart_server_reconnects(hub, caplog):
    with caplog.at_level(logging.WARNING):
        await hub.start_all()
        try:
            assert await hub.restart_server("example-server")
            result = await hub.call_tool("example-server", "file-reader", {"path": "example.txt"})
        finally:
            await hub.stop_all()

    assert result.output == "Hello from a real server.\n"
    assert CLOSE_WARNING not in caplog.text
