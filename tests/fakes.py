"""Stand-ins for MCP SDK objects and the LLM collaborator."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

from mcpilot.providers.base import LLMProvider, LLMResponse


def make_tool(name, description="", input_schema=None):
    """Stand-in for an mcp.types.Tool."""
    tool = MagicMock()
    tool.name = name
    tool.description = description
    tool.inputSchema = input_schema or {"type": "object", "properties": {}}
    return tool


def make_text_content(text):
    """Stand-in for an mcp.types.TextContent."""
    item = MagicMock()
    item.type = "text"
    item.model_dump.return_value = {"text": text, "annotations": None}
    return item


def make_call_result(text, is_error=False):
    result = MagicMock()
    result.content = [make_text_content(text)]
    result.isError = is_error
    return result


def make_mcp_session(tools=(), call_result=None):
    """Mock ClientSession usable as an async context manager."""
    session = AsyncMock()
    session.__aenter__.return_value = session
    session.__aexit__.return_value = None
    session.initialize = AsyncMock()
    tools_response = MagicMock()
    tools_response.tools = list(tools)
    session.list_tools = AsyncMock(return_value=tools_response)
    session.call_tool = AsyncMock(return_value=call_result)
    return session


def fake_stdio_client(calls=None):
    """Replacement for mcp.client.stdio.stdio_client yielding dummy streams."""

    @asynccontextmanager
    async def _client(params):
        if calls is not None:
            calls.append(params)
        yield (MagicMock(name="read_stream"), MagicMock(name="write_stream"))

    return _client


class ScriptedProvider(LLMProvider):
    """LLM collaborator that replays canned replies and records what it saw."""

    name = "scripted"

    def __init__(self, replies):
        self.replies = list(replies)
        self.seen_sessions = []

    async def process_message(self, session):
        self.seen_sessions.append(session)
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, LLMResponse):
            return reply
        return LLMResponse(id=f"resp_{len(self.seen_sessions)}", text=reply)


def tool_marker(server, tool, arguments_json):
    return (
        "<use_mcp_tool>\n"
        f"<server_name>{server}</server_name>\n"
        f"<tool_name>{tool}</tool_name>\n"
        f"<arguments>\n{arguments_json}\n</arguments>\n"
        "</use_mcp_tool>"
    )


def internal_marker(tool, parameters_json):
    return (
        "<use_tool>\n"
        f"<tool_name>{tool}</tool_name>\n"
        f"<parameters>\n{parameters_json}\n</parameters>\n"
        "</use_tool>"
    )
