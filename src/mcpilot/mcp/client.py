"""
Tool server client: one MCP server over stdio.

Lifecycle: stopped -> starting -> ready -> (invoking)* -> stopping -> stopped,
with failed reachable from any state on an unrecoverable I/O fault. A failed
client must be stopped (to release its channel) and may then be started again
or discarded by its owner.
"""

import asyncio
import logging
import os
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import anyio
from mcp.client.session import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client
from mcp.shared.exceptions import McpError

from ..errors import ServerStartError, ServerUnavailableError, ToolInvocationError
from .server_config import ToolServerConfig

logger = logging.getLogger(__name__)

# JSON-RPC error code the MCP SDK reports when the connection has closed
CONNECTION_CLOSED = -32000

_CHANNEL_ERRORS = (
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
    EOFError,
    OSError,
)


class ClientState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"
    STOPPING = "stopping"
    FAILED = "failed"


@dataclass(frozen=True)
class ToolResult:
    """Outcome of a tool invocation.

    Attributes:
        success: False when the server flagged the result as an error
        output: Text rendering of the content items
        content: Raw content items as dicts ({"type": "text", "text": ...}, ...)
        duration: Wall-clock seconds spent in the call
    """

    success: bool
    output: str
    content: List[Dict[str, Any]] = field(default_factory=list)
    duration: float = 0.0


def content_to_text(content: List[Dict[str, Any]]) -> str:
    """Render MCP content items as text, with placeholders for non-text items."""
    text_parts = []
    for item in content:
        item_type = item.get("type")
        if item_type == "text":
            text_parts.append(item.get("text", ""))
        elif item_type == "resource":
            resource = item.get("resource") or {}
            if resource.get("text") is not None:
                text_parts.append(resource["text"])
            else:
                mime_type = resource.get("mimeType") or "unknown"
                text_parts.append(f"[Resource: {resource.get('uri')} ({mime_type})]")
        elif item_type == "image":
            text_parts.append(f"[Image: {item.get('mimeType', 'image')}]")
        else:
            text_parts.append(f"[Unknown content: {item_type}]")
    return "\n".join(text_parts)


class ToolServerClient:
    """Client for one tool server reached over MCP stdio."""

    def __init__(self, config: ToolServerConfig):
        self.config = config
        self.state = ClientState.STOPPED
        self.session: Optional[ClientSession] = None
        self.last_error: Optional[str] = None
        self._exit_stack: Optional[AsyncExitStack] = None
        self._tools: List[Dict[str, Any]] = []
        self._call_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def tools(self) -> List[Dict[str, Any]]:
        """Capability list discovered at start()."""
        return list(self._tools)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    async def start(self) -> List[Dict[str, Any]]:
        """Launch the server, perform the handshake and fetch its capability list.

        Returns:
            Tool definitions with name, description and inputSchema.

        Raises:
            ServerStartError: If the process cannot be launched, the handshake
                times out, or the capability list cannot be fetched.
        """
        if self.state == ClientState.READY:
            return self.tools
        if self.state not in (ClientState.STOPPED, ClientState.FAILED):
            raise ServerStartError(
                f"Cannot start server '{self.name}' while {self.state.value}",
                details={"server_name": self.name, "state": self.state.value},
            )
        if self._exit_stack is not None:
            await self._release()

        self.state = ClientState.STARTING
        logger.debug("Starting tool server '%s': %s %s", self.name, self.config.server_command,
                     " ".join(self.config.server_args))
        try:
            server_params = StdioServerParameters(
                command=self.config.server_command,
                args=self.config.server_args,
                env=self._child_env(),
            )
            self._exit_stack = AsyncExitStack()
            read_stream, write_stream = await self._exit_stack.enter_async_context(
                stdio_client(server_params)
            )
            self.session = await self._exit_stack.enter_async_context(
                ClientSession(read_stream, write_stream)
            )
            await asyncio.wait_for(self.session.initialize(), timeout=self.config.timeout)
            self._tools = await asyncio.wait_for(
                self._fetch_tools(), timeout=self.config.timeout
            )
        except asyncio.CancelledError:
            await self._release()
            self.state = ClientState.STOPPED
            raise
        except Exception as e:
            await self._release()
            self.state = ClientState.FAILED
            self.last_error = str(e) or e.__class__.__name__
            raise ServerStartError(
                f"Failed to start tool server '{self.name}': {self.last_error}",
                details={"server_name": self.name},
            ) from e

        self.state = ClientState.READY
        logger.info("Tool server '%s' ready (%d tool(s))", self.name, len(self._tools))
        return self.tools

    async def list_tools(self) -> List[Dict[str, Any]]:
        """Re-query the server's capability list.

        Raises:
            ServerUnavailableError: If the client is not ready or the channel broke.
        """
        self._require_ready()
        try:
            self._tools = await self._fetch_tools()
        except _CHANNEL_ERRORS as e:
            raise self._channel_broken(e) from e
        return self.tools

    async def invoke(self, tool_name: str, arguments: Dict[str, Any]) -> ToolResult:
        """Execute a tool on the server. Calls on one client are serialized.

        Raises:
            ToolInvocationError: If the server rejects the call or flags the result as an error.
            ServerUnavailableError: If the client is not ready or the channel breaks mid-call.
        """
        self._require_ready()
        async with self._call_lock:
            self._require_ready()
            started = time.monotonic()
            try:
                response = await self.session.call_tool(tool_name, arguments)
            except McpError as e:
                if getattr(e.error, "code", None) == CONNECTION_CLOSED:
                    raise self._channel_broken(e) from e
                raise ToolInvocationError(
                    f"Server '{self.name}' rejected tool '{tool_name}': {e}",
                    details={"server_name": self.name, "tool_name": tool_name, "output": str(e)},
                ) from e
            except _CHANNEL_ERRORS as e:
                raise self._channel_broken(e) from e
            duration = time.monotonic() - started

        content = []
        for item in response.content:
            item_dict = {"type": item.type}
            item_dict.update(item.model_dump(exclude={"type"}))
            content.append(item_dict)
        output = content_to_text(content)

        if getattr(response, "isError", False):
            logger.warning("Tool '%s' on '%s' returned error: %s", tool_name, self.name, output)
            raise ToolInvocationError(
                f"Tool '{tool_name}' on server '{self.name}' failed: {output}",
                details={"server_name": self.name, "tool_name": tool_name, "output": output},
            )

        return ToolResult(success=True, output=output, content=content, duration=duration)

    async def stop(self) -> None:
        """Best-effort graceful shutdown. The channel is always released."""
        if self.state == ClientState.STOPPED and self._exit_stack is None:
            return
        self.state = ClientState.STOPPING
        try:
            await self._release()
        finally:
            self.state = ClientState.STOPPED
            self._tools = []
            logger.info("Tool server '%s' stopped", self.name)

    async def _fetch_tools(self) -> List[Dict[str, Any]]:
        response = await self.session.list_tools()
        return [
            {"name": tool.name, "description": tool.description, "inputSchema": tool.inputSchema}
            for tool in response.tools
        ]

    async def _release(self) -> None:
        exit_stack, self._exit_stack = self._exit_stack, None
        self.session = None
        if exit_stack is None:
            return
        try:
            await exit_stack.aclose()
        except Exception as e:
            logger.warning("Error while closing tool server '%s': %s", self.name, e)

    def _child_env(self) -> Optional[Dict[str, str]]:
        if not self.config.env:
            return None
        env = {"PATH": os.environ.get("PATH", "")}
        env.update(self.config.env)
        return env

    def _require_ready(self) -> None:
        if self.state != ClientState.READY or self.session is None:
            raise ServerUnavailableError(
                f"Tool server '{self.name}' is not ready (state: {self.state.value})",
                details={"server_name": self.name, "state": self.state.value},
            )

    def _channel_broken(self, error: BaseException) -> ServerUnavailableError:
        self.state = ClientState.FAILED
        self.last_error = str(error) or error.__class__.__name__
        logger.error("Channel to tool server '%s' broke: %s", self.name, self.last_error)
        return ServerUnavailableError(
            f"Tool server '{self.name}' became unavailable: {self.last_error}",
            details={"server_name": self.name},
        )
