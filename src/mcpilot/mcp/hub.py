"""
Tool hub: owns one ToolServerClient per configured server.

The hub starts every configured server (one after another in the calling
task, tolerating individual failures), aggregates their capability lists
into a single ToolCatalog, and routes call_tool() to the owning client after
consulting the approval gate.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from ..errors import (
    ApprovalRequiredError,
    ServerStartError,
    ServerUnavailableError,
    UnknownServerError,
    UnknownToolError,
)
from .catalog import ToolCatalog, ToolEntry
from .client import ClientState, ToolResult, ToolServerClient
from .server_config import ToolServerConfig

logger = logging.getLogger(__name__)

# (server_name, tool_name, arguments) -> approved?
Approver = Callable[[str, str, Dict[str, Any]], Union[bool, Awaitable[bool]]]


class ToolHub:
    """Manager for a named set of tool servers."""

    def __init__(
        self,
        configs: Iterable[ToolServerConfig] = (),
        auto_approve: bool = False,
        approver: Optional[Approver] = None,
    ):
        """Initialize the hub.

        Args:
            configs: Server configurations to register
            auto_approve: Dispatch every call without consulting the approval gate
            approver: Asked for calls that are neither auto-approved nor
                always-allowed; without one such calls are rejected
        """
        self._servers: Dict[str, ToolServerConfig] = {}
        self._clients: Dict[str, ToolServerClient] = {}
        self._start_errors: Dict[str, str] = {}
        self._started = False
        self.catalog = ToolCatalog()
        self.auto_approve = auto_approve
        self.approver = approver

        for config in configs:
            self.add_server(config)

    def add_server(self, config: ToolServerConfig) -> None:
        """Register a server configuration.

        Raises:
            ValueError: If the name is already registered or the config is invalid
        """
        if config.name in self._servers:
            raise ValueError(f"Server '{config.name}' is already registered")

        issues = config.validate()
        if issues:
            raise ValueError(f"Invalid server configuration: {', '.join(issues)}")

        self._servers[config.name] = config
        logger.debug(f"Added server: {config.name}")

    @property
    def started(self) -> bool:
        return self._started

    def server_names(self) -> List[str]:
        """All configured server names, in registration order."""
        return list(self._servers)

    def available_servers(self) -> List[str]:
        """Servers whose client is ready."""
        return [
            name for name, client in self._clients.items() if client.state == ClientState.READY
        ]

    def start_errors(self) -> Dict[str, str]:
        """Servers that failed to start, mapped to the failure message."""
        return dict(self._start_errors)

    async def __aenter__(self):
        await self.start_all()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop_all()

    async def start_all(self) -> List[str]:
        """Start all registered servers.

        Servers start one at a time in the calling task: each client's MCP
        session holds task-bound cancel scopes that stop_all() later exits.
        A server that fails to start is logged and left out of the catalog;
        the others keep running.

        Returns:
            Names of the servers that started.

        Raises:
            RuntimeError: If servers are already started
        """
        if self._started:
            raise RuntimeError("Servers are already started")

        logger.info(f"Starting {len(self._servers)} tool server(s)...")
        self._started = True
        started = []
        for name in self._servers:
            if await self._start_server(name):
                started.append(name)

        if len(started) < len(self._servers):
            logger.warning(
                "%d of %d tool server(s) started; unavailable: %s",
                len(started),
                len(self._servers),
                ", ".join(sorted(self._start_errors)),
            )
        else:
            logger.info("All tool servers started successfully")
        return started

    async def _start_server(self, name: str) -> bool:
        config = self._servers[name]
        client = ToolServerClient(config)
        try:
            tools = await client.start()
        except ServerStartError as e:
            logger.warning(f"Failed to start server '{name}': {e.message}")
            self._start_errors[name] = e.message
            await client.stop()
            return False

        self._clients[name] = client
        self._start_errors.pop(name, None)
        self.catalog.register_server_tools(name, tools, always_allow=config.always_allow)
        logger.info(f"Started server: {name}")
        return True

    async def restart_server(self, name: str) -> bool:
        """Discard a server's client (e.g. after a channel failure) and start a fresh one.

        Raises:
            UnknownServerError: If the server is not configured
        """
        if name not in self._servers:
            raise UnknownServerError(name)

        client = self._clients.pop(name, None)
        self.catalog.remove_server(name)
        if client is not None:
            await client.stop()
        return await self._start_server(name)

    def get_all_tools(self) -> List[dict]:
        """Aggregated tool list from all ready servers."""
        return self.catalog.to_list()

    async def call_tool(
        self, server_name: str, tool_name: str, arguments: Optional[Dict[str, Any]] = None
    ) -> ToolResult:
        """Execute a tool on the named server.

        The client's result is returned unchanged; nothing is retried here.

        Raises:
            UnknownServerError: If server_name is not configured
            ServerUnavailableError: If the server is configured but not running
            UnknownToolError: If the server does not report tool_name
            ApprovalRequiredError: If the approval gate rejects the call
            ToolInvocationError: If the server rejects the call
        """
        arguments = arguments or {}
        if server_name not in self._servers:
            raise UnknownServerError(server_name)

        client = self._clients.get(server_name)
        if client is None:
            reason = self._start_errors.get(server_name, "not started")
            raise ServerUnavailableError(
                f"Tool server '{server_name}' is not running: {reason}",
                details={"server_name": server_name},
            )

        entry = self.catalog.get(server_name, tool_name)
        if entry is None:
            raise UnknownToolError(server_name, tool_name)

        await self._check_approval(entry, arguments)

        logger.info(f"Calling tool '{tool_name}' on server '{server_name}'...")
        return await client.invoke(tool_name, arguments)

    async def _check_approval(self, entry: ToolEntry, arguments: Dict[str, Any]) -> None:
        if self.auto_approve or entry.always_allow:
            return
        if self.approver is not None:
            decision = self.approver(entry.server_name, entry.name, arguments)
            if inspect.isawaitable(decision):
                decision = await decision
            if decision:
                return
        raise ApprovalRequiredError(entry.server_name, entry.name)

    def filtered(self, allowed_servers: Optional[Iterable[str]]) -> "ToolHub":
        """Return a new, unstarted hub restricted to allowed_servers (None keeps all)."""
        allowed = None if allowed_servers is None else set(allowed_servers)
        configs = [
            config
            for name, config in self._servers.items()
            if allowed is None or name in allowed
        ]
        return ToolHub(configs, auto_approve=self.auto_approve, approver=self.approver)

    async def stop_all(self) -> None:
        """Stop all running servers."""
        logger.info("Stopping all tool servers...")

        for name, client in list(self._clients.items()):
            try:
                await client.stop()
                logger.info(f"Stopped server: {name}")
            except Exception as e:
                logger.warning(f"Error stopping server '{name}': {e}")

        self._clients.clear()
        self._start_errors.clear()
        self.catalog.clear()
        self._started = False
        logger.info("All tool servers stopped")
