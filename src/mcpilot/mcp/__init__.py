"""MCP tool server integration: configuration, clients, catalog and hub."""

from .catalog import ToolCatalog, ToolEntry
from .client import ClientState, ToolResult, ToolServerClient
from .hub import ToolHub
from .server_config import ToolServerConfig, load_server_configs

__all__ = [
    "ClientState",
    "ToolCatalog",
    "ToolEntry",
    "ToolHub",
    "ToolResult",
    "ToolServerClient",
    "ToolServerConfig",
    "load_server_configs",
]
