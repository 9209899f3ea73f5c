"""
Tool catalog: an in-memory index of tools keyed by (server name, tool name).

Entries carry the server-reported description and input schema. The schema
is informational (it feeds the system prompt); argument validation is left
to the tool server.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolEntry:
    server_name: str
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=dict)
    always_allow: bool = False

    @property
    def key(self) -> Tuple[str, str]:
        return (self.server_name, self.name)

    def usage(self) -> str:
        """Render an invocation marker example for this tool."""
        properties = self.input_schema.get("properties") or {}
        example_args = {
            name: prop.get("description") or f"{name} value" for name, prop in properties.items()
        }
        return (
            "<use_mcp_tool>\n"
            f"<server_name>{self.server_name}</server_name>\n"
            f"<tool_name>{self.name}</tool_name>\n"
            "<arguments>\n"
            f"{json.dumps(example_args, ensure_ascii=False)}\n"
            "</arguments>\n"
            "</use_mcp_tool>"
        )


class ToolCatalog:
    """Aggregated, queryable list of tools across tool servers."""

    def __init__(self):
        self._entries: Dict[Tuple[str, str], ToolEntry] = {}
        self._servers: Dict[str, List[str]] = {}

    def register_server_tools(
        self, server_name: str, tools: Iterable[dict], always_allow: Iterable[str] = ()
    ) -> None:
        """Register the capability list reported by one server.

        Re-registering a server replaces its previous tool list.

        Args:
            server_name: Server the tools belong to
            tools: Tool definitions with name, description, inputSchema
            always_allow: Tool names that bypass the approval gate
        """
        self.remove_server(server_name)
        allowed = set(always_allow)
        names = []
        for tool in tools:
            name = tool.get("name")
            if not name:
                logger.warning("Skipping tool without name from server '%s'", server_name)
                continue
            if name in names:
                logger.warning("Duplicate tool '%s' reported by server '%s'", name, server_name)
                continue
            self._entries[(server_name, name)] = ToolEntry(
                server_name=server_name,
                name=name,
                description=tool.get("description") or "",
                input_schema=tool.get("inputSchema") or {},
                always_allow=name in allowed,
            )
            names.append(name)
        self._servers[server_name] = names
        logger.debug("Registered %d tool(s) for server '%s'", len(names), server_name)

    def remove_server(self, server_name: str) -> None:
        for name in self._servers.pop(server_name, []):
            self._entries.pop((server_name, name), None)

    def get(self, server_name: str, tool_name: str) -> Optional[ToolEntry]:
        return self._entries.get((server_name, tool_name))

    def has_server(self, server_name: str) -> bool:
        return server_name in self._servers

    def is_tool_available(self, server_name: str, tool_name: str) -> bool:
        return (server_name, tool_name) in self._entries

    def server_names(self) -> List[str]:
        return list(self._servers)

    def server_tools(self, server_name: str) -> List[str]:
        return list(self._servers.get(server_name, []))

    def entries(self) -> List[ToolEntry]:
        return list(self._entries.values())

    def to_list(self) -> List[dict]:
        """Tool definitions in the MCP list_tools shape, tagged with their server."""
        return [
            {
                "server": entry.server_name,
                "name": entry.name,
                "description": entry.description,
                "inputSchema": entry.input_schema,
            }
            for entry in self._entries.values()
        ]

    def clear(self) -> None:
        self._entries.clear()
        self._servers.clear()

    def __iter__(self) -> Iterator[ToolEntry]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return key in self._entries
