"""System prompt assembly: role definition, role instructions and tool documentation."""

from typing import List, Optional, Sequence

from .internal_tools import RUN_CHILD_SESSION, InternalTool
from .mcp.catalog import ToolCatalog, ToolEntry
from .models import RoleConfig

DEFAULT_BASE_PROMPT = "You are a helpful assistant that can use external tools to complete tasks."

TOOL_USAGE_SECTION = """Tools are invoked with an XML-style block. Format a request as:

<use_mcp_tool>
<server_name>Target server that will execute the tool</server_name>
<tool_name>Name of the tool to execute</tool_name>
<arguments>
{"parameterName": "parameterValue"}
</arguments>
</use_mcp_tool>

Only a single tool can be called in a single response. Parameters marked as (required) must be included.
The next message will contain the tool's output or an error description.
Wait for that result before requesting another tool."""

INTERNAL_TOOL_USAGE = """Built-in tools take a <use_tool> block instead, without a server name:

<use_tool>
<tool_name>Name of the built-in tool</tool_name>
<parameters>
{"parameterName": "parameterValue"}
</parameters>
</use_tool>"""


def format_section(title: str, content: str) -> str:
    return f"## {title}\n\n{content}"


def format_tool_documentation(entry: ToolEntry) -> str:
    lines = [f"### {entry.server_name}/{entry.name}", ""]
    if entry.description:
        lines.extend([entry.description, ""])

    properties = entry.input_schema.get("properties") or {}
    required = set(entry.input_schema.get("required") or [])
    if properties:
        lines.append("Parameters:")
        lines.append("")
        for name, prop in properties.items():
            marker = " (required)" if name in required else ""
            lines.append(f"- {name}{marker}: {prop.get('description') or 'No description'}")
        lines.append("")

    lines.extend(["Usage:", "", "```", entry.usage(), "```"])
    return "\n".join(lines)


def format_internal_tool_documentation(
    tool: InternalTool, role_names: Sequence[str] = ()
) -> str:
    lines = [f"### {tool.name}", "", tool.description, "", "Parameters:", ""]
    properties = tool.input_schema.get("properties") or {}
    required = set(tool.input_schema.get("required") or [])
    for name, prop in properties.items():
        marker = " (required)" if name in required else ""
        lines.append(f"- {name}{marker}: {prop.get('description') or 'No description'}")
    if tool.name == RUN_CHILD_SESSION and role_names:
        lines.extend(["", f"Available roles: {', '.join(role_names)}"])
    lines.append("")

    lines.extend(["Usage:", "", "```", tool.usage(), "```"])
    return "\n".join(lines)


class SystemPromptBuilder:
    """Builds the session system prompt from a role and the available tools."""

    def __init__(self, base_prompt: str = DEFAULT_BASE_PROMPT):
        self.base_prompt = base_prompt

    def build(
        self,
        role: Optional[RoleConfig] = None,
        catalog: Optional[ToolCatalog] = None,
        internal_tools: Sequence[InternalTool] = (),
        role_names: Sequence[str] = (),
    ) -> str:
        sections: List[str] = [role.definition if role else self.base_prompt]

        if role and role.instructions:
            sections.append(format_section("Role Instructions", role.instructions))

        sections.append(format_section("Tool Use", TOOL_USAGE_SECTION))

        entries = list(catalog) if catalog is not None else []
        if entries:
            tool_docs = "\n\n".join(format_tool_documentation(entry) for entry in entries)
        else:
            tool_docs = "No tools are currently available."
        sections.append(format_section("Available Tools", tool_docs))

        if internal_tools:
            docs = [INTERNAL_TOOL_USAGE]
            docs.extend(format_internal_tool_documentation(t, role_names) for t in internal_tools)
            sections.append(format_section("Built-in Tools", "\n\n".join(docs)))

        return "\n\n".join(sections)
