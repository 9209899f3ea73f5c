"""Built-in tools served by the orchestrator rather than a tool server.

run_child_session delegates a sub-task to a fresh child session under a
chosen role; finish_child_session ends that child and hands its summary
back to the parent. Both are requested with the <use_tool> marker.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from .errors import ChildSessionError
from .parser.extractor import INTERNAL_MARKER_TAG

INTERNAL_SERVER_NAME = "internal"

RUN_CHILD_SESSION = "run_child_session"
FINISH_CHILD_SESSION = "finish_child_session"


@dataclass(frozen=True)
class InternalTool:
    name: str
    description: str
    input_schema: Dict[str, Any] = field(default_factory=dict)

    def usage(self) -> str:
        """Render an invocation marker example for this tool."""
        properties = self.input_schema.get("properties") or {}
        example = {name: prop.get("description", name) for name, prop in properties.items()}
        return (
            f"<{INTERNAL_MARKER_TAG}>\n"
            f"<tool_name>{self.name}</tool_name>\n"
            "<parameters>\n"
            f"{json.dumps(example, ensure_ascii=False)}\n"
            "</parameters>\n"
            f"</{INTERNAL_MARKER_TAG}>"
        )

    def require_string(self, parameters: Mapping[str, Any], name: str) -> str:
        """Return a non-empty string parameter.

        Raises:
            ChildSessionError: If the parameter is missing or not a non-empty string.
        """
        value = parameters.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ChildSessionError(
                f"'{self.name}' requires a non-empty '{name}' parameter",
                details={"tool_name": self.name, "parameter": name},
            )
        return value


RUN_CHILD_SESSION_TOOL = InternalTool(
    name=RUN_CHILD_SESSION,
    description=(
        "Start a child session that works on a sub-task under another role. "
        "The child runs until it calls finish_child_session; its summary is "
        "returned to you as the tool result."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "role": {"type": "string", "description": "Role for the child session"},
            "prompt": {"type": "string", "description": "Task given to the child session"},
        },
        "required": ["prompt"],
    },
)

FINISH_CHILD_SESSION_TOOL = InternalTool(
    name=FINISH_CHILD_SESSION,
    description=(
        "Finish this child session and report back to the parent session. "
        "Only available inside a child session."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "summary": {"type": "string", "description": "Summary of the work done"},
        },
        "required": ["summary"],
    },
)


def tools_for(is_child: bool, can_spawn: bool = True) -> List[InternalTool]:
    """Built-in tools offered to a session."""
    tools = []
    if can_spawn:
        tools.append(RUN_CHILD_SESSION_TOOL)
    if is_child:
        tools.append(FINISH_CHILD_SESSION_TOOL)
    return tools

