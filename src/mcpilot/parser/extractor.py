"""
Tool-request extraction from LLM output.

The model asks for a tool by embedding a marker block in its reply:

    <use_mcp_tool>
    <server_name>example-server</server_name>
    <tool_name>file-reader</tool_name>
    <arguments>
    {"path": "examples/example.txt"}
    </arguments>
    </use_mcp_tool>

The arguments body is a JSON object, or nested tags (<path>...</path>) where
a tag holding only <item> children becomes a list. A body that looks like a
JSON object or array is never read as tags, so markup inside JSON strings
survives. Built-in tools use the same shape under <use_tool>, with
<parameters> in place of <arguments> and no server name. Malformed markers
are skipped with a warning; they never abort extraction.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Union

from ..errors import ToolRequestParseError

logger = logging.getLogger(__name__)

MARKER_TAG = "use_mcp_tool"
INTERNAL_MARKER_TAG = "use_tool"

_MARKER_PATTERN = re.compile(
    rf"<({MARKER_TAG}|{INTERNAL_MARKER_TAG})>(.*?)</\1>", re.DOTALL
)
_TAG_PATTERN = re.compile(r"<([A-Za-z_][\w.-]*)>(.*?)</\1>", re.DOTALL)
_ITEM_PATTERN = re.compile(r"<item>(.*?)</item>", re.DOTALL)
_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class ParsedToolRequest:
    server_name: str
    tool_name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    raw: str = ""


@dataclass(frozen=True)
class ParsedInternalToolRequest:
    """A request for a built-in tool, served by the orchestrator itself."""

    tool_name: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    raw: str = ""


AnyToolRequest = Union[ParsedToolRequest, ParsedInternalToolRequest]


def _looks_like_json(content: str) -> bool:
    trimmed = content.strip()
    return (trimmed.startswith("{") and trimmed.endswith("}")) or (
        trimmed.startswith("[") and trimmed.endswith("]")
    )


def _has_nested_tags(content: str) -> bool:
    return _TAG_PATTERN.search(content.strip()) is not None


def _contains_only_items(content: str) -> bool:
    tags = [match.group(1) for match in _TAG_PATTERN.finditer(content.strip())]
    return bool(tags) and all(tag == "item" for tag in tags)


def normalize_value(value: str) -> Any:
    """Infer a leaf value: booleans and JSON object/array literals, otherwise stripped text."""
    trimmed = value.strip()
    if not trimmed:
        return ""
    if trimmed.lower() == "true":
        return True
    if trimmed.lower() == "false":
        return False
    if _looks_like_json(trimmed):
        try:
            return json.loads(trimmed)
        except json.JSONDecodeError:
            pass
    return trimmed


def parse_fields(content: str) -> Dict[str, Any]:
    """Parse sibling tags into a mapping, recursing into nested tags."""
    fields: Dict[str, Any] = {}
    for match in _TAG_PATTERN.finditer(content):
        name, value = match.group(1), match.group(2)
        fields[name] = _parse_value(value)
    return fields


def _parse_value(value: str) -> Any:
    # JSON-shaped text stays a leaf even when its strings contain markup
    if _looks_like_json(value):
        return normalize_value(value)
    if _contains_only_items(value):
        return _parse_items(value)
    if _has_nested_tags(value):
        return parse_fields(value)
    return normalize_value(value)


def _parse_items(content: str) -> List[Any]:
    return [_parse_value(match.group(1)) for match in _ITEM_PATTERN.finditer(content)]


class RequestExtractor:
    """Recovers tool requests from free-form LLM text."""

    def iter_requests(self, text: Optional[str]) -> Iterator[AnyToolRequest]:
        """Yield well-formed requests in textual order, skipping malformed markers.

        Both server tool markers and built-in tool markers are yielded.
        The returned generator is lazy and single-use; call again for a fresh scan.
        """
        if not text:
            return
        for match in _MARKER_PATTERN.finditer(text):
            try:
                request = self.parse_marker(match.group(0))
            except ToolRequestParseError as e:
                logger.warning(f"Skipping invalid tool request: {e.message}")
                continue
            yield request

    def extract(self, text: Optional[str]) -> List[AnyToolRequest]:
        return list(self.iter_requests(text))

    def first_request(self, text: Optional[str]) -> Optional[AnyToolRequest]:
        """Return the first well-formed request, or None. Later markers are never parsed."""
        return next(self.iter_requests(text), None)

    def parse_marker(self, raw: str) -> AnyToolRequest:
        """Parse one complete marker block.

        Raises:
            ToolRequestParseError: If a field is missing, the arguments are not
                an object, or a name has an unexpected format.
        """
        match = _MARKER_PATTERN.search(raw)
        if match is None:
            raise ToolRequestParseError("Invalid tool request format")

        fields = parse_fields(match.group(2))
        if match.group(1) == INTERNAL_MARKER_TAG:
            return self._internal_request(fields, raw)

        server_name = fields.get("server_name")
        tool_name = fields.get("tool_name")
        if not isinstance(server_name, str) or not server_name:
            raise ToolRequestParseError("Missing server_name in tool request")
        if not isinstance(tool_name, str) or not tool_name:
            raise ToolRequestParseError("Missing tool_name in tool request")
        if "arguments" not in fields:
            raise ToolRequestParseError("Missing arguments in tool request")

        if not _NAME_PATTERN.match(server_name):
            raise ToolRequestParseError(f"Invalid server name format: {server_name}")
        if not _NAME_PATTERN.match(tool_name):
            raise ToolRequestParseError(f"Invalid tool name format: {tool_name}")

        return ParsedToolRequest(
            server_name=server_name,
            tool_name=tool_name,
            arguments=self._coerce_arguments(fields["arguments"]),
            raw=raw,
        )

    def _internal_request(self, fields: Dict[str, Any], raw: str) -> ParsedInternalToolRequest:
        tool_name = fields.get("tool_name")
        if not isinstance(tool_name, str) or not tool_name:
            raise ToolRequestParseError("Missing tool_name in internal tool request")
        if not _NAME_PATTERN.match(tool_name):
            raise ToolRequestParseError(f"Invalid tool name format: {tool_name}")
        return ParsedInternalToolRequest(
            tool_name=tool_name,
            parameters=self._coerce_arguments(fields.get("parameters", "")),
            raw=raw,
        )

    @staticmethod
    def _coerce_arguments(value: Any) -> Dict[str, Any]:
        # An empty body means a call without arguments.
        if value == "":
            return {}
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as e:
                raise ToolRequestParseError(f"Invalid JSON in tool arguments: {e.msg}") from e
        if not isinstance(value, dict):
            raise ToolRequestParseError("Tool arguments must be an object")
        return value
