"""Error hierarchy for mcpilot.

Every error carries a stable machine-readable ``code`` alongside the
human-readable message, so callers (CLI, tests, log readers) can branch on
the code without parsing text.
"""

from typing import Any, Dict, Optional


class MCPilotError(Exception):
    """Base class for all mcpilot errors."""

    code = "MCPILOT_ERROR"

    def __init__(
        self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dict (used when folding errors into the transcript)."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": {k: _jsonable(v) for k, v in self.details.items()},
        }


def _jsonable(value):
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


# Configuration / session lifecycle


class ConfigurationError(MCPilotError):
    code = "INVALID_MCP_CONFIG"


class RoleNotFoundError(MCPilotError):
    code = "INVALID_ROLE"


class NoActiveSessionError(MCPilotError):
    code = "NO_SESSION"

    def __init__(self, message: str = "No active session"):
        super().__init__(message)


class SessionExistsError(MCPilotError):
    code = "SESSION_EXISTS"

    def __init__(self, message: str = "Session already exists"):
        super().__init__(message)


class SessionSaveError(MCPilotError):
    code = "SESSION_SAVE_FAILED"


class LogParseFailed(MCPilotError):
    """Raised when a session log or snapshot cannot be turned back into a session."""

    code = "LOG_PARSE_FAILED"


# Upstream (LLM collaborator)


class ProviderError(MCPilotError):
    code = "PROVIDER_ERROR"


class InvalidResponseError(MCPilotError):
    code = "INVALID_RESPONSE"


# Tool protocol


class ToolError(MCPilotError):
    """Base for failures on the tool dispatch path.

    The orchestrator treats every ToolError as recoverable: it is folded back
    into the transcript instead of ending the session.
    """

    code = "TOOL_ERROR"


class ServerStartError(ToolError):
    code = "SERVER_START_FAILED"


class ServerUnavailableError(ToolError):
    code = "SERVER_UNAVAILABLE"


class ToolInvocationError(ToolError):
    code = "TOOL_INVOCATION_FAILED"


class UnknownServerError(ToolError):
    code = "UNKNOWN_SERVER"

    def __init__(self, server_name: str):
        super().__init__(
            f"No connection found for server: {server_name}",
            details={"server_name": server_name},
        )
        self.server_name = server_name


class UnknownToolError(ToolError):
    code = "UNKNOWN_TOOL"

    def __init__(self, server_name: str, tool_name: str):
        super().__init__(
            f"Tool '{tool_name}' is not available on server '{server_name}'",
            details={"server_name": server_name, "tool_name": tool_name},
        )
        self.server_name = server_name
        self.tool_name = tool_name


class ChildSessionError(ToolError):
    """A built-in child-session tool was called with bad parameters or in the wrong session."""

    code = "CHILD_SESSION_FAILED"


class ApprovalRequiredError(ToolError):
    code = "APPROVAL_REQUIRED"

    def __init__(self, server_name: str, tool_name: str):
        super().__init__(
            f"Tool '{tool_name}' on server '{server_name}' requires approval",
            details={"server_name": server_name, "tool_name": tool_name},
        )
        self.server_name = server_name
        self.tool_name = tool_name


# Parsing


class ToolRequestParseError(MCPilotError):
    """A single tool-invocation marker is malformed. Never escapes the extractor."""

    code = "MALFORMED_TOOL_REQUEST"
