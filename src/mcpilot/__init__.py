"""mcpilot: LLM chat sessions that call MCP tool servers.

Public API:
- SessionOrchestrator: creates/resumes sessions and runs the conversation loop
- ToolHub: starts tool servers and dispatches tool calls
- RequestExtractor: finds tool-invocation markers in LLM output
- SessionStore: session snapshots and log replay
"""

from .config import AppConfig, get_config
from .errors import (
    ApprovalRequiredError,
    ChildSessionError,
    ConfigurationError,
    InvalidResponseError,
    LogParseFailed,
    MCPilotError,
    NoActiveSessionError,
    ProviderError,
    RoleNotFoundError,
    ServerStartError,
    ServerUnavailableError,
    SessionExistsError,
    ToolError,
    ToolInvocationError,
    UnknownServerError,
    UnknownToolError,
)
from .mcp import ToolCatalog, ToolHub, ToolServerClient, ToolServerConfig, load_server_configs
from .models import Message, MessageType, RoleConfig, Session, ToolCallRecord, ToolCallStatus
from .parser import ParsedInternalToolRequest, ParsedToolRequest, RequestExtractor
from .providers import LLMProvider, LLMResponse, OpenAIProvider
from .roles import RoleRegistry
from .runtime import init_runtime
from .session import SessionLog, SessionOrchestrator, SessionStore, TurnResult

__version__ = "0.1.0"

__all__ = [
    "AppConfig",
    "ApprovalRequiredError",
    "ChildSessionError",
    "ConfigurationError",
    "InvalidResponseError",
    "LLMProvider",
    "LLMResponse",
    "LogParseFailed",
    "MCPilotError",
    "Message",
    "MessageType",
    "NoActiveSessionError",
    "OpenAIProvider",
    "ParsedInternalToolRequest",
    "ParsedToolRequest",
    "ProviderError",
    "RequestExtractor",
    "RoleConfig",
    "RoleNotFoundError",
    "RoleRegistry",
    "ServerStartError",
    "ServerUnavailableError",
    "Session",
    "SessionExistsError",
    "SessionLog",
    "SessionOrchestrator",
    "SessionStore",
    "ToolCallRecord",
    "ToolCallStatus",
    "ToolCatalog",
    "ToolError",
    "ToolHub",
    "ToolInvocationError",
    "ToolServerClient",
    "ToolServerConfig",
    "TurnResult",
    "UnknownServerError",
    "UnknownToolError",
    "get_config",
    "init_runtime",
    "load_server_configs",
]
