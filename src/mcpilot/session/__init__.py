"""Session persistence and the conversation loop."""

from .orchestrator import SessionOrchestrator, TurnResult, format_tool_result
from .store import SessionLog, SessionStore

__all__ = [
    "SessionLog",
    "SessionOrchestrator",
    "SessionStore",
    "TurnResult",
    "format_tool_result",
]
