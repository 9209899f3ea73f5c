"""Session orchestrator: the conversation loop.

One turn runs as:
1. Append the user's input
2. Request a completion over the whole transcript and append the reply
3. Extract at most one tool request from the reply; if none, the turn ends
4. Dispatch it through the ToolHub, append the result as a user-type message
   carrying the tool-call record, and go back to step 2

Tool failures never end the session: they are folded into the transcript
and the model sees them on the next completion. The loop is bounded by
max_tool_turns dispatches per turn.

Built-in tools (<use_tool>) are served here rather than by a tool server.
run_child_session suspends the current session, runs a child session with
its own role and transcript until the child calls finish_child_session, and
folds the child's summary back into the parent as the tool result.

Every mutation replaces the session value, then writes a snapshot and an
append-only log record.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from ..config import AppConfig, DEFAULT_MAX_CHILD_DEPTH, DEFAULT_MAX_TOOL_TURNS, get_config
from ..errors import (
    ChildSessionError,
    InvalidResponseError,
    MCPilotError,
    NoActiveSessionError,
    ProviderError,
    ServerUnavailableError,
    SessionExistsError,
    ToolError,
    UnknownToolError,
)
from ..internal_tools import (
    FINISH_CHILD_SESSION,
    FINISH_CHILD_SESSION_TOOL,
    INTERNAL_SERVER_NAME,
    RUN_CHILD_SESSION,
    RUN_CHILD_SESSION_TOOL,
    tools_for,
)
from ..mcp.hub import Approver, ToolHub
from ..mcp.server_config import load_server_configs
from ..models import (
    Message,
    MessageType,
    RoleConfig,
    Session,
    ToolCallRecord,
    ToolCallResult,
    ToolCallStatus,
    utcnow,
)
from ..parser.extractor import ParsedInternalToolRequest, ParsedToolRequest, RequestExtractor
from ..prompt import SystemPromptBuilder
from ..providers.base import LLMProvider, LLMResponse
from ..roles import RoleRegistry
from .store import SessionLog, SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnResult:
    """Outcome of execute_message().

    Attributes:
        response: Final LLM reply of the turn
        tool_calls: Tool calls dispatched during the turn, in order
        turns_used: Number of completions requested
        limit_reached: True when the turn stopped at max_tool_turns
        summary: Set when a child session ended the turn with finish_child_session
    """

    response: LLMResponse
    tool_calls: Tuple[ToolCallRecord, ...] = ()
    turns_used: int = 1
    limit_reached: bool = False
    summary: Optional[str] = None


class SessionOrchestrator:
    """Owns one active session and drives its conversation loop."""

    def __init__(
        self,
        provider: LLMProvider,
        hub: ToolHub,
        store: SessionStore,
        roles: Optional[RoleRegistry] = None,
        extractor: Optional[RequestExtractor] = None,
        prompt_builder: Optional[SystemPromptBuilder] = None,
        session_log: Optional[SessionLog] = None,
        max_tool_turns: int = DEFAULT_MAX_TOOL_TURNS,
        max_child_depth: int = DEFAULT_MAX_CHILD_DEPTH,
    ):
        if max_tool_turns <= 0:
            raise ValueError(f"max_tool_turns must be positive, got {max_tool_turns}")
        if max_child_depth < 0:
            raise ValueError(f"max_child_depth must not be negative, got {max_child_depth}")
        self.provider = provider
        self.hub = hub
        self.store = store
        self.roles = roles or RoleRegistry()
        self.extractor = extractor or RequestExtractor()
        self.prompt_builder = prompt_builder or SystemPromptBuilder()
        self.session_log = session_log or SessionLog(store.log_dir)
        self.max_tool_turns = max_tool_turns
        self.max_child_depth = max_child_depth
        self.session: Optional[Session] = None
        # Sessions suspended while a child session runs, innermost last
        self._parents: List[Session] = []
        # Role changes derive filtered hubs from this one
        self._base_hub = hub

    @classmethod
    def from_config(
        cls,
        config: Optional[AppConfig] = None,
        provider: Optional[LLMProvider] = None,
        approver: Optional[Approver] = None,
    ) -> "SessionOrchestrator":
        """Build an orchestrator from application configuration.

        Raises:
            ConfigurationError: If the tool server or role file is invalid.
        """
        config = config or get_config()

        server_configs = []
        if config.mcp_config_path:
            server_configs = load_server_configs(
                config.mcp_config_path, default_timeout=config.server_timeout_seconds
            )
        hub = ToolHub(server_configs, auto_approve=config.auto_approve_tools, approver=approver)

        roles = RoleRegistry()
        if config.roles_config_path:
            roles = RoleRegistry.from_file(config.roles_config_path)

        if provider is None:
            from ..providers.openai import OpenAIProvider

            provider = OpenAIProvider(api_key=config.openai_api_key, model=config.openai_model)

        return cls(
            provider,
            hub,
            SessionStore(config.sessions_dir),
            roles=roles,
            max_tool_turns=config.max_tool_turns,
            max_child_depth=config.max_child_depth,
        )

    @property
    def has_active_session(self) -> bool:
        return self.session is not None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # Session lifecycle

    async def create_session(self, role_name: Optional[str] = None) -> Session:
        """Start a new session, optionally under a named role (else the default role).

        Raises:
            SessionExistsError: If a session is already active
            RoleNotFoundError: If role_name is not defined
        """
        if self.session is not None:
            raise SessionExistsError()

        role = self.roles.get(role_name) if role_name else self.roles.get_default()
        await self._activate_hub(role)

        session = Session.create(system_prompt=self._build_prompt(role, depth=0), role=role)
        self._commit(session, "Session created")
        logger.info(f"Session created: {session.id}" + (f" (role: {role.name})" if role else ""))
        return session

    async def resume_session(self, path_or_id: str) -> Session:
        """Resume a session from a snapshot or an append-only log.

        Raises:
            SessionExistsError: If a session is already active
            LogParseFailed: If the session cannot be reconstructed
        """
        if self.session is not None:
            raise SessionExistsError()

        session = self.store.resume(path_or_id)
        await self._activate_hub(session.metadata.role)
        self._commit(session, "Session resumed")
        logger.info(f"Session resumed: {session.id} ({len(session.messages)} message(s))")
        return session

    async def end_session(self) -> Session:
        """Persist and release the active session, stopping its tool servers.

        Raises:
            NoActiveSessionError: If no session is active
        """
        session = self._require_session()
        self._commit(session, "Session ended")
        self.session = None
        await self.hub.stop_all()
        logger.info(f"Session ended: {session.id}")
        return session

    async def close(self) -> None:
        """End the active session, if any, and stop all tool servers."""
        if self.session is not None:
            await self.end_session()
        elif self.hub.started:
            await self.hub.stop_all()

    def get_messages(self) -> List[Message]:
        return list(self._require_session().messages)

    # Roles

    async def set_role(self, role_name: str) -> Session:
        """Switch the active session to another role.

        Re-derives the tool hub from the role's server allow-list and rebuilds
        the system prompt.

        Raises:
            NoActiveSessionError: If no session is active
            RoleNotFoundError: If the role is not defined
        """
        session = self._require_session()
        role = self.roles.get(role_name)
        await self._activate_hub(role)

        updated = session.merged(
            system_prompt=self._build_prompt(role, depth=len(self._parents)),
            metadata={"role": role},
        )
        self._commit(updated, f"Role set to {role.name}")
        logger.info(f"Role switched to '{role.name}'")
        return updated

    async def _activate_hub(self, role: Optional[RoleConfig]) -> None:
        wanted = [
            name
            for name in self._base_hub.server_names()
            if role is None or role.allows_server(name)
        ]
        if self.hub.server_names() != wanted:
            if self.hub.started:
                await self.hub.stop_all()
            self.hub = self._base_hub.filtered(role.available_servers if role else None)
        if not self.hub.started:
            await self.hub.start_all()

    def _build_prompt(self, role: Optional[RoleConfig], depth: int) -> str:
        internal_tools = tools_for(is_child=depth > 0, can_spawn=depth < self.max_child_depth)
        return self.prompt_builder.build(
            role, self.hub.catalog, internal_tools=internal_tools, role_names=self.roles.names()
        )

    # Conversation loop

    async def execute_message(self, content: str) -> TurnResult:
        """Run one conversational turn for the user's input.

        Raises:
            NoActiveSessionError: If no session is active
            InvalidResponseError: If a reply carries no text
            ProviderError: If the LLM backend fails
        """
        session = self._require_session()
        self._commit(
            session.with_message(Message.create(MessageType.USER, content)), "User message added"
        )
        return await self._run_loop()

    async def _run_loop(self) -> TurnResult:
        tool_calls: List[ToolCallRecord] = []
        turns_used = 0
        while True:
            response = await self._request_completion()
            turns_used += 1
            self._append(
                Message.create(MessageType.ASSISTANT, response.text), "Assistant response added"
            )

            try:
                request = self.extractor.first_request(response.text)
            except Exception as e:
                logger.exception("Tool request extraction failed: %s", e)
                self._append(
                    Message.create(MessageType.SYSTEM, f"Tool request extraction failed: {e}"),
                    "Tool request extraction failed",
                )
                return TurnResult(response, tuple(tool_calls), turns_used)

            if request is None:
                return TurnResult(response, tuple(tool_calls), turns_used)

            if len(tool_calls) >= self.max_tool_turns:
                logger.warning("Tool call limit reached (max_tool_turns=%d)", self.max_tool_turns)
                self._append(
                    Message.create(
                        MessageType.SYSTEM,
                        f"Tool call limit of {self.max_tool_turns} reached; "
                        f"'{request.tool_name}' on '{_server_of(request)}' was not executed.",
                    ),
                    "Tool call limit reached",
                )
                return TurnResult(response, tuple(tool_calls), turns_used, limit_reached=True)

            summary = None
            if isinstance(request, ParsedInternalToolRequest):
                record, summary = await self._dispatch_internal(request)
            else:
                record = await self._dispatch(request)
            tool_calls.append(record)
            self._append(
                Message.create(MessageType.USER, format_tool_result(record), tool_calls=(record,)),
                f"Tool result added: {record.server_name}/{record.tool_name}",
            )
            if summary is not None:
                return TurnResult(response, tuple(tool_calls), turns_used, summary=summary)

    async def _request_completion(self) -> LLMResponse:
        try:
            response = await self.provider.process_message(self.session)
        except MCPilotError:
            raise
        except Exception as e:
            raise ProviderError(f"LLM provider failed: {e}") from e

        if response is None or not response.text:
            raise InvalidResponseError("LLM response missing text content")
        return response

    async def _dispatch(self, request: ParsedToolRequest) -> ToolCallRecord:
        timestamp = utcnow()
        started = time.monotonic()
        try:
            result = await self.hub.call_tool(
                request.server_name, request.tool_name, request.arguments
            )
        except ToolError as e:
            logger.warning(
                "Tool '%s' on '%s' failed: %s", request.tool_name, request.server_name, e
            )
            call_result = _failure(e, started)
            if isinstance(e, ServerUnavailableError):
                await self._recover_server(request.server_name)
        except Exception as e:
            logger.exception("Unexpected error dispatching tool '%s'", request.tool_name)
            call_result = _failure(e, started)
        else:
            call_result = ToolCallResult(
                status=ToolCallStatus.SUCCESS if result.success else ToolCallStatus.FAILURE,
                output=result.output,
                duration=result.duration,
            )

        return ToolCallRecord(
            tool_name=request.tool_name,
            server_name=request.server_name,
            arguments=dict(request.arguments),
            timestamp=timestamp,
            result=call_result,
        )

    async def _recover_server(self, server_name: str) -> None:
        """Restart a server whose channel dropped; the failed call is not retried."""
        try:
            restarted = await self.hub.restart_server(server_name)
        except MCPilotError as e:
            logger.warning("Could not restart tool server '%s': %s", server_name, e)
            return
        if restarted:
            logger.info("Tool server '%s' restarted", server_name)
        else:
            logger.warning("Tool server '%s' is still unavailable after restart", server_name)

    async def restart_server(self, server_name: str) -> bool:
        """Restart one tool server of the active hub.

        Raises:
            UnknownServerError: If the server is not configured for the current role
        """
        restarted = await self.hub.restart_server(server_name)
        if restarted:
            logger.info("Tool server '%s' restarted", server_name)
        return restarted

    # Child sessions

    async def _dispatch_internal(
        self, request: ParsedInternalToolRequest
    ) -> Tuple[ToolCallRecord, Optional[str]]:
        """Serve a built-in tool. The summary is set when a child session finished."""
        timestamp = utcnow()
        started = time.monotonic()
        summary = None
        try:
            if request.tool_name == RUN_CHILD_SESSION:
                output: Any = await self._run_child_session(request.parameters)
            elif request.tool_name == FINISH_CHILD_SESSION:
                summary = output = self._finish_child_session(request.parameters)
            else:
                raise UnknownToolError(INTERNAL_SERVER_NAME, request.tool_name)
        except MCPilotError as e:
            logger.warning("Built-in tool '%s' failed: %s", request.tool_name, e)
            call_result = _failure(e, started)
        except Exception as e:
            logger.exception("Unexpected error in built-in tool '%s'", request.tool_name)
            call_result = _failure(e, started)
        else:
            call_result = ToolCallResult(
                status=ToolCallStatus.SUCCESS, output=output, duration=time.monotonic() - started
            )

        record = ToolCallRecord(
            tool_name=request.tool_name,
            server_name=INTERNAL_SERVER_NAME,
            arguments=dict(request.parameters),
            timestamp=timestamp,
            result=call_result,
        )
        return record, summary

    async def _run_child_session(self, parameters: Dict[str, Any]) -> Dict[str, Any]:
        prompt = RUN_CHILD_SESSION_TOOL.require_string(parameters, "prompt")
        role_name = parameters.get("role") or None
        if role_name is not None and not isinstance(role_name, str):
            raise ChildSessionError(
                "'run_child_session' expects 'role' to be a role name",
                details={"tool_name": RUN_CHILD_SESSION, "parameter": "role"},
            )

        depth = len(self._parents) + 1
        if depth > self.max_child_depth:
            raise ChildSessionError(
                f"Child session depth limit of {self.max_child_depth} reached",
                details={"max_child_depth": self.max_child_depth},
            )

        role = self.roles.get(role_name) if role_name else self.roles.get_default()
        parent = self._require_session()

        await self._activate_hub(role)
        child = Session.create(
            system_prompt=self._build_prompt(role, depth), role=role, parent_id=parent.id
        )
        self._commit(parent.with_child(child.id), f"Child session started: {child.id}")
        self._parents.append(self.session)
        try:
            self._commit(child, "Session created")
            logger.info(
                f"Child session created: {child.id} (parent: {parent.id}"
                + (f", role: {role.name})" if role else ")")
            )
            self._append(Message.create(MessageType.USER, prompt), "User message added")
            result = await self._run_loop()

            completed = result.summary is not None
            summary = result.summary if completed else result.response.text
            status = "completed" if completed else "incomplete"
            self._commit(
                self._require_session().merged(
                    metadata={"custom": {"childSession": {"status": status, "summary": summary}}}
                ),
                f"Child session {status}",
            )
        finally:
            self.session = self._parents.pop()
            await self._activate_hub(self.session.metadata.role)

        logger.info(f"Child session {status}: {child.id}")
        return {"childSessionId": child.id, "completed": completed, "summary": summary}

    def _finish_child_session(self, parameters: Dict[str, Any]) -> str:
        session = self._require_session()
        if session.parent_id is None or not self._parents:
            raise ChildSessionError(
                "finish_child_session can only be called from a running child session",
                details={"session_id": session.id},
            )
        return FINISH_CHILD_SESSION_TOOL.require_string(parameters, "summary")

    # Persistence

    def _require_session(self) -> Session:
        if self.session is None:
            raise NoActiveSessionError()
        return self.session

    def _append(self, message: Message, log_message: str) -> None:
        self._commit(self._require_session().with_message(message), log_message)

    def _commit(self, session: Session, log_message: str) -> None:
        self.session = session
        self.store.save(session)
        self.session_log.append(session, log_message)


def format_tool_result(record: ToolCallRecord) -> str:
    """Serialize a tool-call outcome as the content of the result message."""
    payload = {
        "server": record.server_name,
        "tool": record.tool_name,
        "success": record.result.status == ToolCallStatus.SUCCESS,
    }
    if record.result.output is not None:
        payload["output"] = record.result.output
    if record.result.error is not None:
        payload["error"] = record.result.error
    return json.dumps(payload, ensure_ascii=False)



def _server_of(request: Union[ParsedToolRequest, ParsedInternalToolRequest]) -> str:
    if isinstance(request, ParsedInternalToolRequest):
        return INTERNAL_SERVER_NAME
    return request.server_name


def _failure(error: Exception, started: float) -> ToolCallResult:
    if isinstance(error, MCPilotError):
        details = error.to_dict()
        output = error.details.get("output")
    else:
        details = {
            "error_type": error.__class__.__name__,
            "code": ToolError.code,
            "message": str(error),
            "details": {},
        }
        output = None
    return ToolCallResult(
        status=ToolCallStatus.FAILURE,
        output=output,
        error=details,
        duration=time.monotonic() - started,
    )
