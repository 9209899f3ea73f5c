"""Session data model.

Sessions and messages are immutable values: every change produces a new
Session via Session.merged(), which merges fields shallowly except
metadata.custom (merged deeply). The on-disk representation (to_dict /
from_dict) uses the camelCase keys of the session log format.
"""

import copy
import os
import platform
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class MessageType(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ToolCallStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex}"


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex}"


def capture_environment() -> Dict[str, str]:
    """Snapshot of the process environment recorded in session metadata."""
    return {
        "cwd": os.getcwd(),
        "os": platform.system().lower(),
        "shell": os.environ.get("SHELL", ""),
    }


def deep_merge(base: Mapping[str, Any], update: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge update into a copy of base. Nested mappings merge, everything else replaces."""
    merged = copy.deepcopy(dict(base))
    for key, value in update.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _parse_timestamp(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value:
        return utcnow()
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class RoleConfig:
    """A resolved role: base definition, instructions, and optional server allow-list."""

    name: str
    definition: str
    instructions: str = ""
    available_servers: Optional[Tuple[str, ...]] = None

    def allows_server(self, server_name: str) -> bool:
        return self.available_servers is None or server_name in self.available_servers

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "definition": self.definition,
            "instructions": self.instructions,
        }
        if self.available_servers is not None:
            data["availableServers"] = list(self.available_servers)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], name: Optional[str] = None) -> "RoleConfig":
        servers = data.get("availableServers")
        return cls(
            name=name or data.get("name", ""),
            definition=data.get("definition", ""),
            instructions=data.get("instructions", ""),
            available_servers=tuple(servers) if servers is not None else None,
        )


@dataclass(frozen=True)
class ToolCallResult:
    status: ToolCallStatus
    output: Any = None
    error: Optional[Dict[str, Any]] = None
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = {"status": self.status.value, "output": self.output, "duration": self.duration}
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolCallResult":
        return cls(
            status=ToolCallStatus(data["status"]),
            output=data.get("output"),
            error=data.get("error"),
            duration=data.get("duration", 0.0),
        )


@dataclass(frozen=True)
class ToolCallRecord:
    """One tool invocation folded back into the transcript."""

    tool_name: str
    server_name: str
    arguments: Dict[str, Any]
    timestamp: datetime
    result: ToolCallResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "toolName": self.tool_name,
            "serverName": self.server_name,
            "parameters": self.arguments,
            "timestamp": self.timestamp.isoformat(),
            "result": self.result.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ToolCallRecord":
        return cls(
            tool_name=data["toolName"],
            server_name=data.get("serverName", ""),
            arguments=dict(data.get("parameters") or {}),
            timestamp=_parse_timestamp(data.get("timestamp")),
            result=ToolCallResult.from_dict(data["result"]),
        )


@dataclass(frozen=True)
class Message:
    id: str
    type: MessageType
    content: str
    timestamp: datetime
    tool_calls: Tuple[ToolCallRecord, ...] = ()

    @classmethod
    def create(
        cls, message_type: MessageType, content: str, tool_calls: Tuple[ToolCallRecord, ...] = ()
    ) -> "Message":
        return cls(
            id=new_message_id(),
            type=message_type,
            content=content,
            timestamp=utcnow(),
            tool_calls=tuple(tool_calls),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "type": self.type.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.tool_calls:
            data["metadata"] = {"toolCalls": [call.to_dict() for call in self.tool_calls]}
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        metadata = data.get("metadata") or {}
        return cls(
            id=data["id"],
            type=MessageType(data["type"]),
            content=data.get("content", ""),
            timestamp=_parse_timestamp(data.get("timestamp")),
            tool_calls=tuple(ToolCallRecord.from_dict(c) for c in metadata.get("toolCalls", [])),
        )


@dataclass(frozen=True)
class SessionMetadata:
    timestamp: datetime = field(default_factory=utcnow)
    environment: Dict[str, str] = field(default_factory=capture_environment)
    role: Optional[RoleConfig] = None
    custom: Dict[str, Any] = field(default_factory=dict)

    def merged(self, changes: Mapping[str, Any]) -> "SessionMetadata":
        """Shallow merge of metadata fields; ``custom`` merges deeply."""
        updates = {}
        for key, value in changes.items():
            if key == "custom":
                updates["custom"] = deep_merge(self.custom, value or {})
            elif key in ("timestamp", "environment", "role"):
                updates[key] = value
            else:
                raise KeyError(f"Unknown session metadata field: {key}")
        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "environment": dict(self.environment),
            "role": self.role.to_dict() if self.role else None,
            "custom": copy.deepcopy(self.custom),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionMetadata":
        role = data.get("role")
        return cls(
            timestamp=_parse_timestamp(data.get("timestamp")),
            environment=dict(data.get("environment") or {}),
            role=RoleConfig.from_dict(role) if role else None,
            custom=dict(data.get("custom") or {}),
        )


@dataclass(frozen=True)
class Session:
    id: str
    system_prompt: str = ""
    messages: Tuple[Message, ...] = ()
    metadata: SessionMetadata = field(default_factory=SessionMetadata)
    parent_id: Optional[str] = None
    child_session_ids: Tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        system_prompt: str = "",
        role: Optional[RoleConfig] = None,
        parent_id: Optional[str] = None,
    ) -> "Session":
        return cls(
            id=new_session_id(),
            system_prompt=system_prompt,
            metadata=SessionMetadata(role=role),
            parent_id=parent_id,
        )

    def merged(self, **changes) -> "Session":
        """Return a new Session with ``changes`` applied.

        ``system_prompt``, ``messages`` and ``child_session_ids`` replace the
        current values; ``metadata`` is a mapping merged via
        SessionMetadata.merged().
        The session id and parent id are immutable.
        """
        if "id" in changes or "parent_id" in changes:
            raise ValueError("Session id and parent id are immutable")
        updates = {}
        if "system_prompt" in changes:
            updates["system_prompt"] = changes.pop("system_prompt")
        if "messages" in changes:
            updates["messages"] = tuple(changes.pop("messages"))
        if "child_session_ids" in changes:
            updates["child_session_ids"] = tuple(changes.pop("child_session_ids"))
        if "metadata" in changes:
            updates["metadata"] = self.metadata.merged(changes.pop("metadata"))
        if changes:
            raise KeyError(f"Unknown session fields: {', '.join(sorted(changes))}")
        return replace(self, **updates)

    def with_message(self, message: Message) -> "Session":
        return self.merged(messages=self.messages + (message,))

    def with_child(self, child_id: str) -> "Session":
        return self.merged(child_session_ids=self.child_session_ids + (child_id,))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "systemPrompt": self.system_prompt,
            "messages": [m.to_dict() for m in self.messages],
            "metadata": self.metadata.to_dict(),
            "parentId": self.parent_id,
            "childSessionIds": list(self.child_session_ids),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Session":
        return cls(
            id=data["id"],
            system_prompt=data.get("systemPrompt", ""),
            messages=tuple(Message.from_dict(m) for m in data.get("messages", [])),
            metadata=SessionMetadata.from_dict(data.get("metadata") or {}),
            parent_id=data.get("parentId"),
            child_session_ids=tuple(data.get("childSessionIds") or ()),
        )
