"""Tests for the session data model."""

from datetime import datetime, timezone

import pytest

from mcpilot.models import (
    Message,
    MessageType,
    RoleConfig,
    Session,
    SessionMetadata,
    ToolCallRecord,
    ToolCallResult,
    ToolCallStatus,
    deep_merge,
)


def test_session_create_has_fresh_id_and_environment():
    first = Session.create("prompt")
    second = Session.create("prompt")

    assert first.id != second.id
    assert first.id.startswith("session_")
    assert first.messages == ()
    assert set(first.metadata.environment) == {"cwd", "os", "shell"}
    assert first.metadata.timestamp.tzinfo is not None


def test_merged_returns_new_session_and_leaves_original():
    session = Session.create("old prompt")

    updated = session.merged(system_prompt="new prompt")

    assert updated is not session
    assert updated.id == session.id
    assert updated.system_prompt == "new prompt"
    assert session.system_prompt == "old prompt"


def test_merged_rejects_id_and_unknown_fields():
    session = Session.create()
    with pytest.raises(ValueError, match="immutable"):
        session.merged(id="session_other")
    with pytest.raises(KeyError):
        session.merged(title="nope")
    with pytest.raises(KeyError):
        session.merged(metadata={"owner": "nobody"})


def test_metadata_merge_is_shallow_except_custom():
    role = RoleConfig("reader", "You read.")
    session = Session.create().merged(
        metadata={"custom": {"project": {"name": "demo", "tags": ["a"]}, "count": 1}}
    )

    updated = session.merged(
        metadata={
            "role": role,
            "environment": {"cwd": "/elsewhere"},
            "custom": {"project": {"tags": ["b"]}, "extra": True},
        }
    )

    assert updated.metadata.role == role
    assert updated.metadata.environment == {"cwd": "/elsewhere"}
    assert updated.metadata.custom == {
        "project": {"name": "demo", "tags": ["b"]},
        "count": 1,
        "extra": True,
    }
    assert session.metadata.custom["project"]["tags"] == ["a"]


def test_with_message_appends_in_order():
    session = Session.create()
    first = Message.create(MessageType.USER, "hi")
    second = Message.create(MessageType.ASSISTANT, "hello")

    updated = session.with_message(first).with_message(second)

    assert updated.messages == (first, second)
    assert session.messages == ()


def test_deep_merge_copies_inputs():
    base = {"a": {"b": [1]}}
    merged = deep_merge(base, {"a": {"c": 2}})
    merged["a"]["b"].append(2)

    assert base == {"a": {"b": [1]}}
    assert merged == {"a": {"b": [1, 2], "c": 2}}


def test_role_allows_server():
    unrestricted = RoleConfig("any", "def")
    restricted = RoleConfig("files", "def", available_servers=("files",))

    assert unrestricted.allows_server("anything")
    assert restricted.allows_server("files")
    assert not restricted.allows_server("time")


def test_role_dict_uses_camel_case():
    role = RoleConfig.from_dict(
        {"definition": "d", "instructions": "i", "availableServers": ["s"]}, name="r"
    )

    assert role == RoleConfig("r", "d", "i", ("s",))
    assert role.to_dict() == {
        "name": "r",
        "definition": "d",
        "instructions": "i",
        "availableServers": ["s"],
    }
    assert "availableServers" not in RoleConfig("r", "d").to_dict()


def test_session_dict_round_trip_keeps_tool_calls():
    record = ToolCallRecord(
        tool_name="file-reader",
        server_name="example-server",
        arguments={"path": "a.txt"},
        timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
        result=ToolCallResult(
            ToolCallStatus.FAILURE, output="ENOENT", error={"code": "TOOL_INVOCATION_FAILED"}
        ),
    )
    session = Session.create("prompt", role=RoleConfig("r", "d")).with_message(
        Message.create(MessageType.USER, "{}", tool_calls=(record,))
    )

    data = session.to_dict()

    assert data["systemPrompt"] == "prompt"
    assert data["messages"][0]["metadata"]["toolCalls"][0]["parameters"] == {"path": "a.txt"}
    assert Session.from_dict(data) == session


def test_message_without_tool_calls_has_no_metadata():
    data = Message.create(MessageType.SYSTEM, "note").to_dict()
    assert "metadata" not in data
    assert data["type"] == "system"


def test_metadata_from_empty_dict_uses_defaults():
    metadata = SessionMetadata.from_dict({})
    assert metadata.role is None
    assert metadata.custom == {}
    assert metadata.environment == {}


def test_child_sessions_link_both_ways():
    parent = Session.create("parent")
    child = Session.create("child", parent_id=parent.id)

    linked = parent.with_child(child.id)

    assert linked.child_session_ids == (child.id,)
    assert parent.child_session_ids == ()
    assert Session.from_dict(child.to_dict()).parent_id == parent.id
    assert linked.to_dict()["childSessionIds"] == [child.id]
    with pytest.raises(ValueError, match="immutable"):
        child.merged(parent_id=None)


def test_session_without_hierarchy_fields_loads():
    session = Session.from_dict({"id": "session_a"})
    assert session.parent_id is None
    assert session.child_session_ids == ()
