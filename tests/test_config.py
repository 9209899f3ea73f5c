"""Tests for configuration repository module."""

from pathlib import Path

import pytest

from mcpilot.config import (
    DEFAULT_MAX_CHILD_DEPTH,
    DEFAULT_MAX_TOOL_TURNS,
    AppConfig,
    get_config,
    is_config_initialized,
    load_config_from_env,
    reset_config,
    set_config,
)

ENV_KEYS = [
    "OPENAI_API_KEY",
    "MCPILOT_OPENAI_MODEL",
    "MCPILOT_MCP_CONFIG",
    "MCPILOT_ROLES_CONFIG",
    "MCPILOT_AUTO_APPROVE_TOOLS",
    "MCPILOT_SERVER_TIMEOUT",
    "MCPILOT_SESSIONS_DIR",
    "MCPILOT_MAX_TOOL_TURNS",
    "MCPILOT_MAX_CHILD_DEPTH",
    "MCPILOT_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def reset_config_state():
    """Reset configuration state before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestAppConfig:
    """Tests for AppConfig dataclass."""

    def test_appconfig_defaults(self):
        config = AppConfig()
        assert config.openai_api_key is None
        assert config.openai_model == "gpt-4o"
        assert config.auto_approve_tools is False
        assert config.server_timeout_seconds == 60
        assert config.max_tool_turns == DEFAULT_MAX_TOOL_TURNS
        assert config.max_child_depth == DEFAULT_MAX_CHILD_DEPTH
        assert Path(config.sessions_dir) == Path.cwd() / ".mcpilot" / "sessions"

    def test_validation_warns_about_missing_api_key(self):
        issues = AppConfig().validate()
        assert len(issues) == 1
        assert "OPENAI_API_KEY" in issues[0]

    def test_validation_passes_with_api_key(self):
        assert AppConfig(openai_api_key="test-key").validate() == []

    def test_validation_catches_invalid_limits(self):
        issues = AppConfig(
            openai_api_key="k", max_tool_turns=0, server_timeout_seconds=-1, max_child_depth=-1
        ).validate()
        assert any("MCPILOT_MAX_TOOL_TURNS" in issue for issue in issues)
        assert any("MCPILOT_SERVER_TIMEOUT" in issue for issue in issues)
        assert any("MCPILOT_MAX_CHILD_DEPTH" in issue for issue in issues)

    def test_validation_catches_missing_config_files(self, tmp_path):
        config = AppConfig(
            openai_api_key="k",
            mcp_config_path=str(tmp_path / "missing-mcp.json"),
            roles_config_path=str(tmp_path / "missing-roles.json"),
        )
        issues = config.validate()
        assert any("MCPILOT_MCP_CONFIG" in issue for issue in issues)
        assert any("MCPILOT_ROLES_CONFIG" in issue for issue in issues)


class TestConfigRepository:
    """Tests for configuration repository functions."""

    def test_is_config_initialized_before_set(self):
        assert not is_config_initialized()

    def test_set_config_stores_instance(self):
        config = AppConfig(openai_api_key="test-key")
        set_config(config)
        assert get_config() is config
        assert is_config_initialized()

    def test_set_config_twice_raises_error(self):
        set_config(AppConfig())
        with pytest.raises(RuntimeError, match="Configuration already set"):
            set_config(AppConfig())

    def test_get_config_before_init_raises_error(self):
        with pytest.raises(RuntimeError, match="Configuration not initialized"):
            get_config()

    def test_reset_config_allows_reinit(self):
        set_config(AppConfig(openai_api_key="key1"))
        reset_config()
        set_config(AppConfig(openai_api_key="key2"))
        assert get_config().openai_api_key == "key2"


class TestLoadConfigFromEnv:
    """Tests for load_config_from_env()."""

    def test_load_with_all_env_vars(self, clean_env, tmp_path):
        mcp_config = tmp_path / "mcp.json"
        mcp_config.write_text("{}")
        clean_env.setenv("OPENAI_API_KEY", "openai-key")
        clean_env.setenv("MCPILOT_OPENAI_MODEL", "gpt-4o-mini")
        clean_env.setenv("MCPILOT_MCP_CONFIG", str(mcp_config))
        clean_env.setenv("MCPILOT_AUTO_APPROVE_TOOLS", "yes")
        clean_env.setenv("MCPILOT_SERVER_TIMEOUT", "30")
        clean_env.setenv("MCPILOT_SESSIONS_DIR", str(tmp_path / "sessions"))
        clean_env.setenv("MCPILOT_MAX_TOOL_TURNS", "4")
        clean_env.setenv("MCPILOT_MAX_CHILD_DEPTH", "0")
        clean_env.setenv("MCPILOT_LOG_LEVEL", "DEBUG")

        config = load_config_from_env()

        assert config.openai_api_key == "openai-key"
        assert config.openai_model == "gpt-4o-mini"
        assert config.mcp_config_path == str(mcp_config)
        assert config.auto_approve_tools is True
        assert config.server_timeout_seconds == 30
        assert config.sessions_dir == str(tmp_path / "sessions")
        assert config.max_tool_turns == 4
        assert config.max_child_depth == 0
        assert config.log_level == "DEBUG"

    def test_load_with_no_env_vars_uses_defaults(self, clean_env):
        config = load_config_from_env()

        assert config.openai_api_key is None
        assert config.mcp_config_path is None
        assert config.auto_approve_tools is False
        assert config.max_tool_turns == DEFAULT_MAX_TOOL_TURNS

    def test_invalid_integer_falls_back_to_default(self, clean_env, caplog):
        clean_env.setenv("MCPILOT_MAX_TOOL_TURNS", "many")

        config = load_config_from_env()

        assert config.max_tool_turns == DEFAULT_MAX_TOOL_TURNS
        assert "Invalid value for MCPILOT_MAX_TOOL_TURNS" in caplog.text

    def test_validation_issues_are_logged(self, clean_env, caplog):
        load_config_from_env()
        assert "OPENAI_API_KEY not set" in caplog.text
