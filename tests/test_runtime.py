"""Tests for runtime initialization module."""

import logging
from unittest.mock import patch

import pytest

from mcpilot.config import get_config, is_config_initialized, reset_config
from mcpilot.runtime import LOG_FORMAT, init_runtime, is_initialized, reset_runtime


@pytest.fixture(autouse=True)
def reset_state(monkeypatch):
    """Reset runtime and config state before each test."""
    monkeypatch.delenv("MCPILOT_LOG_LEVEL", raising=False)
    reset_runtime()
    reset_config()
    yield
    reset_runtime()
    reset_config()


def test_init_runtime_loads_dotenv():
    with patch("mcpilot.runtime.load_dotenv") as mock_load:
        init_runtime()
        mock_load.assert_called_once()
        assert is_initialized()
        assert is_config_initialized()


def test_init_runtime_idempotent():
    with patch("mcpilot.runtime.load_dotenv") as mock_load:
        init_runtime()
        init_runtime()
        init_runtime()
        mock_load.assert_called_once()


def test_init_runtime_with_log_level():
    with (
        patch("mcpilot.runtime.load_dotenv"),
        patch("mcpilot.runtime.logging.basicConfig") as mock_config,
    ):
        init_runtime(log_level="debug")
        mock_config.assert_called_once_with(level=logging.DEBUG, format=LOG_FORMAT)


def test_init_runtime_uses_env_log_level(monkeypatch):
    monkeypatch.setenv("MCPILOT_LOG_LEVEL", "WARNING")
    with (
        patch("mcpilot.runtime.load_dotenv"),
        patch("mcpilot.runtime.logging.basicConfig") as mock_config,
    ):
        init_runtime()
        mock_config.assert_called_once_with(level=logging.WARNING, format=LOG_FORMAT)


def test_init_runtime_without_log_level():
    with (
        patch("mcpilot.runtime.load_dotenv"),
        patch("mcpilot.runtime.logging.basicConfig") as mock_config,
    ):
        init_runtime(log_level=None)
        mock_config.assert_not_called()


def test_init_runtime_with_invalid_log_level_rolls_back():
    with patch("mcpilot.runtime.load_dotenv"):
        with pytest.raises(ValueError, match="Invalid log level"):
            init_runtime(log_level="INVALID")
    assert not is_initialized()
    assert not is_config_initialized()


def test_config_available_after_init(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")
    with patch("mcpilot.runtime.load_dotenv"):
        init_runtime()
    assert get_config().openai_api_key == "from-env"
