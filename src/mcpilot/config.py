"""Application configuration repository.

Centralizes access to configuration values loaded from environment variables.
Values are read once at startup (see runtime.init_runtime) and then served
through get_config(), decoupling the session and tool layers from os.environ.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_TURNS = 10
DEFAULT_SERVER_TIMEOUT = 60
DEFAULT_MAX_CHILD_DEPTH = 3


def _default_sessions_dir() -> str:
    return str(Path.cwd() / ".mcpilot" / "sessions")


@dataclass
class AppConfig:
    """Application configuration container."""

    # LLM collaborator
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"

    # Tool servers and roles
    mcp_config_path: Optional[str] = None
    roles_config_path: Optional[str] = None
    auto_approve_tools: bool = False
    server_timeout_seconds: int = DEFAULT_SERVER_TIMEOUT

    # Session loop
    sessions_dir: Optional[str] = None
    max_tool_turns: int = DEFAULT_MAX_TOOL_TURNS
    max_child_depth: int = DEFAULT_MAX_CHILD_DEPTH

    log_level: Optional[str] = None

    def __post_init__(self):
        if self.sessions_dir is None:
            self.sessions_dir = _default_sessions_dir()

    def validate(self) -> list[str]:
        """Validate configuration and return list of warnings.

        Returns:
            list[str]: Warning messages for missing or invalid configuration.
        """
        issues = []

        if not self.openai_api_key:
            issues.append("OPENAI_API_KEY not set - OpenAI provider will be unavailable")

        if self.max_tool_turns <= 0:
            issues.append(f"Invalid MCPILOT_MAX_TOOL_TURNS: {self.max_tool_turns} (must be > 0)")

        if self.max_child_depth < 0:
            issues.append(
                f"Invalid MCPILOT_MAX_CHILD_DEPTH: {self.max_child_depth} (must be >= 0)"
            )

        if self.server_timeout_seconds <= 0:
            issues.append(
                f"Invalid MCPILOT_SERVER_TIMEOUT: {self.server_timeout_seconds} (must be > 0)"
            )

        if self.mcp_config_path and not Path(self.mcp_config_path).is_file():
            issues.append(f"MCPILOT_MCP_CONFIG does not point to a file: {self.mcp_config_path}")

        if self.roles_config_path and not Path(self.roles_config_path).is_file():
            issues.append(
                f"MCPILOT_ROLES_CONFIG does not point to a file: {self.roles_config_path}"
            )

        return issues


# Global configuration instance (set once at startup)
_config: Optional[AppConfig] = None


def _get_env_int(key: str, default: int) -> int:
    """Safely parse int from environment variable with fallback."""
    val_str = os.getenv(key)
    if val_str is None:
        return default
    try:
        return int(val_str)
    except (ValueError, TypeError):
        logger.warning(f"Invalid value for {key}: '{val_str}'. Using default value: {default}.")
        return default


def _get_env_bool(key: str, default: bool = False) -> bool:
    val_str = os.getenv(key)
    if val_str is None:
        return default
    return val_str.lower() in ("true", "1", "yes")


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables.

    Returns:
        AppConfig: Configuration instance populated from environment variables.
    """
    config = AppConfig(
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("MCPILOT_OPENAI_MODEL", "gpt-4o"),
        mcp_config_path=os.getenv("MCPILOT_MCP_CONFIG"),
        roles_config_path=os.getenv("MCPILOT_ROLES_CONFIG"),
        auto_approve_tools=_get_env_bool("MCPILOT_AUTO_APPROVE_TOOLS"),
        server_timeout_seconds=_get_env_int("MCPILOT_SERVER_TIMEOUT", DEFAULT_SERVER_TIMEOUT),
        sessions_dir=os.getenv("MCPILOT_SESSIONS_DIR") or _default_sessions_dir(),
        max_tool_turns=_get_env_int("MCPILOT_MAX_TOOL_TURNS", DEFAULT_MAX_TOOL_TURNS),
        max_child_depth=_get_env_int("MCPILOT_MAX_CHILD_DEPTH", DEFAULT_MAX_CHILD_DEPTH),
        log_level=os.getenv("MCPILOT_LOG_LEVEL"),
    )

    for issue in config.validate():
        logger.warning(issue)

    return config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance.

    Raises:
        RuntimeError: If configuration has already been set.
    """
    global _config
    if _config is not None:
        raise RuntimeError("Configuration already set. Call reset_config() first.")
    _config = config
    logger.debug("Configuration initialized")


def get_config() -> AppConfig:
    """Get the global configuration instance.

    Raises:
        RuntimeError: If configuration has not been initialized.
                     Call init_runtime() first.
    """
    if _config is None:
        raise RuntimeError(
            "Configuration not initialized. Call init_runtime() at application startup."
        )
    return _config


def reset_config() -> None:
    """Reset configuration state (for tests)."""
    global _config
    _config = None


def is_config_initialized() -> bool:
    return _config is not None
