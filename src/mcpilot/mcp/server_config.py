"""
Tool server configuration data structures.

Servers are declared in a JSON file with a top-level "mcpServers" object:

    {
      "mcpServers": {
        "example-server": {
          "command": "python",
          "args": ["-m", "example_server"],
          "env": {"LOG_LEVEL": "info"},
          "timeout": 60,
          "alwaysAllow": ["file-reader"],
          "disabled": false
        }
      }
    }
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
MAX_TIMEOUT = 3600


@dataclass
class ToolServerConfig:
    """Configuration for a tool server.

    Attributes:
        name: Unique identifier for this server instance
        server_command: Command to launch the server (e.g., "uvx", "python")
        server_args: Arguments for the server command
        env: Extra environment variables for the child process
        timeout: Handshake timeout in seconds
        always_allow: Tool names that bypass the approval gate
        disabled: Disabled servers are never started
    """

    name: str
    server_command: str
    server_args: list[str] = field(default_factory=list)
    env: Optional[dict[str, str]] = None
    timeout: int = DEFAULT_TIMEOUT
    always_allow: list[str] = field(default_factory=list)
    disabled: bool = False

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues (empty if valid)."""
        issues = []

        if not self.name:
            issues.append("Server name cannot be empty")

        if not self.server_command:
            issues.append("Server command cannot be empty")

        if self.timeout <= 0 or self.timeout > MAX_TIMEOUT:
            issues.append(f"Invalid timeout: {self.timeout} (must be in 1..{MAX_TIMEOUT})")

        return issues

    @classmethod
    def from_dict(cls, name: str, data: dict, default_timeout: int = DEFAULT_TIMEOUT):
        """Build a config from one "mcpServers" entry.

        Raises:
            ConfigurationError: If the entry or one of its fields has the wrong type.
        """
        if not isinstance(data, dict):
            raise ConfigurationError(f"Server '{name}' configuration must be an object")

        command = data.get("command", "")
        if not isinstance(command, str):
            raise ConfigurationError(f"Server '{name}': 'command' must be a string")

        args = data.get("args") or []
        if not _is_str_list(args):
            raise ConfigurationError(f"Server '{name}': 'args' must be a list of strings")

        env = data.get("env")
        if env is not None and not (
            isinstance(env, dict) and all(isinstance(v, str) for v in env.values())
        ):
            raise ConfigurationError(f"Server '{name}': 'env' must map names to strings")

        timeout = data.get("timeout", default_timeout)
        # bool is an int subclass
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            raise ConfigurationError(f"Server '{name}': 'timeout' must be a number of seconds")

        always_allow = data.get("alwaysAllow") or []
        if not _is_str_list(always_allow):
            raise ConfigurationError(f"Server '{name}': 'alwaysAllow' must be a list of tool names")

        return cls(
            name=name,
            server_command=command,
            server_args=list(args),
            env=dict(env) if env is not None else None,
            timeout=timeout,
            always_allow=list(always_allow),
            disabled=bool(data.get("disabled", False)),
        )


def _is_str_list(value) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def load_server_configs(path, default_timeout: int = DEFAULT_TIMEOUT) -> list[ToolServerConfig]:
    """Load enabled server configurations from an "mcpServers" JSON file.

    Raises:
        ConfigurationError: If the file is unreadable, not JSON, or an entry is invalid.
    """
    config_path = Path(path)
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Failed to read tool server config: {e}", details={"path": str(config_path)}
        ) from e

    servers = data.get("mcpServers") if isinstance(data, dict) else None
    if not isinstance(servers, dict):
        raise ConfigurationError(
            "Tool server config must contain an 'mcpServers' object",
            details={"path": str(config_path)},
        )

    configs = []
    for name, entry in servers.items():
        config = ToolServerConfig.from_dict(name, entry, default_timeout=default_timeout)
        issues = config.validate()
        if issues:
            raise ConfigurationError(
                f"Invalid server configuration '{name}': {', '.join(issues)}",
                details={"path": str(config_path), "server": name},
            )
        if config.disabled:
            logger.info(f"Skipping disabled server: {name}")
            continue
        configs.append(config)

    return configs
