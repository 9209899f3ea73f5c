"""Role definitions.

Roles are read from a JSON file:

    {
      "roles": {
        "reviewer": {
          "definition": "You are a careful code reviewer.",
          "instructions": "Read files before commenting on them.",
          "availableServers": ["filesystem"]
        }
      },
      "defaultRole": "reviewer"
    }

``availableServers`` is optional; without it a role may use every
configured tool server.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import ConfigurationError, RoleNotFoundError
from .models import RoleConfig

logger = logging.getLogger(__name__)

INVALID_ROLE_CONFIG = "INVALID_ROLE_CONFIG"


def _validate_role(name: str, data) -> List[str]:
    issues = []
    if not isinstance(data, dict):
        return [f"Role '{name}' must be an object"]
    if not isinstance(data.get("definition"), str) or not data["definition"].strip():
        issues.append(f"Role '{name}' requires a non-empty 'definition'")
    if "instructions" in data and not isinstance(data["instructions"], str):
        issues.append(f"Role '{name}': 'instructions' must be a string")
    servers = data.get("availableServers")
    if servers is not None and (
        not isinstance(servers, list) or not all(isinstance(s, str) for s in servers)
    ):
        issues.append(f"Role '{name}': 'availableServers' must be a list of server names")
    return issues


class RoleRegistry:
    """Resolves role names to RoleConfig values."""

    def __init__(self, roles: Iterable[RoleConfig] = (), default_role: Optional[str] = None):
        self._roles: Dict[str, RoleConfig] = {role.name: role for role in roles}
        if default_role is not None and default_role not in self._roles:
            raise RoleNotFoundError(
                f"Default role '{default_role}' is not defined", details={"role": default_role}
            )
        self.default_role = default_role

    @classmethod
    def from_file(cls, path) -> "RoleRegistry":
        """Load roles from a JSON file.

        Raises:
            ConfigurationError: If the file is unreadable or invalid.
        """
        config_path = Path(path)
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Failed to read role config: {e}",
                code=INVALID_ROLE_CONFIG,
                details={"path": str(config_path)},
            ) from e

        roles = data.get("roles") if isinstance(data, dict) else None
        if not isinstance(roles, dict):
            raise ConfigurationError(
                "Role config must contain a 'roles' object",
                code=INVALID_ROLE_CONFIG,
                details={"path": str(config_path)},
            )

        issues = []
        for name, entry in roles.items():
            issues.extend(_validate_role(name, entry))
        default_role = data.get("defaultRole")
        if default_role is not None and default_role not in roles:
            issues.append(f"Default role '{default_role}' is not defined")
        if issues:
            raise ConfigurationError(
                f"Invalid role config: {'; '.join(issues)}",
                code=INVALID_ROLE_CONFIG,
                details={"path": str(config_path), "issues": issues},
            )

        registry = cls(
            (RoleConfig.from_dict(entry, name=name) for name, entry in roles.items()),
            default_role=default_role,
        )
        logger.info(f"Loaded {len(registry)} role(s) from {config_path}")
        return registry

    def get(self, name: str) -> RoleConfig:
        """Resolve a role by name.

        Raises:
            RoleNotFoundError: If no such role is defined.
        """
        role = self._roles.get(name)
        if role is None:
            raise RoleNotFoundError(f"Role '{name}' not found", details={"role": name})
        return role

    def get_default(self) -> Optional[RoleConfig]:
        if self.default_role is None:
            return None
        return self._roles[self.default_role]

    def names(self) -> List[str]:
        return list(self._roles)

    def __contains__(self, name) -> bool:
        return name in self._roles

    def __len__(self) -> int:
        return len(self._roles)
