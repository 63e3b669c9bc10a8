"""Environment collaborator — managed environment variables for executions.

Holds key/value pairs configured by the operator (API tokens, base URLs)
and overlays them on the ambient process environment for each spawned
runbook. Managed values win over ambient ones with the same name.

Example::

    env = EnvironmentManager()
    env.set_variable("API_TOKEN", "s3cr3t", is_secret=True)
    env.get_environment_for_execution()["API_TOKEN"]   # 's3cr3t'
    env.get_masked_variables()[0].value                # '••••••'
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol

from runbook_admin.core.logging import get_logger
from runbook_admin.execution.command import get_original_environment
from runbook_admin.execution.models import utcnow

logger = get_logger(__name__)

MASK_CHAR = "•"


class EnvironmentProvider(Protocol):
    """What the Process Runner needs from an environment collaborator."""

    def get_environment_for_execution(self) -> dict[str, str]: ...


@dataclass
class EnvironmentVariable:
    key: str
    value: str
    description: str | None = None
    is_secret: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class EnvironmentManager:
    """In-memory store of managed environment variables."""

    def __init__(self, variables: dict[str, str] | None = None) -> None:
        self._variables: dict[str, EnvironmentVariable] = {}
        for key, value in (variables or {}).items():
            self.set_variable(key, value)

    def set_variable(
        self,
        key: str,
        value: str,
        description: str | None = None,
        is_secret: bool = False,
    ) -> EnvironmentVariable:
        now = utcnow()
        existing = self._variables.get(key)
        variable = EnvironmentVariable(
            key=key,
            value=value,
            description=description,
            is_secret=is_secret,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self._variables[key] = variable
        logger.info("environment.variable_set", key=key, is_secret=is_secret)
        return variable

    def get_variable(self, key: str) -> str | None:
        variable = self._variables.get(key)
        return variable.value if variable else None

    def delete_variable(self, key: str) -> bool:
        if key in self._variables:
            del self._variables[key]
            logger.info("environment.variable_deleted", key=key)
            return True
        return False

    def get_all_variables(self) -> list[EnvironmentVariable]:
        return sorted(self._variables.values(), key=lambda v: v.key)

    def get_masked_variables(self) -> list[EnvironmentVariable]:
        """All variables, with secret values replaced by bullets."""
        return [
            replace(v, value=MASK_CHAR * len(v.value)) if v.is_secret else v
            for v in self.get_all_variables()
        ]

    def get_environment_for_execution(self) -> dict[str, str]:
        """Ambient environment (startup ``PATH``) overlaid with managed variables."""
        env = get_original_environment()
        for key, variable in self._variables.items():
            env[key] = variable.value
        return env
