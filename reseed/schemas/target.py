"""
Target schema - the validated (client, environment) pair a run operates on.

A Target is created once per run by the Target Resolver and never mutated.
It is passed explicitly through every call instead of living in module state.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class Environment(str, Enum):
    """Deployment environment of a client."""
    SANDBOX = "sandbox"
    PRODUCTION = "production"


class Mode(str, Enum):
    """Where service procedures execute."""
    REMOTE = "remote"  # kubectl exec into the service pod
    LOCAL = "local"    # local process inside a checked-out service directory


@dataclass(frozen=True)
class Target:
    """
    A validated execution target.

    Attributes:
        client: Client name, guaranteed to be on the allow-list
        environment: sandbox or production
        mode: remote (namespace) or local (workspace checkout)
        workspace_root: Root holding one directory per service (local mode only)
    """
    client: str
    environment: Environment
    mode: Mode = Mode.REMOTE
    workspace_root: Optional[Path] = None

    def __post_init__(self):
        if self.mode == Mode.LOCAL and self.workspace_root is None:
            raise ValueError("Local targets require a workspace_root")
        if self.mode == Mode.REMOTE and self.workspace_root is not None:
            raise ValueError("Remote targets do not take a workspace_root")

    @property
    def namespace(self) -> str:
        """Kubernetes namespace, {client}-{environment}."""
        return f"{self.client}-{self.environment.value}"

    @property
    def identifier(self) -> str:
        """Canonical identifier: the namespace (remote) or workspace path (local)."""
        if self.mode == Mode.LOCAL:
            return str(self.workspace_root)
        return self.namespace

    def to_dict(self) -> dict:
        return {
            "client": self.client,
            "environment": self.environment.value,
            "mode": self.mode.value,
            "identifier": self.identifier,
        }
