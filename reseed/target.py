"""
Target Resolver - turn user input into a validated Target.

Exact-match allow-list check only; no I/O. Whether the namespace or
workspace actually exists is checked later by the pre-flight validator.
"""

from pathlib import Path
from typing import Optional

from reseed.config import ReseedConfig
from reseed.errors import InvalidTarget
from reseed.schemas import Environment, Mode, Target


class TargetResolver:
    """Validates (client, environment) against the configured allow-list."""

    def __init__(self, config: ReseedConfig):
        self._allowed_clients = frozenset(config.allowed_clients)
        self._allowed_environments = frozenset(config.allowed_environments)
        self._default_workspace = config.workspace_root

    @property
    def allowed_clients(self) -> list[str]:
        return sorted(self._allowed_clients)

    def resolve(
        self,
        client: str,
        environment: str,
        mode: Mode = Mode.REMOTE,
        workspace_root: Optional[Path] = None,
    ) -> Target:
        """
        Resolve a target.

        Args:
            client: Client name, must exactly match an allow-list entry
            environment: Exactly "sandbox" or "production"
            mode: remote (namespace) or local (workspace checkout)
            workspace_root: Local checkout root; defaults to config.workspace_root

        Returns:
            Immutable Target

        Raises:
            InvalidTarget: If client or environment is not allowed, or a local
                target has no workspace root
        """
        if client not in self._allowed_clients:
            raise InvalidTarget(
                f"Client '{client}' is not in the allowed list. "
                f"Allowed clients: {', '.join(self.allowed_clients)}",
                client=client,
                environment=environment,
            )

        if environment not in self._allowed_environments:
            raise InvalidTarget(
                f"Environment '{environment}' is not allowed. "
                f"Allowed environments: {', '.join(sorted(self._allowed_environments))}",
                client=client,
                environment=environment,
            )

        if mode == Mode.LOCAL:
            root = workspace_root or self._default_workspace
            if root is None:
                raise InvalidTarget(
                    "Local mode requires a workspace root (--workspace or workspace_root in config)",
                    client=client,
                    environment=environment,
                )
            return Target(client, Environment(environment), Mode.LOCAL, Path(root).expanduser().absolute())

        return Target(client, Environment(environment), Mode.REMOTE)
