"""
Credential providers - resolve a service's flat configuration map.

fetch() has three outcomes, kept distinct on purpose:
- returns a dict: configuration found
- raises ProviderNotFound: nothing exists for this target/service (service is Skipped)
- raises ProviderError: the backend itself failed (surfaced, never auto-retried)
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict

from reseed.config import ReseedConfig
from reseed.errors import ProviderError, ProviderNotFound
from reseed.runners.base import run_process
from reseed.runners.kubectl import KubectlRunner
from reseed.schemas import Mode, ServiceDescriptor, Target

logger = logging.getLogger(__name__)

NOT_FOUND_MARKER = "ResourceNotFoundException"


class CredentialProvider(ABC):
    """Source of per-service configuration for a target."""

    @abstractmethod
    def fetch(self, target: Target, service: ServiceDescriptor) -> Dict[str, str]:
        """
        Fetch the configuration map for a service.

        Raises:
            ProviderNotFound: No configuration exists for this target/service
            ProviderError: The credential backend failed
        """
        pass


class SecretsManagerProvider(CredentialProvider):
    """
    Reads a JSON secret from AWS Secrets Manager through the aws CLI.

    Secret ids are derived from the config template, e.g.
    onb-1/workflows/ui-builder-api/config.
    """

    def __init__(self, config: ReseedConfig, timeout: float = 60):
        self.config = config
        self.timeout = timeout

    def secret_id(self, target: Target, service: ServiceDescriptor) -> str:
        return self.config.secret_id(
            target.client,
            target.environment.value,
            service.name,
            service.environment_scoped,
        )

    def fetch(self, target: Target, service: ServiceDescriptor) -> Dict[str, str]:
        secret_id = self.secret_id(target, service)
        result = run_process(
            [
                self.config.aws, "secretsmanager", "get-secret-value",
                "--secret-id", secret_id,
                "--region", self.config.aws_region,
                "--query", "SecretString",
                "--output", "text",
            ],
            timeout=self.timeout,
        )

        if not result.ok:
            if NOT_FOUND_MARKER in result.output:
                raise ProviderNotFound(
                    f"Secret not found: {secret_id} (environment may not exist)",
                    service=service.name,
                )
            raise ProviderError(
                f"Failed to fetch secret {secret_id} (exit {result.exit_code}): "
                f"{result.output.strip()[:300]}",
                service=service.name,
            )

        return _parse_secret(result.output, secret_id, service.name)


def _parse_secret(text: str, secret_id: str, service_name: str) -> Dict[str, str]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProviderError(f"Secret {secret_id} is not valid JSON: {e}", service=service_name)

    if not isinstance(data, dict):
        raise ProviderError(f"Secret {secret_id} is not a JSON object", service=service_name)

    values: Dict[str, str] = {}
    for key, value in data.items():
        if isinstance(value, (dict, list)):
            raise ProviderError(
                f"Secret {secret_id}: key {key} is not a flat value", service=service_name
            )
        if value is None:
            continue
        values[key] = value if isinstance(value, str) else json.dumps(value)
    return values


class PodEnvironmentProvider(CredentialProvider):
    """
    Uses the running pod's own environment as the service configuration.

    A service without a pod has no configuration in this namespace.
    """

    def __init__(self, runner: KubectlRunner):
        self.runner = runner

    def fetch(self, target: Target, service: ServiceDescriptor) -> Dict[str, str]:
        context = self.runner.locate(target, service)
        if context is None:
            raise ProviderNotFound(
                f"No pod for {service.name} in namespace {target.namespace}",
                service=service.name,
            )
        try:
            return self.runner.read_environment(context)
        except RuntimeError as e:
            raise ProviderError(str(e), service=service.name)


def create_provider(target: Target, runner, config: ReseedConfig) -> CredentialProvider:
    """Credential provider for a target's mode: pod environment (remote) or Secrets Manager (local)."""
    if target.mode == Mode.LOCAL:
        return SecretsManagerProvider(config, timeout=config.probe_timeout_seconds)
    if not isinstance(runner, KubectlRunner):
        raise TypeError(f"Remote targets need a KubectlRunner, got {runner!r}")
    return PodEnvironmentProvider(runner)
