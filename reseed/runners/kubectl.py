"""Kubernetes backend: run service commands with `kubectl exec` in the service pod."""

import logging
from typing import List, Mapping, Optional

from reseed.runners.base import (
    CommandResult,
    ExecutionContext,
    ServiceRunner,
    parse_env_output,
    run_process,
)
from reseed.schemas import ServiceDescriptor, Target

logger = logging.getLogger(__name__)

# Tried in order; the second covers charts that only set the legacy label.
POD_SELECTORS = ("app.kubernetes.io/name={service}", "app={service}")

LOOKUP_TIMEOUT = 30


class KubectlRunner(ServiceRunner):
    """
    Runs commands inside the first pod matching a service's labels.

    The pod already carries its service configuration, so materialize()
    is a no-op and `env` overlays are not applied.
    """

    def __init__(self, kubectl: str = "kubectl", default_timeout: Optional[float] = None):
        super().__init__(default_timeout)
        self.kubectl = kubectl

    def _kubectl(self, args: List[str], timeout: Optional[float] = LOOKUP_TIMEOUT) -> CommandResult:
        return run_process([self.kubectl, *args], timeout=timeout)

    def find_pod(self, target: Target, service_name: str) -> Optional[str]:
        """Name of the first pod for a service in the target namespace, or None."""
        for selector in POD_SELECTORS:
            result = self._kubectl([
                "get", "pods",
                "-n", target.namespace,
                "-l", selector.format(service=service_name),
                "-o", "jsonpath={.items[0].metadata.name}",
            ])
            pod = result.output.strip() if result.ok else ""
            if pod:
                return pod
        return None

    def locate(self, target: Target, service: ServiceDescriptor) -> Optional[ExecutionContext]:
        pod = self.find_pod(target, service.name)
        if pod is None:
            logger.warning(
                f"No pod found for {service.name} in namespace {target.namespace}",
                extra={"service": service.name, "event": "pod_not_found"},
            )
            return None
        return ExecutionContext(target=target, service=service.name, handle=pod)

    def run(
        self,
        context: ExecutionContext,
        command: str,
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        argv = [
            self.kubectl, "exec",
            "-n", context.target.namespace,
            context.handle,
            "--", "sh", "-c", command,
        ]
        return run_process(argv, timeout=self._timeout(timeout), display=command)

    def read_environment(self, context: ExecutionContext) -> dict:
        """The pod's process environment as a flat map."""
        result = self.run(context, "env", timeout=LOOKUP_TIMEOUT)
        if not result.ok:
            raise RuntimeError(
                f"Could not read environment of pod {context.handle} (exit {result.exit_code}): "
                f"{result.output.strip()[:200]}"
            )
        return parse_env_output(result.output)

    def check_target(self, target: Target) -> List[str]:
        result = self._kubectl(["get", "namespace", target.namespace])
        if not result.ok:
            return [f"Namespace '{target.namespace}' not found or not accessible"]
        return []

    def pod_phase(self, target: Target, pod: str) -> str:
        """Pod status phase (Running, Pending, ...) or Unknown."""
        result = self._kubectl([
            "get", "pod", pod,
            "-n", target.namespace,
            "-o", "jsonpath={.status.phase}",
        ])
        phase = result.output.strip() if result.ok else ""
        return phase or "Unknown"
