"""
reseed.runners - Execution backends for service commands.

- KubectlRunner: `kubectl exec` into the service pod (remote targets)
- LocalRunner: local processes in a checked-out service directory (local targets)
"""

from reseed.runners.base import (
    TIMEOUT_EXIT_CODE,
    CommandResult,
    ExecutionContext,
    ServiceRunner,
    run_process,
)
from reseed.runners.kubectl import KubectlRunner
from reseed.runners.local import LocalRunner
from reseed.schemas import Mode

__all__ = [
    "TIMEOUT_EXIT_CODE",
    "CommandResult",
    "ExecutionContext",
    "KubectlRunner",
    "LocalRunner",
    "ServiceRunner",
    "create_runner",
    "run_process",
]


def create_runner(mode: Mode, kubectl: str = "kubectl", default_timeout=None) -> ServiceRunner:
    """Create the runner for a target mode."""
    if mode == Mode.LOCAL:
        return LocalRunner(default_timeout=default_timeout)
    return KubectlRunner(kubectl=kubectl, default_timeout=default_timeout)
