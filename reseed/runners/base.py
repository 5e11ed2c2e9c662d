"""
Base classes for service runners.

A ServiceRunner executes a shell-level command string in one service's
execution context (a pod or a local checkout) and returns the captured
combined output plus exit status. It never interprets the output.
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

from reseed.schemas import ServiceDescriptor, Target

logger = logging.getLogger(__name__)

# Exit status reported for commands killed by the timeout policy (as coreutils timeout).
TIMEOUT_EXIT_CODE = 124


@dataclass(frozen=True)
class ExecutionContext:
    """
    Handle to where a service's commands run.

    Attributes:
        target: Target the context belongs to
        service: Service name
        handle: Pod name (remote) or service directory (local)
    """
    target: Target
    service: str
    handle: str


@dataclass(frozen=True)
class CommandResult:
    """Captured result of one command."""
    command: str
    exit_code: int
    output: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def run_process(
    argv: Sequence[str],
    timeout: Optional[float],
    display: Optional[str] = None,
    **kwargs,
) -> CommandResult:
    """
    Run a process to completion, capturing stdout and stderr together.

    Args:
        argv: Command and arguments
        timeout: Seconds before the process is killed (None = no limit)
        display: Command string recorded in the result (default: argv joined)
        **kwargs: Passed to subprocess.run (cwd, env)

    Returns:
        CommandResult. A missing executable yields exit code 127; a timeout
        yields TIMEOUT_EXIT_CODE with timed_out set.
    """
    display = display or " ".join(argv)
    logger.debug(f"Executing: {display}")
    try:
        result = subprocess.run(
            list(argv),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
            check=False,  # Don't raise, we'll handle errors
            **kwargs,
        )
    except subprocess.TimeoutExpired as e:
        partial = e.output or ""
        if isinstance(partial, bytes):
            partial = partial.decode(errors="replace")
        return CommandResult(
            command=display,
            exit_code=TIMEOUT_EXIT_CODE,
            output=f"{partial}\n[reseed] command timed out after {timeout}s",
            timed_out=True,
        )
    except FileNotFoundError as e:
        return CommandResult(command=display, exit_code=127, output=f"{e}")

    return CommandResult(command=display, exit_code=result.returncode, output=result.stdout or "")


def parse_env_output(text: str) -> Dict[str, str]:
    """
    Parse `env` style KEY=VALUE lines into a flat map.

    `env` output has no quoting, so a multi-line value keeps only its first
    line; continuation lines without a valid KEY= prefix are ignored, and one
    shaped like KEY=VALUE is read as its own entry.
    """
    values: Dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep and key and key.replace("_", "").isalnum() and not key[0].isdigit():
            values[key] = value
    return values


class ServiceRunner(ABC):
    """
    Abstract base class for execution backends.

    Each backend must implement:
    - locate(): find a service's execution context (None if absent)
    - run(): execute a command there and capture its output
    - check_target(): confirm the target itself is reachable
    """

    def __init__(self, default_timeout: Optional[float] = None):
        self.default_timeout = default_timeout

    @abstractmethod
    def locate(self, target: Target, service: ServiceDescriptor) -> Optional[ExecutionContext]:
        """
        Find the execution context for a service.

        Returns:
            ExecutionContext, or None if the pod/workspace does not exist
        """
        pass

    @abstractmethod
    def run(
        self,
        context: ExecutionContext,
        command: str,
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        """
        Execute a shell command in the context.

        Args:
            context: Where to run
            command: Shell-level command string
            timeout: Seconds before the command is killed (default: runner default)
            env: Extra environment for this command only, if the backend supports it

        Returns:
            CommandResult with combined output and exit status
        """
        pass

    @abstractmethod
    def check_target(self, target: Target) -> List[str]:
        """
        Confirm the target is reachable.

        Returns:
            List of problems (empty if reachable)
        """
        pass

    @contextmanager
    def materialize(self, context: ExecutionContext, config_map: Mapping[str, str]) -> Iterator[None]:
        """
        Make config_map visible to commands run in context for the duration
        of the block, restoring any prior configuration on every exit path.

        Default: nothing to materialize.
        """
        yield

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return timeout if timeout is not None else self.default_timeout

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(default_timeout={self.default_timeout})"
