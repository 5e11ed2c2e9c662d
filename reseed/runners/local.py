"""Local backend: run service commands as processes inside a checked-out service directory."""

import logging
import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Mapping, Optional

from dotenv import dotenv_values, set_key

from reseed.runners.base import CommandResult, ExecutionContext, ServiceRunner, run_process
from reseed.schemas import ServiceDescriptor, Target

logger = logging.getLogger(__name__)

ENV_FILE = ".env"
ENV_BACKUP = ".env.backup"


class LocalRunner(ServiceRunner):
    """
    Runs commands with `sh -c` in <workspace_root>/<service>.

    Service configuration is materialized as a temporary .env file; a
    pre-existing .env is moved aside and restored afterwards.
    """

    def __init__(self, shell: str = "sh", default_timeout: Optional[float] = None):
        super().__init__(default_timeout)
        self.shell = shell

    def service_dir(self, target: Target, service_name: str) -> Path:
        return Path(target.workspace_root) / service_name

    def locate(self, target: Target, service: ServiceDescriptor) -> Optional[ExecutionContext]:
        service_dir = self.service_dir(target, service.name)
        if not service_dir.is_dir():
            logger.warning(
                f"No checkout found for {service.name} at {service_dir}",
                extra={"service": service.name, "event": "workspace_not_found"},
            )
            return None
        return ExecutionContext(target=target, service=service.name, handle=str(service_dir))

    def run(
        self,
        context: ExecutionContext,
        command: str,
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        service_dir = Path(context.handle)
        process_env = dict(os.environ)
        env_file = service_dir / ENV_FILE
        if env_file.exists():
            process_env.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
        if env:
            process_env.update(env)

        return run_process(
            [self.shell, "-c", command],
            timeout=self._timeout(timeout),
            display=command,
            cwd=service_dir,
            env=process_env,
        )

    def check_target(self, target: Target) -> List[str]:
        root = Path(target.workspace_root)
        if not root.is_dir():
            return [f"Workspace root not found: {root}"]
        return []

    @contextmanager
    def materialize(self, context: ExecutionContext, config_map: Mapping[str, str]) -> Iterator[None]:
        """
        Write config_map to <service>/.env for the duration of the block.

        An existing .env is moved to .env.backup first and moved back on
        exit, whether the block returns, raises, or is interrupted.
        """
        service_dir = Path(context.handle)
        env_file = service_dir / ENV_FILE
        backup = service_dir / ENV_BACKUP

        if backup.exists():
            # Left over from a run that died without restoring; never clobber it.
            raise RuntimeError(
                f"{backup} already exists; restore or remove it before running again"
            )

        had_original = env_file.exists()
        if had_original:
            logger.info(
                f"Backing up existing {env_file} to {backup}",
                extra={"service": context.service, "event": "env_backed_up"},
            )
            shutil.move(str(env_file), str(backup))

        try:
            env_file.touch(mode=0o600)
            for key, value in config_map.items():
                set_key(str(env_file), key, value, quote_mode="always")
            yield
        finally:
            if env_file.exists():
                env_file.unlink()
            if had_original:
                shutil.move(str(backup), str(env_file))
                logger.info(
                    f"Restored original {env_file}",
                    extra={"service": context.service, "event": "env_restored"},
                )
