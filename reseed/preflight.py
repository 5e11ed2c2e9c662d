"""
Pre-flight Validator - read-only checks before anything destructive runs.

For every in-scope service:
1. Fetch its configuration (NotFound -> reported separately, not validated)
2. Check the required connection keys are present
3. Check the migration tool is reachable in the execution context
4. Run exactly one trivial read probe against the service's own datastore

Nothing here writes to a datastore or to the execution context. The
configuration is handed to commands as a per-command environment overlay,
never materialized. A failing service does not stop the run; the report is
shown at the Confirmation Gate and the operator decides.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from reseed.credentials import CredentialProvider
from reseed.errors import ProviderError, ProviderNotFound
from reseed.runners import ServiceRunner
from reseed.schemas import ServiceDescriptor, Target
from reseed.utils import classify_output, describe_database_url

logger = logging.getLogger(__name__)


@dataclass
class PreflightResult:
    """Validation result for one service."""
    service: str
    passed: bool = True
    reasons: List[str] = field(default_factory=list)
    datastores: List[str] = field(default_factory=list)

    def fail(self, reason: str) -> None:
        self.passed = False
        self.reasons.append(reason)


@dataclass
class PreflightReport:
    """
    Validation results for a whole run.

    Attributes:
        target: Target validated
        results: service name -> PreflightResult (validated services only)
        not_found: service name -> why it was excluded from validation
        target_problems: run-level problems (namespace or workspace unreachable)
        provider_errors: services whose credential backend failed
    """
    target: Target
    results: Dict[str, PreflightResult] = field(default_factory=dict)
    not_found: Dict[str, str] = field(default_factory=dict)
    target_problems: List[str] = field(default_factory=list)
    provider_errors: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.target_problems and all(r.passed for r in self.results.values())

    @property
    def failed(self) -> List[str]:
        return [name for name, r in self.results.items() if not r.passed]

    @property
    def datastores(self) -> List[str]:
        """Every datastore the run would touch, as resolved from configuration."""
        seen: List[str] = []
        for result in self.results.values():
            for datastore in result.datastores:
                if datastore not in seen:
                    seen.append(datastore)
        return seen

    def as_mapping(self) -> Dict[str, dict]:
        """service name -> {passed, reasons}."""
        return {
            name: {"passed": r.passed, "reasons": list(r.reasons)}
            for name, r in self.results.items()
        }


class PreflightValidator:
    """Runs the read-only checks for a set of services."""

    def __init__(self, runner: ServiceRunner, provider: CredentialProvider, probe_timeout: Optional[float] = 60):
        self.runner = runner
        self.provider = provider
        self.probe_timeout = probe_timeout

    def validate(self, target: Target, services: Iterable[ServiceDescriptor]) -> PreflightReport:
        """
        Validate every service against the target.

        Args:
            target: Resolved target
            services: In-scope services

        Returns:
            PreflightReport
        """
        report = PreflightReport(target=target)
        report.target_problems = self.runner.check_target(target)
        if report.target_problems:
            for problem in report.target_problems:
                logger.error(problem, extra={"event": "target_unreachable"})
            return report

        for service in services:
            self._validate_service(target, service, report)

        logger.info(
            f"Pre-flight: {len(report.results) - len(report.failed)} passed, "
            f"{len(report.failed)} failed, {len(report.not_found)} not found",
            extra={"event": "preflight_completed", "metadata": report.as_mapping()},
        )
        return report

    def _validate_service(self, target: Target, service: ServiceDescriptor, report: PreflightReport) -> None:
        context = self.runner.locate(target, service)
        if context is None:
            report.not_found[service.name] = f"no pod or workspace for {service.name}"
            return

        try:
            config_map = self.provider.fetch(target, service)
        except ProviderNotFound as e:
            report.not_found[service.name] = str(e)
            return
        except ProviderError as e:
            result = PreflightResult(service=service.name)
            result.fail(f"credential provider error: {e}")
            report.results[service.name] = result
            report.provider_errors.append(service.name)
            logger.warning(str(e), extra={"service": service.name, "event": "provider_error"})
            return

        result = PreflightResult(service=service.name)
        report.results[service.name] = result

        for schema in service.schema_set:
            label = describe_database_url(config_map.get(schema.connection_env))
            if label:
                entry = f"{schema.logical_name}: {label}"
                if not schema.owned_by(service.name):
                    entry += f" (shared, owned by {schema.owner})"
                result.datastores.append(entry)

        missing = [key for key in service.required_keys if not config_map.get(key)]
        if missing:
            result.fail(f"missing configuration keys: {', '.join(missing)}")
            return

        tool = service.migration_tool
        reachable = self.runner.run(
            context, tool.reachability_command(), timeout=self.probe_timeout, env=config_map
        )
        if not reachable.ok:
            result.fail(f"{tool.value} is not reachable in the execution context")
            return

        schema = service.primary_schema
        probe = self.runner.run(
            context,
            tool.probe_command(schema.location),
            timeout=self.probe_timeout,
            env=config_map,
        )
        if not probe.ok:
            hint = classify_output(probe.output)
            reason = f"read probe against '{schema.logical_name}' failed"
            result.fail(f"{reason} ({hint})" if hint else reason)
