"""Reset Orchestrator - drives every in-scope service through reset and reseed.

Per service, a small state machine:

    NotStarted -> EnvironmentPrepared -> MigrationsApplied -> Seeded

Environment preparation fetches the service configuration and materializes it
into the execution context (scoped, restored on every exit path). Migration
applies each declared schema in order; in the local flow the resettable schemas
the service owns are reset to empty first. Seeding runs the service's own entry
point.

Outcomes:
- Seeded                          -> Success
- MigrationsApplied, seed failed  -> PartialSuccess (retry seed only)
- anything earlier failed         -> Failed (re-run everything)
- no pod/workspace, or NotFound   -> Skipped

Services run sequentially in RunPlan order. A failed service never stops the
remaining ones; only an interrupt ends the run early.

Usage:
    orchestrator = ResetOrchestrator(runner, provider, run_dir)
    summary = orchestrator.run(target, plan, confirmed=True)
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from reseed.credentials import CredentialProvider
from reseed.errors import (
    Interrupted,
    MigrationFailed,
    ProviderError,
    ProviderNotFound,
    ServiceError,
    SeedFailed,
    ValidationFailed,
)
from reseed.registry import PlanError, RunPlan
from reseed.runners import CommandResult, ExecutionContext, ServiceRunner
from reseed.schemas import (
    Mode,
    OutcomeStatus,
    RunSummary,
    ServiceDescriptor,
    ServiceOutcome,
    Stage,
    Target,
    classify,
)
from reseed.utils import classify_output, tail

logger = logging.getLogger(__name__)

INTERRUPTED_REASON = "interrupted"
NOT_ATTEMPTED_REASON = "run interrupted before this service started"


class EnvironmentPreparationFailed(ServiceError):
    """A local preparation step (install, client generation) failed."""
    pass


class ResetOrchestrator:
    """
    Runs a RunPlan against a target.

    Args:
        runner: Service Runner for the target's mode
        provider: Credential Provider for the target's mode
        run_dir: Run-scoped directory receiving one <service>.log per service
        command_timeout: Seconds allowed per migration/seed command (None = runner default)
        dry_run: Run read-only steps only and record what would have been executed
        progress_callback: Optional callback(event, **kwargs).
            Events: 'service_start', 'stage', 'command', 'service_end'
    """

    def __init__(
        self,
        runner: ServiceRunner,
        provider: CredentialProvider,
        run_dir: Path,
        command_timeout: Optional[float] = None,
        dry_run: bool = False,
        progress_callback: Callable[..., Any] | None = None,
    ):
        self.runner = runner
        self.provider = provider
        self.run_dir = Path(run_dir)
        self.command_timeout = command_timeout
        self.dry_run = dry_run
        self.progress_callback = progress_callback

    def _emit(self, event: str, **kwargs) -> None:
        if self.progress_callback:
            self.progress_callback(event, **kwargs)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, target: Target, plan: RunPlan, confirmed: bool) -> RunSummary:
        """
        Execute the plan.

        Args:
            target: Resolved target
            plan: Services in execution order
            confirmed: Result of the Confirmation Gate (ignored in dry-run,
                which never mutates)

        Returns:
            RunSummary with exactly one outcome per attempted service. Empty
            with aborted_reason set when not confirmed.
        """
        summary = RunSummary(target=target, dry_run=self.dry_run, run_dir=self.run_dir)

        if not confirmed and not self.dry_run:
            summary.aborted_reason = "declined at confirmation gate"
            summary.ended_at = datetime.now(timezone.utc)
            logger.warning("Run aborted: not confirmed", extra={"event": "run_aborted"})
            return summary

        if not len(plan):
            summary.aborted_reason = "no services in scope"
            summary.ended_at = datetime.now(timezone.utc)
            return summary

        self.run_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            f"Starting {'dry run' if self.dry_run else 'reset'} of {target.identifier}: "
            f"{len(plan)} services",
            extra={"event": "run_started", "metadata": {"plan": plan.names, "barriers": plan.barriers}},
        )

        try:
            for index, service in enumerate(plan, start=1):
                self._emit("service_start", service=service.name, index=index, total=len(plan))
                outcome = self._run_service(target, plan, service, summary)
                self._emit("service_end", service=service.name, outcome=outcome)
        except (KeyboardInterrupt, Interrupted):
            summary.interrupted = True
            for service in plan:
                if service.name not in summary.outcomes:
                    skipped = ServiceOutcome(service_name=service.name)
                    skipped.finalize(OutcomeStatus.SKIPPED, NOT_ATTEMPTED_REASON)
                    summary.record(skipped)
            logger.error("Run interrupted by operator", extra={"event": "run_interrupted"})
        finally:
            summary.ended_at = datetime.now(timezone.utc)

        logger.info(
            f"Run finished: exit={int(summary.exit_code)}, "
            + ", ".join(f"{s.value}={len(summary.by_status(s))}" for s in OutcomeStatus),
            extra={"event": "run_finished", "metadata": summary.to_dict()},
        )
        return summary

    # ------------------------------------------------------------------
    # Per-service procedure
    # ------------------------------------------------------------------

    def _run_service(
        self, target: Target, plan: RunPlan, service: ServiceDescriptor, summary: RunSummary
    ) -> ServiceOutcome:
        """Run one service's procedure and finalize its outcome exactly once."""
        outcome = ServiceOutcome(
            service_name=service.name,
            log_reference=self.run_dir / f"{service.name}.log",
        )
        summary.record(outcome)

        try:
            self._procedure(target, plan, service, outcome, summary)
        except (KeyboardInterrupt, Interrupted):
            if not outcome.finalized:
                outcome.finalize(OutcomeStatus.FAILED, INTERRUPTED_REASON)
            self._log_line(outcome, f"[reseed] {INTERRUPTED_REASON}")
            raise
        except ProviderNotFound as e:
            outcome.finalize(OutcomeStatus.SKIPPED, str(e))
        except ServiceError as e:
            outcome.finalize(classify(outcome.stage_reached), str(e))
            logger.error(
                f"{service.name}: {e}",
                extra={"service": service.name, "event": "service_failed"},
            )
        except Exception as e:
            # Runner or filesystem failure, still attributable to this service
            outcome.finalize(classify(outcome.stage_reached), f"unexpected error: {e}")
            logger.exception(
                f"{service.name}: unexpected error",
                extra={"service": service.name, "event": "service_failed"},
            )
        else:
            if not outcome.finalized:
                outcome.finalize(classify(outcome.stage_reached))

        # Every outcome leaves its log, even when no command ran
        final = f"[reseed] {outcome.status.value}"
        if outcome.reason:
            final += f": {outcome.reason}"
        self._log_line(outcome, final)

        logger.info(
            f"{service.name}: {outcome.status.value} (stage {outcome.stage_reached.value})",
            extra={"service": service.name, "event": "service_finished", "metadata": outcome.to_dict()},
        )
        return outcome

    def _procedure(
        self,
        target: Target,
        plan: RunPlan,
        service: ServiceDescriptor,
        outcome: ServiceOutcome,
        summary: RunSummary,
    ) -> None:
        context = self.runner.locate(target, service)
        if context is None:
            outcome.finalize(OutcomeStatus.SKIPPED, "no pod or workspace found")
            return

        try:
            config_map = self.provider.fetch(target, service)
        except ProviderError as e:
            raise ProviderError(f"credential provider error: {e}", service=service.name) from e

        missing = [key for key in service.required_keys if not config_map.get(key)]
        if missing:
            raise ValidationFailed(
                f"missing configuration keys: {', '.join(missing)}",
                service=service.name,
                reasons=missing,
            )

        if self.dry_run:
            self._dry_run(target, service, outcome)
            return

        with self.runner.materialize(context, config_map):
            self._prepare(context, service, outcome)
            outcome.advance(Stage.ENVIRONMENT_PREPARED)
            self._emit("stage", service=service.name, stage=Stage.ENVIRONMENT_PREPARED)

            self._check_barrier(plan, service, summary)
            self._migrate(context, service, outcome)
            outcome.advance(Stage.MIGRATIONS_APPLIED)
            self._emit("stage", service=service.name, stage=Stage.MIGRATIONS_APPLIED)

            self._step(context, outcome, service.seed_command, SeedFailed, "seed")
            outcome.advance(Stage.SEEDED)
            self._emit("stage", service=service.name, stage=Stage.SEEDED)

    def _dry_run(self, target: Target, service: ServiceDescriptor, outcome: ServiceOutcome) -> None:
        """Record the commands a real run would execute. Nothing is materialized or run."""
        outcome.commands.extend(self.planned_commands(target, service))
        for command in outcome.commands:
            self._emit("command", service=service.name, command=command, dry_run=True)
        self._log_line(outcome, "[reseed] dry run, nothing executed:\n" + "\n".join(outcome.commands))
        outcome.advance(Stage.ENVIRONMENT_PREPARED)
        outcome.finalize(OutcomeStatus.SKIPPED, f"dry run: {len(outcome.commands)} commands not executed")

    def planned_commands(self, target: Target, service: ServiceDescriptor) -> list[str]:
        """Every mutating command the procedure would run for a service, in order."""
        tool = service.migration_tool
        commands: list[str] = []
        if target.mode == Mode.LOCAL:
            commands.extend(service.setup_commands)
            for schema in service.schema_set:
                generate = tool.generate_command(schema.location)
                if generate:
                    commands.append(generate)
        for schema in service.schema_set:
            if target.mode == Mode.LOCAL and schema.droppable_by(service.name):
                commands.append(tool.reset_command(schema.location))
            if schema.bootstrap_sql:
                commands.append(tool.execute_sql_command(schema.bootstrap_sql, schema.location))
            commands.append(tool.apply_command(schema.location))
        commands.append(service.seed_command)
        return commands

    def _prepare(self, context: ExecutionContext, service: ServiceDescriptor, outcome: ServiceOutcome) -> None:
        """Local only: install dependencies and generate ORM clients."""
        if context.target.mode != Mode.LOCAL:
            return
        for command in service.setup_commands:
            self._step(context, outcome, command, EnvironmentPreparationFailed, "environment preparation")
        for schema in service.schema_set:
            generate = service.migration_tool.generate_command(schema.location)
            if generate:
                self._step(context, outcome, generate, EnvironmentPreparationFailed, "client generation")

    def _check_barrier(self, plan: RunPlan, service: ServiceDescriptor, summary: RunSummary) -> None:
        """
        Hold the dependent of a shared schema until its owner is finished.

        Raises:
            PlanError: If the owner has not run yet (plan order is broken)
            MigrationFailed: If the owner failed after touching the shared schema
        """
        owner = plan.owner_of(service.name)
        if owner is None:
            return
        owner_outcome = summary.outcomes.get(owner)
        if owner_outcome is None or not owner_outcome.finalized:
            raise PlanError(f"{service.name} reached migration before its schema owner {owner} finished")
        if (
            owner_outcome.status == OutcomeStatus.FAILED
            and owner_outcome.stage_reached.rank >= Stage.ENVIRONMENT_PREPARED.rank
        ):
            raise MigrationFailed(
                f"shared schema owner {owner} failed; not migrating against its schema",
                service=service.name,
            )

    def _migrate(self, context: ExecutionContext, service: ServiceDescriptor, outcome: ServiceOutcome) -> None:
        tool = service.migration_tool
        for schema in service.schema_set:
            if context.target.mode == Mode.LOCAL and schema.droppable_by(service.name):
                # Only the owner ever drops a schema, and only if it is resettable.
                result = self._exec(context, outcome, tool.reset_command(schema.location))
                if not result.ok:
                    logger.warning(
                        f"{service.name}: reset of '{schema.logical_name}' failed, applying anyway",
                        extra={"service": service.name, "event": "schema_reset_failed"},
                    )
            if schema.bootstrap_sql:
                result = self._exec(context, outcome, tool.execute_sql_command(schema.bootstrap_sql, schema.location))
                if not result.ok:
                    logger.warning(
                        f"{service.name}: bootstrap SQL for '{schema.logical_name}' failed (continuing)",
                        extra={"service": service.name, "event": "bootstrap_failed"},
                    )
            self._step(
                context, outcome, tool.apply_command(schema.location),
                MigrationFailed, f"migrations for '{schema.logical_name}'",
            )

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------

    def _step(
        self,
        context: ExecutionContext,
        outcome: ServiceOutcome,
        command: str,
        error_cls: type[ServiceError],
        description: str,
    ) -> CommandResult:
        """Run a command that must succeed; raise error_cls otherwise."""
        result = self._exec(context, outcome, command)
        if not result.ok:
            outcome.hint = classify_output(result.output)
            detail = "timed out" if result.timed_out else f"exit {result.exit_code}"
            message = f"{description} failed ({detail})"
            if outcome.hint:
                message += f": {outcome.hint}"
            raise error_cls(message, service=outcome.service_name, log_path=outcome.log_reference)
        return result

    def _exec(self, context: ExecutionContext, outcome: ServiceOutcome, command: str) -> CommandResult:
        outcome.commands.append(command)
        self._emit("command", service=outcome.service_name, command=command, dry_run=False)
        logger.debug(f"{outcome.service_name}: $ {command}", extra={"service": outcome.service_name})
        result = self.runner.run(context, command, timeout=self.command_timeout)
        self._log_line(outcome, f"$ {command}\n{result.output.rstrip()}\n[exit {result.exit_code}]")
        if not result.ok:
            logger.debug(
                f"{outcome.service_name}: command failed\n{tail(result.output, 10)}",
                extra={"service": outcome.service_name, "event": "command_failed"},
            )
        return result

    def _log_line(self, outcome: ServiceOutcome, text: str) -> None:
        if outcome.log_reference is None:
            return
        outcome.log_reference.parent.mkdir(parents=True, exist_ok=True)
        with open(outcome.log_reference, "a") as f:
            f.write(text + "\n")


def interrupted_outcomes(summary: RunSummary) -> list[ServiceOutcome]:
    """Outcomes of services that were mid-procedure when the run was interrupted."""
    return [o for o in summary.outcomes.values() if o.reason == INTERRUPTED_REASON]

