"""
CLI interface for reseed.

Resets and reseeds every service database of one client environment:

    reseed run CLIENT ENVIRONMENT [--dry-run] [--yes]

Flow: resolve target -> pre-flight validation -> confirmation gate ->
per-service reset in dependency order -> summary.
"""

import signal
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich.markup import escape
from rich.table import Table

from reseed import __version__
from reseed.confirm import ConfirmationGate, describe_impact
from reseed.credentials import create_provider
from reseed.errors import ConfigError, Interrupted, InvalidTarget
from reseed.orchestrator import ResetOrchestrator
from reseed.preflight import PreflightValidator
from reseed.registry import SERVICES, PlanError, UnknownServiceError, build_run_plan
from reseed.report import render_preflight, render_summary, write_summary
from reseed.runners import KubectlRunner, LocalRunner, create_runner
from reseed.runners.local import ENV_BACKUP
from reseed.schemas import ExitCode, Mode, OutcomeStatus, RunSummary, Stage
from reseed.target import TargetResolver
from reseed.utils import (
    console,
    print_banner,
    print_error,
    print_info,
    print_success,
    print_warning,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="reseed")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Config file (default: $RESEED_HOME/config.yaml)")
@click.pass_context
def main(ctx, config_path: Optional[Path]):
    """
    reseed - Reset and reseed service databases for a client environment.
    """
    from reseed.config import load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path)
    except ConfigError as e:
        # init must still work with a broken config; other commands check
        ctx.obj["config_error"] = str(e)


def _require_config(ctx):
    if "config" not in ctx.obj:
        print_error(f"Config not loaded: {escape(ctx.obj.get('config_error', 'Unknown error'))}")
        click.echo("Run 'reseed init --force' to write a default configuration file.", err=True)
        raise SystemExit(int(ExitCode.ABORTED))
    return ctx.obj["config"]


def _resolve(ctx, client: str, environment: str, local: bool, workspace: Optional[Path]):
    config = _require_config(ctx)
    mode = Mode.LOCAL if (local or workspace) else Mode.REMOTE
    try:
        target = TargetResolver(config).resolve(client, environment, mode=mode, workspace_root=workspace)
    except InvalidTarget as e:
        print_error(escape(str(e)))
        raise SystemExit(int(ExitCode.ABORTED))
    return config, target


def _make_run_dir(log_root: Path, target) -> Path:
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    run_dir = Path(log_root) / f"{target.namespace}-{stamp}"
    run_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
    return run_dir


def _progress(event: str, **kwargs) -> None:
    """Render orchestrator progress events."""
    if event == "service_start":
        print_banner(f"[{kwargs['index']}/{kwargs['total']}] {kwargs['service']}")
    elif event == "command":
        prefix = "[DRY-RUN] would run:" if kwargs.get("dry_run") else "$"
        console.print(f"  [dim]{escape(prefix)} {escape(kwargs['command'])}[/dim]", highlight=False)
    elif event == "stage":
        stage: Stage = kwargs["stage"]
        print_info(f"{kwargs['service']}: {stage.value.replace('_', ' ')}")
    elif event == "service_end":
        outcome = kwargs["outcome"]
        message = f"{outcome.service_name}: {outcome.status.value}"
        if outcome.reason:
            message += f" ({escape(outcome.reason)})"
        if outcome.status == OutcomeStatus.SUCCESS:
            print_success(message)
        elif outcome.status == OutcomeStatus.FAILED:
            print_error(message)
        else:
            print_warning(message)


def _raise_interrupted(signum, frame):
    raise Interrupted(f"received signal {signum}")


@main.command("run")
@click.argument("client")
@click.argument("environment")
@click.option("--dry-run", is_flag=True, help="Run read-only checks and show what would be executed")
@click.option("--yes", "assume_yes", is_flag=True, help="Skip the confirmation prompt (non-interactive)")
@click.option("--local", is_flag=True, help="Run against local service checkouts instead of the cluster")
@click.option("--workspace", type=click.Path(path_type=Path), help="Root holding one checkout per service (implies --local)")
@click.option("--service", "-s", "services", multiple=True, help="Only reset these services (repeatable)")
@click.option("--verbose", "-v", is_flag=True, help="Also stream the run log to the console")
@click.pass_context
def run(ctx, client: str, environment: str, dry_run: bool, assume_yes: bool, local: bool,
        workspace: Optional[Path], services: tuple, verbose: bool):
    """Reset and reseed all service databases of CLIENT ENVIRONMENT."""
    config, target = _resolve(ctx, client, environment, local, workspace)

    try:
        plan = build_run_plan(services or None)
    except (UnknownServiceError, PlanError) as e:
        print_error(escape(str(e)))
        raise SystemExit(int(ExitCode.ABORTED))

    run_dir = _make_run_dir(config.log_root, target)
    setup_logging(
        run_dir / "reseed.log",
        log_level="DEBUG" if verbose else config.log_level,
        log_format=config.log_format,
        console_output=verbose,
    )

    if dry_run:
        click.echo("=" * 50)
        click.echo("=== DRY RUN MODE === (no commands that change state)")
        click.echo("=" * 50)

    print_banner(f"reseed {target.identifier}")
    print_info(f"Plan: {' -> '.join(plan.names)}")
    for owner, dependent in plan.barriers:
        print_info(f"{owner} completes before {dependent} migrates (shared schema)")

    runner = create_runner(target.mode, kubectl=config.kubectl, default_timeout=config.command_timeout_seconds)
    provider = create_provider(target, runner, config)

    report = PreflightValidator(runner, provider, probe_timeout=config.probe_timeout_seconds).validate(target, plan)
    render_preflight(report)

    if report.target_problems:
        summary = RunSummary(target=target, run_dir=run_dir, dry_run=dry_run,
                             aborted_reason="; ".join(report.target_problems))
        summary.ended_at = summary.started_at
        render_summary(summary)
        write_summary(summary, run_dir)
        raise SystemExit(int(summary.exit_code))

    if dry_run:
        confirmed = True
    else:
        gate = ConfirmationGate(config.confirmation_phrase, assume_yes=assume_yes)
        confirmed = gate.confirm(describe_impact(report, len(plan)))

    orchestrator = ResetOrchestrator(
        runner,
        provider,
        run_dir,
        command_timeout=config.command_timeout_seconds,
        dry_run=dry_run,
        progress_callback=_progress,
    )

    previous = signal.signal(signal.SIGTERM, _raise_interrupted)
    try:
        summary = orchestrator.run(target, plan, confirmed=confirmed)
    finally:
        signal.signal(signal.SIGTERM, previous)

    render_summary(summary)
    write_summary(summary, run_dir)
    raise SystemExit(int(summary.exit_code))


@main.command("status")
@click.argument("client")
@click.argument("environment")
@click.option("--local", is_flag=True, help="Inspect local service checkouts")
@click.option("--workspace", type=click.Path(path_type=Path), help="Root holding one checkout per service (implies --local)")
@click.pass_context
def status(ctx, client: str, environment: str, local: bool, workspace: Optional[Path]):
    """Show where each service of CLIENT ENVIRONMENT is deployed."""
    config, target = _resolve(ctx, client, environment, local, workspace)
    runner = create_runner(target.mode, kubectl=config.kubectl)

    problems = runner.check_target(target)
    if problems:
        for problem in problems:
            print_error(escape(problem))
        raise SystemExit(int(ExitCode.ABORTED))

    table = Table(title=f"Services in {target.identifier}", show_header=True, header_style="bold")
    table.add_column("Service")
    if target.mode == Mode.LOCAL:
        table.add_column("Checkout")
        table.add_column("Notes")
    else:
        table.add_column("Pod")
        table.add_column("Phase")

    for service in SERVICES:
        if isinstance(runner, KubectlRunner):
            pod = runner.find_pod(target, service.name)
            if pod is None:
                table.add_row(service.name, "[dim]not deployed[/dim]", "")
            else:
                table.add_row(service.name, pod, runner.pod_phase(target, pod))
        elif isinstance(runner, LocalRunner):
            service_dir = runner.service_dir(target, service.name)
            if not service_dir.is_dir():
                table.add_row(service.name, "[dim]missing[/dim]", "")
            else:
                note = f"stale {ENV_BACKUP} present" if (service_dir / ENV_BACKUP).exists() else ""
                table.add_row(service.name, str(service_dir), note)

    console.print(table)


@main.command("services")
def list_services():
    """List the service table and the default execution order."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("#")
    table.add_column("Service")
    table.add_column("Tool")
    table.add_column("Schemas")
    table.add_column("Seed")

    for index, service in enumerate(SERVICES, start=1):
        schemas = []
        for schema in service.schema_set:
            label = f"{schema.logical_name} ({schema.connection_env})"
            if schema.shared:
                label += " shared" if schema.owned_by(service.name) else f" shared, owner {schema.owner}"
            if not schema.resettable:
                label += " never dropped"
            schemas.append(label)
        table.add_row(str(index), service.name, service.migration_tool.value, "\n".join(schemas), service.seed_command)

    console.print(table)
    plan = build_run_plan()
    for owner, dependent in plan.barriers:
        click.echo(f"{owner} always runs to completion before {dependent} migrates")


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize reseed configuration."""
    from reseed.config import ReseedConfig, get_reseed_home
    import yaml

    home = get_reseed_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    cfg_path.write_text(yaml.safe_dump(ReseedConfig().to_dict(), sort_keys=False))
    click.echo(f"Initialized reseed config at {cfg_path}")


if __name__ == "__main__":
    main()
