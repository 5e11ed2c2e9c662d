"""
Run reporting - the human-readable summary and the JSON audit file.
"""

import json
import logging
from pathlib import Path

from rich.markup import escape
from rich.table import Table

from reseed.orchestrator import interrupted_outcomes
from reseed.preflight import PreflightReport
from reseed.schemas import ExitCode, OutcomeStatus, RunSummary
from reseed.utils import (
    console,
    format_duration,
    print_banner,
    print_error,
    print_info,
    print_success,
    print_warning,
)

logger = logging.getLogger(__name__)

SUMMARY_FILE = "summary.json"

_STATUS_STYLE = {
    OutcomeStatus.SUCCESS: "[green]success[/green]",
    OutcomeStatus.PARTIAL_SUCCESS: "[yellow]partial[/yellow]",
    OutcomeStatus.FAILED: "[red]failed[/red]",
    OutcomeStatus.SKIPPED: "[dim]skipped[/dim]",
}


def render_preflight(report: PreflightReport) -> None:
    """Print pre-flight results per service."""
    print_banner("Pre-flight validation")
    for problem in report.target_problems:
        print_error(escape(problem))
    for name, result in report.results.items():
        if result.passed:
            print_success(f"{name}: ready")
        else:
            for reason in result.reasons:
                print_error(f"{name}: {escape(reason)}")
    for name, why in report.not_found.items():
        print_warning(f"{name}: not found, will be skipped ({escape(why)})")


def render_summary(summary: RunSummary) -> None:
    """Print the final outcome table and what to do next."""
    title = "Dry run summary" if summary.dry_run else "Reset summary"
    print_banner(title)

    if summary.aborted_reason:
        print_warning(f"Run aborted: {escape(summary.aborted_reason)}. No changes were made.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Stage")
    table.add_column("Details")

    for outcome in summary.outcomes.values():
        status = _STATUS_STYLE.get(outcome.status, "?") if outcome.status else "?"
        table.add_row(
            outcome.service_name,
            status,
            outcome.stage_reached.value,
            escape(outcome.reason or ""),
        )
    console.print(table)

    counts = {s: len(summary.by_status(s)) for s in OutcomeStatus}
    console.print(
        f"Success: {counts[OutcomeStatus.SUCCESS]}  "
        f"Partial: {counts[OutcomeStatus.PARTIAL_SUCCESS]}  "
        f"Failed: {counts[OutcomeStatus.FAILED]}  "
        f"Skipped: {counts[OutcomeStatus.SKIPPED]}  "
        f"({format_duration(summary.duration_seconds)})"
    )

    for outcome in summary.outcomes.values():
        if outcome.remediation:
            print_info(f"{outcome.service_name}: {outcome.remediation} (log: {escape(str(outcome.log_reference))})")

    if summary.run_dir:
        print_info(f"Logs: {escape(str(summary.run_dir))}")

    code = summary.exit_code
    if code == ExitCode.OK:
        if summary.dry_run:
            print_success("Dry run complete. Re-run without --dry-run to apply.")
        else:
            print_success("All services reset and reseeded")
            print_info("Next: reset the workflow repositories for this client separately if needed")
    elif code == ExitCode.PARTIAL:
        print_warning("Completed with warnings: schemas are current, re-run the failed seeds only")
    elif code == ExitCode.INTERRUPTED:
        names = ", ".join(o.service_name for o in interrupted_outcomes(summary))
        print_error(f"Interrupted: re-run the full procedure for {names or 'the remaining services'}")
    else:
        print_error("Some services failed: re-run the full procedure for them")


def write_summary(summary: RunSummary, path: Path) -> Path:
    """
    Write the RunSummary as JSON.

    Args:
        summary: Finished run summary
        path: File or directory (summary.json is used inside a directory)

    Returns:
        Path written
    """
    if path.is_dir():
        path = path / SUMMARY_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(summary.to_dict(), f, indent=2)
    logger.info(f"Summary written to {path}", extra={"event": "summary_written"})
    return path
