"""
Confirmation Gate - last stop before destructive work.

The operator must type the configured phrase exactly. Anything else,
including an empty answer, a near miss or end of input, is a decline.
The only bypass is the explicit --yes flag passed at invocation.
"""

import logging
from typing import Callable, Optional

import click
from rich.markup import escape
from rich.panel import Panel

from reseed.preflight import PreflightReport
from reseed.utils import console

logger = logging.getLogger(__name__)


def describe_impact(report: PreflightReport, services_in_scope: int) -> str:
    """Build the impact summary shown at the gate from the pre-flight report."""
    target = report.target
    lines = [
        f"Target: {target.identifier} (client={target.client}, environment={target.environment.value})",
        f"Services in scope: {services_in_scope}",
        "",
        "Datastores that will be reset and reseeded:",
    ]
    if report.datastores:
        lines.extend(f"  - {d}" for d in report.datastores)
    else:
        lines.append("  (none resolved)")

    if report.not_found:
        lines.append("")
        lines.append("Not found (will be skipped):")
        lines.extend(f"  - {name}: {why}" for name, why in report.not_found.items())

    if report.failed:
        lines.append("")
        lines.append("Failed pre-flight validation:")
        for name in report.failed:
            for reason in report.results[name].reasons:
                lines.append(f"  - {name}: {reason}")

    if report.provider_errors:
        lines.append("")
        lines.append(
            "Credential backend errors for: " + ", ".join(report.provider_errors)
            + " (retry later, or continue without them)"
        )
    return "\n".join(lines)


class ConfirmationGate:
    """Blocks until the operator types the confirmation phrase."""

    def __init__(
        self,
        phrase: str,
        assume_yes: bool = False,
        prompt_fn: Optional[Callable[..., str]] = None,
    ):
        if not phrase:
            raise ValueError("Confirmation phrase must not be empty")
        self.phrase = phrase
        self.assume_yes = assume_yes
        self.prompt_fn = prompt_fn or click.prompt

    def confirm(self, summary_of_impact: str) -> bool:
        """
        Present the impact summary and ask for the phrase.

        Returns:
            True only if the phrase was typed exactly, or --yes was given
        """
        console.print(Panel(
            escape(summary_of_impact),
            title="[bold red]This cannot be undone[/bold red]",
            border_style="red",
        ))

        if self.assume_yes:
            logger.warning("Confirmation bypassed with --yes", extra={"event": "confirmation_bypassed"})
            return True

        try:
            answer = self.prompt_fn(
                f"Type '{self.phrase}' to continue",
                default="",
                show_default=False,
            )
        except (click.Abort, EOFError):
            answer = None

        if answer == self.phrase:
            logger.info("Operator confirmed", extra={"event": "confirmation_accepted"})
            return True

        logger.info("Operator declined", extra={"event": "confirmation_declined"})
        return False
