"""
Outcome schemas - per-service results and the run-level audit record.

A ServiceOutcome is created when a service's procedure begins and finalized
exactly once when it ends. A RunSummary collects outcomes incrementally and is
emitted once at run end.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Optional

from .target import Target


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class OutcomeStatus(str, Enum):
    """Terminal status of a service procedure."""
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"  # migrations applied, seed failed
    FAILED = "failed"
    SKIPPED = "skipped"


class Stage(str, Enum):
    """Furthest stage a service procedure reached."""
    NOT_STARTED = "not_started"
    ENVIRONMENT_PREPARED = "environment_prepared"
    MIGRATIONS_APPLIED = "migrations_applied"
    SEEDED = "seeded"

    @property
    def rank(self) -> int:
        return _STAGE_ORDER.index(self)


_STAGE_ORDER = [
    Stage.NOT_STARTED,
    Stage.ENVIRONMENT_PREPARED,
    Stage.MIGRATIONS_APPLIED,
    Stage.SEEDED,
]


class ExitCode(IntEnum):
    """Process exit codes for a reset run."""
    OK = 0
    FAILED = 1
    PARTIAL = 4       # succeeded with warnings: retry seed only
    ABORTED = 3       # invalid target, gate declined, nothing in scope
    INTERRUPTED = 130


def classify(stage: Stage) -> OutcomeStatus:
    """
    Map the furthest stage reached by an attempted service to its status.

    Seeded -> Success; MigrationsApplied -> PartialSuccess; anything earlier
    -> Failed. Skipped is never derived from a stage: it is decided before
    the procedure attempts anything.
    """
    if stage == Stage.SEEDED:
        return OutcomeStatus.SUCCESS
    if stage == Stage.MIGRATIONS_APPLIED:
        return OutcomeStatus.PARTIAL_SUCCESS
    return OutcomeStatus.FAILED


@dataclass
class ServiceOutcome:
    """
    Result of one service's reset procedure.

    Attributes:
        service_name: Service this outcome belongs to
        status: None while in progress; set once by finalize()
        stage_reached: Furthest stage reached
        log_reference: Captured log file for this service
        reason: Human-readable explanation for non-success statuses
        hint: Classification of the failing command's output, if any
        stage_times: When each stage was reached
        commands: Commands executed (or that would have been, in dry-run)
    """
    service_name: str
    status: Optional[OutcomeStatus] = None
    stage_reached: Stage = Stage.NOT_STARTED
    log_reference: Optional[Path] = None
    reason: Optional[str] = None
    hint: Optional[str] = None
    stage_times: dict[Stage, datetime] = field(default_factory=dict)
    commands: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None

    @property
    def finalized(self) -> bool:
        return self.status is not None

    def advance(self, stage: Stage) -> None:
        """Record that the procedure reached `stage`. Stages only move forward."""
        if self.finalized:
            raise RuntimeError(f"{self.service_name}: outcome already finalized")
        if stage.rank <= self.stage_reached.rank:
            raise ValueError(
                f"{self.service_name}: cannot move from {self.stage_reached.value} to {stage.value}"
            )
        self.stage_reached = stage
        self.stage_times[stage] = _utcnow()

    def finalize(self, status: OutcomeStatus, reason: Optional[str] = None) -> "ServiceOutcome":
        """Set the terminal status. May be called once."""
        if self.finalized:
            raise RuntimeError(f"{self.service_name}: outcome already finalized as {self.status.value}")
        self.status = status
        self.reason = reason
        self.ended_at = _utcnow()
        return self

    @property
    def remediation(self) -> Optional[str]:
        """What the operator should do next."""
        if self.status == OutcomeStatus.PARTIAL_SUCCESS:
            return "schema is current; re-run the seed only"
        if self.status == OutcomeStatus.FAILED:
            return "re-run the full procedure for this service"
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "service_name": self.service_name,
            "status": self.status.value if self.status else None,
            "stage_reached": self.stage_reached.value,
            "started_at": self.started_at.isoformat(),
            "stage_times": {s.value: t.isoformat() for s, t in self.stage_times.items()},
            "commands": list(self.commands),
        }
        if self.ended_at:
            result["ended_at"] = self.ended_at.isoformat()
        if self.log_reference:
            result["log_reference"] = str(self.log_reference)
        if self.reason:
            result["reason"] = self.reason
        if self.hint:
            result["hint"] = self.hint
        if self.remediation:
            result["remediation"] = self.remediation
        return result


@dataclass
class RunSummary:
    """
    The audit record of one run.

    Outcomes keep plan order (dicts preserve insertion order).
    """
    target: Optional[Target]
    outcomes: dict[str, ServiceOutcome] = field(default_factory=dict)
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None
    dry_run: bool = False
    interrupted: bool = False
    aborted_reason: Optional[str] = None
    run_dir: Optional[Path] = None

    def record(self, outcome: ServiceOutcome) -> None:
        if outcome.service_name in self.outcomes:
            raise ValueError(f"Outcome for {outcome.service_name} already recorded")
        self.outcomes[outcome.service_name] = outcome

    def by_status(self, status: OutcomeStatus) -> list[ServiceOutcome]:
        return [o for o in self.outcomes.values() if o.status == status]

    @property
    def exit_code(self) -> ExitCode:
        """
        Overall exit signal.

        Skipped services are excluded from the tally. Failed dominates
        PartialSuccess, which degrades the run to "succeeded with warnings".
        """
        if self.interrupted:
            return ExitCode.INTERRUPTED
        if self.aborted_reason:
            return ExitCode.ABORTED
        if self.by_status(OutcomeStatus.FAILED):
            return ExitCode.FAILED
        if self.by_status(OutcomeStatus.PARTIAL_SUCCESS):
            return ExitCode.PARTIAL
        return ExitCode.OK

    @property
    def duration_seconds(self) -> float:
        end = self.ended_at or _utcnow()
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "target": self.target.to_dict() if self.target else None,
            "started_at": self.started_at.isoformat(),
            "dry_run": self.dry_run,
            "interrupted": self.interrupted,
            "exit_code": int(self.exit_code),
            "outcomes": {name: o.to_dict() for name, o in self.outcomes.items()},
        }
        if self.ended_at:
            result["ended_at"] = self.ended_at.isoformat()
        if self.aborted_reason:
            result["aborted_reason"] = self.aborted_reason
        if self.run_dir:
            result["run_dir"] = str(self.run_dir)
        return result
