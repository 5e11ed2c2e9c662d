"""
reseed.schemas - Data structures shared by the reset components.

Target -> RunPlan (of ServiceDescriptors) -> ServiceOutcome -> RunSummary

- Target: validated (client, environment) pair, immutable
- ServiceDescriptor / SchemaRef: static service table rows
- ServiceOutcome: per-service state machine result
- RunSummary: audit record emitted once at run end
"""

from .target import Environment, Mode, Target
from .service import MigrationTool, SchemaRef, ServiceDescriptor
from .outcome import (
    ExitCode,
    OutcomeStatus,
    RunSummary,
    ServiceOutcome,
    Stage,
    classify,
)

__all__ = [
    # Target
    "Environment",
    "Mode",
    "Target",
    # Services
    "MigrationTool",
    "SchemaRef",
    "ServiceDescriptor",
    # Outcomes
    "ExitCode",
    "OutcomeStatus",
    "RunSummary",
    "ServiceOutcome",
    "Stage",
    "classify",
]
