"""
Error classes for reseed.

The taxonomy mirrors how far an error is allowed to travel:
- Run-aborting: InvalidTarget, Interrupted (and an operator decline at the gate)
- Per-service: ProviderNotFound, ProviderError, ValidationFailed,
  MigrationFailed, SeedFailed

Per-service errors are raised inside a service procedure and caught at the
orchestrator boundary, where they become a ServiceOutcome. They never abort
the remaining services.
"""


class ReseedError(Exception):
    """Base exception for reseed."""
    pass


class ConfigError(ReseedError):
    """Configuration file is malformed or contains invalid values."""
    pass


class InvalidTarget(ReseedError):
    """
    Target is not on the allow-list.

    Fatal and pre-execution: no Service Runner call is made once this
    is raised.
    """

    def __init__(self, message: str, client: str = "", environment: str = ""):
        super().__init__(message)
        self.client = client
        self.environment = environment


class ServiceError(ReseedError):
    """Error attributable to exactly one service."""

    def __init__(self, message: str, service: str = "", log_path=None):
        super().__init__(message)
        self.service = service
        self.log_path = log_path


class ProviderNotFound(ServiceError):
    """
    No configuration exists for this target/service.

    Typically an environment that was never provisioned. Non-fatal: the
    service is recorded as Skipped.
    """
    pass


class ProviderError(ServiceError):
    """
    Credential backend failed (unreachable, access denied, bad payload).

    Retryable by the operator but never retried automatically.
    """
    retryable = True


class ValidationFailed(ServiceError):
    """Pre-flight validation failed for a service."""

    def __init__(self, message: str, service: str = "", reasons=None):
        super().__init__(message, service=service)
        self.reasons = list(reasons or [])


class MigrationFailed(ServiceError):
    """Migrations did not apply. Terminal state: Failed."""
    pass


class SeedFailed(ServiceError):
    """Migrations applied but the seed entry point failed. Terminal state: PartialSuccess."""
    pass


class Interrupted(ReseedError):
    """Operator interrupt (Ctrl-C or SIGTERM) during a run."""
    pass
