from contextlib import contextmanager

import pytest

from reseed.config import ReseedConfig
from reseed.credentials import CredentialProvider
from reseed.errors import ProviderError, ProviderNotFound
from reseed.runners import CommandResult, ExecutionContext, ServiceRunner
from reseed.schemas import Environment, Target


def _matches(key, service, command):
    """A match is a command substring, or a (service, substring) pair."""
    if isinstance(key, tuple):
        return key[0] == service and key[1] in command
    return key in command


class FakeRunner(ServiceRunner):
    """In-memory ServiceRunner that records every call.

    Args:
        missing: Service names with no pod/workspace
        failures: {match: exit_code}; a matching command fails
        outputs: {match: output} attached to matching commands
        interrupt_on: match that raises interrupt_exc when run
        interrupt_exc: Exception class raised for interrupt_on (default KeyboardInterrupt)
        problems: Returned by check_target()
    """

    def __init__(self, missing=(), failures=None, outputs=None, interrupt_on=None,
                 interrupt_exc=KeyboardInterrupt, problems=None):
        super().__init__()
        self.missing = set(missing)
        self.failures = failures or {}
        self.outputs = outputs or {}
        self.interrupt_on = interrupt_on
        self.interrupt_exc = interrupt_exc
        self.problems = problems or []
        self.calls = []
        self.events = []

    def locate(self, target, service):
        self.events.append(("locate", service.name))
        if service.name in self.missing:
            return None
        return ExecutionContext(target=target, service=service.name, handle=f"{service.name}-pod")

    def run(self, context, command, timeout=None, env=None):
        self.calls.append((context.service, command))
        self.events.append(("run", context.service, command))
        if self.interrupt_on and _matches(self.interrupt_on, context.service, command):
            raise self.interrupt_exc()
        output = next((o for key, o in self.outputs.items() if _matches(key, context.service, command)), "ok")
        for key, code in self.failures.items():
            if _matches(key, context.service, command):
                return CommandResult(command=command, exit_code=code, output=output)
        return CommandResult(command=command, exit_code=0, output=output)

    def check_target(self, target):
        self.events.append(("check_target", target.identifier))
        return list(self.problems)

    @contextmanager
    def materialize(self, context, config_map):
        self.events.append(("materialize", context.service))
        try:
            yield
        finally:
            self.events.append(("restore", context.service))

    def commands_for(self, service_name):
        return [c for s, c in self.calls if s == service_name]


def database_url(name, host="db.test"):
    return f"postgresql://app:s3cret@{host}:5432/{name}?schema=public"


class FakeProvider(CredentialProvider):
    """CredentialProvider serving a full config map for every service."""

    def __init__(self, not_found=(), errors=(), overrides=None):
        self.not_found = set(not_found)
        self.errors = set(errors)
        self.overrides = overrides or {}
        self.fetched = []

    def fetch(self, target, service):
        self.fetched.append(service.name)
        if service.name in self.not_found:
            raise ProviderNotFound(f"Secret not found for {service.name}", service=service.name)
        if service.name in self.errors:
            raise ProviderError("AccessDeniedException", service=service.name)
        if service.name in self.overrides:
            return dict(self.overrides[service.name])
        return {
            "DATABASE_URL": database_url(service.name),
            "CORE_DATABASE_URL": database_url("los-core-api"),
            "NODE_ENV": "production",
        }


@pytest.fixture
def target():
    return Target(client="qa", environment=Environment.SANDBOX)


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def test_config(tmp_path):
    return ReseedConfig(log_root=tmp_path / "runs")
