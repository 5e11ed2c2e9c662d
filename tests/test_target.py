"""Tests for the Target Resolver."""

from pathlib import Path

import pytest

from reseed.config import ReseedConfig
from reseed.errors import InvalidTarget
from reseed.schemas import Environment, Mode
from reseed.target import TargetResolver


@pytest.fixture
def resolver():
    return TargetResolver(ReseedConfig())


class TestResolve:

    def test_valid_remote_target(self, resolver):
        target = resolver.resolve("qa", "sandbox")
        assert target.client == "qa"
        assert target.environment == Environment.SANDBOX
        assert target.identifier == "qa-sandbox"

    def test_unknown_client(self, resolver):
        with pytest.raises(InvalidTarget, match="acme") as exc:
            resolver.resolve("acme", "sandbox")
        assert exc.value.client == "acme"

    @pytest.mark.parametrize("client", ["q", "qa-", "QA", " qa", "onb", "onb-10", "qa-poc-2"])
    def test_exact_match_only(self, resolver, client):
        with pytest.raises(InvalidTarget):
            resolver.resolve(client, "sandbox")

    @pytest.mark.parametrize("environment", ["prod", "Sandbox", "staging", "", "sandbox "])
    def test_environment_exact(self, resolver, environment):
        with pytest.raises(InvalidTarget, match="Environment"):
            resolver.resolve("qa", environment)

    def test_narrowed_environments(self):
        resolver = TargetResolver(ReseedConfig(allowed_environments=("sandbox",)))
        with pytest.raises(InvalidTarget):
            resolver.resolve("qa", "production")

    def test_local_uses_given_workspace(self, resolver, tmp_path):
        target = resolver.resolve("qa", "sandbox", mode=Mode.LOCAL, workspace_root=tmp_path)
        assert target.mode == Mode.LOCAL
        assert target.workspace_root == tmp_path

    def test_local_falls_back_to_config(self, tmp_path):
        resolver = TargetResolver(ReseedConfig(workspace_root=tmp_path))
        target = resolver.resolve("qa", "sandbox", mode=Mode.LOCAL)
        assert target.workspace_root == tmp_path

    def test_local_without_workspace(self, resolver):
        with pytest.raises(InvalidTarget, match="workspace"):
            resolver.resolve("qa", "sandbox", mode=Mode.LOCAL)

    def test_local_workspace_is_absolute(self, resolver):
        target = resolver.resolve("qa", "sandbox", mode=Mode.LOCAL, workspace_root=Path("checkouts"))
        assert target.workspace_root.is_absolute()
