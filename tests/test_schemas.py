"""Tests for reseed.schemas."""

from pathlib import Path

import pytest

from reseed.schemas import (
    Environment,
    ExitCode,
    MigrationTool,
    Mode,
    OutcomeStatus,
    RunSummary,
    SchemaRef,
    ServiceDescriptor,
    ServiceOutcome,
    Stage,
    Target,
    classify,
)


class TestTarget:

    def test_remote_identifier_is_namespace(self):
        target = Target("qa", Environment.SANDBOX)
        assert target.namespace == "qa-sandbox"
        assert target.identifier == "qa-sandbox"
        assert target.mode == Mode.REMOTE

    def test_local_identifier_is_workspace(self, tmp_path):
        target = Target("qa", Environment.PRODUCTION, Mode.LOCAL, tmp_path)
        assert target.identifier == str(tmp_path)
        assert target.namespace == "qa-production"

    def test_local_requires_workspace(self):
        with pytest.raises(ValueError):
            Target("qa", Environment.SANDBOX, Mode.LOCAL)

    def test_remote_rejects_workspace(self, tmp_path):
        with pytest.raises(ValueError):
            Target("qa", Environment.SANDBOX, Mode.REMOTE, tmp_path)

    def test_immutable(self):
        target = Target("qa", Environment.SANDBOX)
        with pytest.raises(AttributeError):
            target.client = "dev"

    def test_to_dict(self):
        assert Target("dev", Environment.PRODUCTION).to_dict() == {
            "client": "dev",
            "environment": "production",
            "mode": "remote",
            "identifier": "dev-production",
        }


class TestMigrationTool:

    def test_prisma_commands_take_schema_location(self):
        tool = MigrationTool.PRISMA
        assert tool.apply_command() == "npx prisma migrate deploy"
        assert tool.apply_command("./prisma-core/schema.prisma") == (
            "npx prisma migrate deploy --schema=./prisma-core/schema.prisma"
        )
        assert "--force" in tool.reset_command()
        assert tool.generate_command("x.prisma") == "npx prisma generate --schema=x.prisma"

    def test_typeorm_commands(self):
        tool = MigrationTool.TYPEORM
        assert tool.apply_command() == "npm run db:run-migrations"
        assert tool.generate_command() is None
        assert "SELECT 1" in tool.probe_command()

    def test_execute_sql_quotes_single_quotes(self):
        command = MigrationTool.PRISMA.execute_sql_command("SELECT 'a'")
        assert command.startswith("echo 'SELECT '\"'\"'a'\"'\"''")


class TestServiceDescriptor:

    def _service(self, **kwargs):
        defaults = dict(
            name="svc",
            schema_set=(SchemaRef("main"),),
            migration_tool=MigrationTool.PRISMA,
            seed_command="npm run seed",
        )
        defaults.update(kwargs)
        return ServiceDescriptor(**defaults)

    def test_requires_a_schema(self):
        with pytest.raises(ValueError, match="no schemas"):
            self._service(schema_set=())

    def test_rejects_duplicate_schemas(self):
        with pytest.raises(ValueError, match="duplicate"):
            self._service(schema_set=(SchemaRef("a"), SchemaRef("a", "OTHER_URL")))

    def test_foreign_owner_must_be_required(self):
        with pytest.raises(ValueError, match="owned by"):
            self._service(schema_set=(SchemaRef("core", shared=True, owner="other"),))

    def test_required_keys_are_distinct_connections(self):
        service = self._service(
            schema_set=(SchemaRef("a", "DATABASE_URL"), SchemaRef("b", "DATABASE_URL"), SchemaRef("c", "CORE_URL"))
        )
        assert service.required_keys == ("DATABASE_URL", "CORE_URL")

    def test_owned_and_primary_schema(self):
        service = self._service(
            schema_set=(SchemaRef("core", shared=True, owner="owner"), SchemaRef("own")),
            requires_shared_schema="owner",
        )
        assert [s.logical_name for s in service.owned_schemas()] == ["own"]
        assert service.primary_schema.logical_name == "own"

    def test_unresettable_schema_is_never_droppable(self):
        kept = SchemaRef("integrations", resettable=False)
        assert kept.owned_by("svc")
        assert not kept.droppable_by("svc")
        assert SchemaRef("own").droppable_by("svc")
        assert not SchemaRef("core", shared=True, owner="owner").droppable_by("svc")


class TestServiceOutcome:

    def test_stages_only_move_forward(self):
        outcome = ServiceOutcome("svc")
        outcome.advance(Stage.ENVIRONMENT_PREPARED)
        outcome.advance(Stage.MIGRATIONS_APPLIED)
        with pytest.raises(ValueError):
            outcome.advance(Stage.ENVIRONMENT_PREPARED)
        assert set(outcome.stage_times) == {Stage.ENVIRONMENT_PREPARED, Stage.MIGRATIONS_APPLIED}

    def test_finalize_once(self):
        outcome = ServiceOutcome("svc")
        outcome.finalize(OutcomeStatus.SKIPPED, "not found")
        with pytest.raises(RuntimeError):
            outcome.finalize(OutcomeStatus.FAILED)
        with pytest.raises(RuntimeError):
            outcome.advance(Stage.ENVIRONMENT_PREPARED)

    @pytest.mark.parametrize("stage,status", [
        (Stage.NOT_STARTED, OutcomeStatus.FAILED),
        (Stage.ENVIRONMENT_PREPARED, OutcomeStatus.FAILED),
        (Stage.MIGRATIONS_APPLIED, OutcomeStatus.PARTIAL_SUCCESS),
        (Stage.SEEDED, OutcomeStatus.SUCCESS),
    ])
    def test_classify(self, stage, status):
        assert classify(stage) == status

    def test_remediation(self):
        partial = ServiceOutcome("a").finalize(OutcomeStatus.PARTIAL_SUCCESS)
        failed = ServiceOutcome("b").finalize(OutcomeStatus.FAILED)
        ok = ServiceOutcome("c").finalize(OutcomeStatus.SUCCESS)
        assert "seed only" in partial.remediation
        assert "full procedure" in failed.remediation
        assert ok.remediation is None

    def test_to_dict(self):
        outcome = ServiceOutcome("svc", log_reference=Path("/tmp/svc.log"))
        outcome.advance(Stage.ENVIRONMENT_PREPARED)
        outcome.finalize(OutcomeStatus.FAILED, "boom")
        data = outcome.to_dict()
        assert data["status"] == "failed"
        assert data["stage_reached"] == "environment_prepared"
        assert data["reason"] == "boom"
        assert data["log_reference"] == "/tmp/svc.log"
        assert "environment_prepared" in data["stage_times"]


class TestRunSummary:

    def _summary(self, *statuses):
        summary = RunSummary(target=Target("qa", Environment.SANDBOX))
        for i, status in enumerate(statuses):
            summary.record(ServiceOutcome(f"svc-{i}").finalize(status))
        return summary

    def test_all_success_is_ok(self):
        assert self._summary(OutcomeStatus.SUCCESS, OutcomeStatus.SUCCESS).exit_code == ExitCode.OK

    def test_skipped_excluded_from_tally(self):
        assert self._summary(OutcomeStatus.SUCCESS, OutcomeStatus.SKIPPED).exit_code == ExitCode.OK

    def test_partial_distinct_from_failed(self):
        partial = self._summary(OutcomeStatus.SUCCESS, OutcomeStatus.PARTIAL_SUCCESS)
        failed = self._summary(OutcomeStatus.PARTIAL_SUCCESS, OutcomeStatus.FAILED)
        assert partial.exit_code == ExitCode.PARTIAL
        assert failed.exit_code == ExitCode.FAILED
        assert partial.exit_code != 0 and failed.exit_code != 0

    def test_aborted_and_interrupted(self):
        summary = self._summary()
        summary.aborted_reason = "declined"
        assert summary.exit_code == ExitCode.ABORTED
        summary.interrupted = True
        assert summary.exit_code == ExitCode.INTERRUPTED

    def test_record_rejects_duplicates(self):
        summary = self._summary(OutcomeStatus.SUCCESS)
        with pytest.raises(ValueError):
            summary.record(ServiceOutcome("svc-0"))

    def test_to_dict(self):
        summary = self._summary(OutcomeStatus.SUCCESS)
        data = summary.to_dict()
        assert data["target"]["identifier"] == "qa-sandbox"
        assert data["exit_code"] == 0
        assert list(data["outcomes"]) == ["svc-0"]
