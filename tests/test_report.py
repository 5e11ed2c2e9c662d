"""Tests for run reporting."""

import json

from reseed.preflight import PreflightReport, PreflightResult
from reseed.report import render_preflight, render_summary, write_summary
from reseed.schemas import Environment, OutcomeStatus, RunSummary, ServiceOutcome, Stage, Target


def _summary(tmp_path):
    summary = RunSummary(target=Target("qa", Environment.SANDBOX), run_dir=tmp_path)
    ok = ServiceOutcome("los-core-api")
    for stage in (Stage.ENVIRONMENT_PREPARED, Stage.MIGRATIONS_APPLIED, Stage.SEEDED):
        ok.advance(stage)
    summary.record(ok.finalize(OutcomeStatus.SUCCESS))

    partial = ServiceOutcome("sequence-builder-api", log_reference=tmp_path / "sequence-builder-api.log")
    partial.advance(Stage.ENVIRONMENT_PREPARED)
    partial.advance(Stage.MIGRATIONS_APPLIED)
    summary.record(partial.finalize(OutcomeStatus.PARTIAL_SUCCESS, "seed failed (exit 1)"))
    return summary


class TestWriteSummary:

    def test_writes_into_run_dir(self, tmp_path):
        path = write_summary(_summary(tmp_path), tmp_path)

        assert path == tmp_path / "summary.json"
        data = json.loads(path.read_text())
        assert data["exit_code"] == 4
        assert data["outcomes"]["sequence-builder-api"]["status"] == "partial_success"
        assert data["outcomes"]["sequence-builder-api"]["remediation"] == "schema is current; re-run the seed only"

    def test_writes_to_file_path(self, tmp_path):
        path = write_summary(_summary(tmp_path), tmp_path / "out" / "run.json")
        assert path.exists()


class TestRenderSummary:

    def test_shows_outcomes_and_remediation(self, tmp_path, capsys):
        render_summary(_summary(tmp_path))
        out = capsys.readouterr().out

        assert "los-core-api" in out
        assert "sequence-builder-api" in out
        assert "re-run the seed only" in out
        assert "Completed with warnings" in out

    def test_aborted(self, tmp_path, capsys):
        summary = RunSummary(target=Target("qa", Environment.SANDBOX), aborted_reason="declined at confirmation gate")
        render_summary(summary)
        out = capsys.readouterr().out
        assert "declined at confirmation gate" in out
        assert "No changes were made" in out

    def test_interrupted_names_in_flight_service(self, tmp_path, capsys):
        summary = RunSummary(target=Target("qa", Environment.SANDBOX), run_dir=tmp_path)
        in_flight = ServiceOutcome("los-core-api")
        summary.record(in_flight.finalize(OutcomeStatus.FAILED, "interrupted"))
        summary.interrupted = True

        render_summary(summary)
        out = capsys.readouterr().out
        assert "Interrupted: re-run the full procedure for los-core-api" in out

    def test_bracketed_reasons_printed_verbatim(self, tmp_path, capsys):
        summary = RunSummary(
            target=Target("qa", Environment.SANDBOX), aborted_reason="[Errno 2] no kubectl [/bold]",
        )
        render_summary(summary)
        assert "[Errno 2] no kubectl [/bold]" in capsys.readouterr().out


class TestRenderPreflight:

    def test_bracketed_reasons_printed_verbatim(self, capsys):
        result = PreflightResult("ui-builder-api")
        result.fail("read probe failed [P1001]")
        report = PreflightReport(
            target=Target("qa", Environment.SANDBOX),
            results={"ui-builder-api": result},
            not_found={"workflow-api": "secret [missing]"},
        )
        render_preflight(report)
        out = capsys.readouterr().out
        assert "ui-builder-api: read probe failed [P1001]" in out
        assert "secret [missing]" in out
