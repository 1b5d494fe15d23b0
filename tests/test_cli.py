"""Tests for the spanscore CLI commands (validate, test, run, executions)."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from spanscore.cli.main import app

runner = CliRunner()

EVALUATOR_YAML = """\
name: ok-check
description: Output must be a literal OK
scorer_type: regex
scorer_config:
  pattern: "^OK$"
variable_mapping:
  - variable_name: output
    source: span_output
"""

SPANS = [
    {"span_id": "s1", "trace_id": "t1", "span_kind": "llm", "output": "OK"},
    {"span_id": "s2", "trace_id": "t2", "span_kind": "tool", "output": "nope"},
    {"span_id": "s3", "trace_id": "t3", "span_kind": "llm", "output": "OK"},
]


def _make_project(root: Path) -> tuple[Path, Path]:
    """Project with spanscore.yaml, one evaluator file and a span file."""
    (root / "spanscore.yaml").write_text("project_id: demo\nworker:\n  max_retries: 0\n")
    evaluators = root / "evaluators"
    evaluators.mkdir()
    evaluator = evaluators / "ok.yaml"
    evaluator.write_text(EVALUATOR_YAML)
    spans = root / "spans.json"
    spans.write_text(json.dumps(SPANS))
    return evaluator, spans


class TestVersion:
    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "spanscore 0.1.0" in result.output


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


class TestValidateCommand:
    """spanscore validate."""

    def test_valid_file_exits_zero(self, tmp_path):
        evaluator, _ = _make_project(tmp_path)
        result = runner.invoke(app, ["validate", str(evaluator)])
        assert result.exit_code == 0
        assert "1/1 evaluators valid" in result.output

    def test_invalid_file_exits_nonzero(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(EVALUATOR_YAML.replace("scorer_type", "scorer_typ"))
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
        assert "0/1 evaluators valid" in result.output

    def test_ci_mode_concise_format(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("name: x\nsmapling_rate: 0.5\nscorer_type: regex\nscorer_config:\n  pattern: a\n")
        result = runner.invoke(app, ["validate", "--ci", str(path)])
        assert result.exit_code == 1
        assert f"{path}:2:1 -- smapling_rate:" in result.output
        assert "Did you mean 'sampling_rate'?" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["validate", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 1

    def test_no_args_scans_evaluators_dir(self, tmp_path, monkeypatch):
        _make_project(tmp_path)
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["validate"])
        assert result.exit_code == 0
        assert "1/1 evaluators valid" in result.output

    def test_no_args_without_files(self, tmp_path, monkeypatch):
        (tmp_path / "spanscore.yaml").write_text("project_id: demo\n")
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["validate"])
        assert result.exit_code == 1
        assert "No evaluator files found" in result.output


# ---------------------------------------------------------------------------
# test (dry run)
# ---------------------------------------------------------------------------


class TestDryRunCommand:
    def test_json_summary(self, tmp_path):
        evaluator, spans = _make_project(tmp_path)
        result = runner.invoke(
            app, ["test", str(evaluator), "--spans", str(spans), "--json"]
        )
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["summary"]["total_spans"] == 3
        assert payload["summary"]["success_count"] == 3
        assert payload["preview"]["name"] == "ok-check"

    def test_rich_output(self, tmp_path):
        evaluator, spans = _make_project(tmp_path)
        result = runner.invoke(app, ["test", str(evaluator), "--spans", str(spans)])
        assert result.exit_code == 0
        assert "ok-check" in result.output
        assert "s1" in result.output

    def test_span_id_selection(self, tmp_path):
        evaluator, spans = _make_project(tmp_path)
        result = runner.invoke(
            app,
            ["test", str(evaluator), "--spans", str(spans), "--span-id", "s2", "--json"],
        )
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert [e["span_id"] for e in payload["executions"]] == ["s2"]

    def test_sample_output(self, tmp_path):
        evaluator, _ = _make_project(tmp_path)
        result = runner.invoke(app, ["test", str(evaluator), "--sample-output", "OK", "--json"])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["executions"][0]["score_results"][0]["value"] == 1.0

    def test_limit_out_of_range(self, tmp_path):
        evaluator, spans = _make_project(tmp_path)
        result = runner.invoke(
            app, ["test", str(evaluator), "--spans", str(spans), "--limit", "50"]
        )
        assert result.exit_code == 1

    def test_missing_span_file(self, tmp_path):
        evaluator, _ = _make_project(tmp_path)
        result = runner.invoke(
            app, ["test", str(evaluator), "--spans", str(tmp_path / "none.json")]
        )
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# run + executions
# ---------------------------------------------------------------------------


class TestRunAndExecutions:
    """spanscore run followed by the executions sub-commands."""

    def _run(self, tmp_path: Path) -> dict:
        evaluator, spans = _make_project(tmp_path)
        result = runner.invoke(
            app,
            [
                "run",
                str(evaluator),
                "--spans",
                str(spans),
                "--poll-interval",
                "0.01",
                "--json",
            ],
        )
        assert result.exit_code == 0
        return json.loads(result.stdout)

    def test_run_completes(self, tmp_path):
        detail = self._run(tmp_path)
        assert detail["status"] == "completed"
        assert detail["spans_matched"] == 3
        assert detail["spans_scored"] == 3
        assert detail["project_id"] == "demo"
        assert (tmp_path / ".spanscore" / "executions" / f"{detail['id']}.json").exists()

    def test_rerun_updates_same_evaluator(self, tmp_path):
        first = self._run(tmp_path)
        result = runner.invoke(
            app,
            [
                "run",
                str(tmp_path / "evaluators" / "ok.yaml"),
                "--spans",
                str(tmp_path / "spans.json"),
                "--span-id",
                "s1",
                "--poll-interval",
                "0.01",
                "--json",
            ],
        )
        assert result.exit_code == 0
        second = json.loads(result.stdout)
        assert second["evaluator_id"] == first["evaluator_id"]
        assert second["spans_matched"] == 1

    def test_executions_list_show_cancel(self, tmp_path, monkeypatch):
        detail = self._run(tmp_path)
        monkeypatch.chdir(tmp_path)

        listed = runner.invoke(app, ["executions", "list", detail["evaluator_id"], "--json"])
        assert listed.exit_code == 0
        page = json.loads(listed.stdout)
        assert page["total"] == 1
        assert page["items"][0]["id"] == detail["id"]

        shown = runner.invoke(app, ["executions", "show", detail["id"], "--json"])
        assert shown.exit_code == 0
        assert len(json.loads(shown.stdout)["spans"]) == 3

        # Already completed
        cancelled = runner.invoke(app, ["executions", "cancel", detail["id"]])
        assert cancelled.exit_code == 1

    def test_executions_list_empty(self, tmp_path, monkeypatch):
        (tmp_path / "spanscore.yaml").write_text("project_id: demo\n")
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["executions", "list", "nobody"])
        assert result.exit_code == 0
        assert "No executions found." in result.output

    def test_show_unknown(self, tmp_path, monkeypatch):
        (tmp_path / "spanscore.yaml").write_text("project_id: demo\n")
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["executions", "show", "missing"])
        assert result.exit_code == 1
