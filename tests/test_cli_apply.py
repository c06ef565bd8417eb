"""Tests for cli/apply.py, cli/plan.py and cli/main.py."""

import json
from unittest.mock import patch

import pytest
import yaml

from infraphase.cli.apply import apply_command, build_secret_store
from infraphase.cli.main import build_parser, main
from infraphase.cli.plan import parse_variables, plan_command
from infraphase.core.errors import ConfigurationError, ExitCode
from infraphase.secrets import FileSecretStore, MemorySecretStore

PLAN = {
    "name": "shop",
    "variables": {"prefix": "shop"},
    "providers": {
        "azure": {
            "kind": "http",
            "base_url": "${env:INFRAPHASE_TEST_API_URL}",
            "simulation": {"provisioning_seconds": 0.01},
        }
    },
    "secret_store": {"backend": "memory"},
    "resource_types": {"redis": {"secret_outputs": {"key": "{resource_name}-key"}}},
    "tasks": [
        {"id": "rg", "type": "resource-group", "provider": "azure", "name": "${var:prefix}-rg"},
        {
            "id": "redis",
            "type": "redis",
            "provider": "azure",
            "name": "${var:prefix}-redis",
            "parameters": {"group": "${output:rg.id}"},
        },
    ],
}


@pytest.fixture
def plan_file(tmp_path):
    path = tmp_path / "plan.yaml"
    path.write_text(yaml.safe_dump(PLAN))
    return path


def _write(tmp_path, definition):
    path = tmp_path / "custom.yaml"
    path.write_text(yaml.safe_dump(definition))
    return path


class TestApplyCommand:
    """Tests for the apply command."""

    def test_simulated_apply_json(self, plan_file, settings, capsys):
        code = apply_command(str(plan_file), simulate=True, output_format="json", settings=settings)

        assert code == ExitCode.SUCCESS
        data = json.loads(capsys.readouterr().out)
        assert data["verdict"] == "Success"
        assert [t["phase"] for t in data["tasks"]] == ["phase-1", "phase-2"]
        assert data["secrets"] == [
            {"name": "shop-redis-key", "task": "redis", "status": "written", "error": None}
        ]

    def test_progress_goes_to_stderr(self, plan_file, settings, capsys):
        apply_command(str(plan_file), simulate=True, output_format="json", settings=settings)
        assert "[1/2] phase-1: starting 1 task(s)" in capsys.readouterr().err

    def test_failure_aborts_with_exit_2(self, tmp_path, settings, capsys):
        definition = dict(PLAN)
        definition["providers"] = {
            "azure": {"kind": "http", "simulation": {"failures": ["shop-rg"]}}
        }

        code = apply_command(
            str(_write(tmp_path, definition)), simulate=True, output_format="json", settings=settings
        )

        assert code == ExitCode.ABORTED
        data = json.loads(capsys.readouterr().out)
        assert {t["id"]: t["status"] for t in data["tasks"]} == {
            "rg": "Failed",
            "redis": "Pending",
        }

    def test_junit_report_and_logs(self, plan_file, settings, tmp_path, capsys):
        report_path = tmp_path / "report.xml"
        log_dir = tmp_path / "logs"

        code = apply_command(
            str(plan_file),
            simulate=True,
            output_format="junit",
            output_file=str(report_path),
            log_dir=str(log_dir),
            settings=settings,
        )

        assert code == ExitCode.SUCCESS
        assert "<testsuite name=\"phase-1\"" in report_path.read_text()
        assert sorted(p.name for p in log_dir.iterdir()) == ["redis.log", "rg.log"]
        assert "task_succeeded" in (log_dir / "redis.log").read_text()
        assert "shop" in capsys.readouterr().out

    def test_table_output(self, plan_file, settings, capsys):
        code = apply_command(str(plan_file), simulate=True, settings=settings)

        assert code == ExitCode.SUCCESS
        assert "Plan shop applied" in capsys.readouterr().out

    def test_missing_plan_file(self, tmp_path, settings, capsys):
        code = apply_command(str(tmp_path / "missing.yaml"), simulate=True, settings=settings)

        assert code == ExitCode.CONFIG_ERROR
        captured = capsys.readouterr()
        assert "Plan file not found" in captured.err
        assert captured.out == ""

    def test_invalid_plan(self, tmp_path, settings):
        path = _write(tmp_path, {"tasks": [{"id": "a", "type": "t", "depends_on": ["a"]}]})
        code = apply_command(str(path), simulate=True, settings=settings)
        assert code == ExitCode.VALIDATION_ERROR

    def test_invalid_poll_override(self, plan_file, settings):
        code = apply_command(str(plan_file), simulate=True, max_wait=-1, settings=settings)
        assert code == ExitCode.CONFIG_ERROR


class TestBuildSecretStore:
    def test_simulate_uses_memory(self, settings):
        assert isinstance(build_secret_store({}, settings, simulate=True), MemorySecretStore)

    def test_settings_backend(self, settings):
        assert isinstance(build_secret_store({}, settings), FileSecretStore)

    def test_disabled(self, settings):
        assert build_secret_store({"secret_store": {"backend": "none"}}, settings) is None

    def test_unavailable_backend_is_configuration_error(self, settings):
        with pytest.raises(ConfigurationError):
            build_secret_store({"secret_store": {"backend": "vault"}}, settings)


class TestPlanCommand:
    """Tests for the plan command."""

    def test_json_output(self, plan_file, capsys):
        code = plan_command(str(plan_file), variables=["prefix=staging"], output_format="json")

        assert code == ExitCode.SUCCESS
        data = json.loads(capsys.readouterr().out)
        assert data["plan"] == "shop"
        assert data["phases"][1]["tasks"][0]["name"] == "staging-redis"
        assert data["phases"][1]["tasks"][0]["depends_on"] == ["rg"]
        assert data["undeclared_providers"] == []

    def test_table_output_warns_about_undeclared_alias(self, tmp_path, capsys):
        path = _write(tmp_path, {"name": "x", "tasks": [{"id": "a", "type": "t", "provider": "gcp"}]})

        code = plan_command(str(path))

        assert code == ExitCode.SUCCESS
        out = capsys.readouterr().out
        assert "Plan: x" in out
        assert "gcp" in out

    def test_bad_variable(self, plan_file):
        assert plan_command(str(plan_file), variables=["novalue"]) == ExitCode.CONFIG_ERROR


class TestParseVariables:
    def test_pairs(self):
        assert parse_variables(["a=1", "b=x=y", "c="]) == {"a": "1", "b": "x=y", "c": ""}

    def test_rejects_missing_separator(self):
        with pytest.raises(ConfigurationError):
            parse_variables(["a"])


class TestMain:
    """Tests for argument parsing and dispatch."""

    def test_parser(self):
        args = build_parser().parse_args(
            ["apply", "plan.yaml", "--simulate", "--format", "junit", "--var", "a=1", "--max-wait", "5"]
        )
        assert args.simulate is True
        assert args.output_format == "junit"
        assert args.variables == ["a=1"]
        assert args.max_wait == 5.0

    def test_dispatches_plan(self, plan_file, capsys):
        with patch("infraphase.cli.main.configure_logging"):
            with pytest.raises(SystemExit) as exc_info:
                main(["plan", str(plan_file), "--format", "json"])
        assert exc_info.value.code == 0
        assert json.loads(capsys.readouterr().out)["plan"] == "shop"

    def test_no_command_prints_help(self, capsys):
        with patch("infraphase.cli.main.configure_logging"):
            with pytest.raises(SystemExit) as exc_info:
                main([])
        assert exc_info.value.code == 0
        assert "usage: infraphase" in capsys.readouterr().out
