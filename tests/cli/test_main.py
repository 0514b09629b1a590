"""Tests for the archsim CLI."""

from __future__ import annotations

import importlib
import json

import pytest
from click.testing import CliRunner

from archsim.frontends.cli.main import analyze, cli, plan, request, serve


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    """Keep root handlers away from CliRunner's temporary streams."""
    cli_main = importlib.import_module("archsim.frontends.cli.main")
    monkeypatch.setattr(cli_main, "configure_logging", lambda **kwargs: None)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def health_file(tmp_path, health_payload):
    path = tmp_path / "health.json"
    path.write_text(json.dumps(health_payload))
    return str(path)


@pytest.fixture
def users_file(tmp_path, users_payload):
    path = tmp_path / "users.json"
    path.write_text(json.dumps(users_payload))
    return str(path)


class TestCommands:
    """Command definitions."""

    def test_commands_registered(self):
        """All commands hang off the root group."""
        assert set(cli.commands) >= {"serve", "plan", "analyze", "request"}

    def test_serve_has_host_and_port(self):
        """serve accepts --host and --port."""
        assert {p.name for p in serve.params} >= {"host", "port"}

    def test_request_options(self):
        """request accepts a body and a debug flag."""
        assert {p.name for p in request.params} >= {"file", "method", "path", "data", "debug"}

    @pytest.mark.parametrize("command", [plan, analyze])
    def test_json_flag(self, command):
        assert "json_output" in [p.name for p in command.params]


class TestPlan:
    """archsim plan."""

    def test_json_output(self, runner, health_file):
        """--json prints the execution order."""
        result = runner.invoke(cli, ["plan", health_file, "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["totalNodes"] == 2
        assert [n["id"] for n in data["executionOrder"]] == ["health-api", "health-fn"]

    def test_table_output(self, runner, health_file):
        """The default output is a table."""
        result = runner.invoke(cli, ["plan", health_file])
        assert result.exit_code == 0
        assert "health-api" in result.output

    def test_cycle_exits_non_zero(self, runner, tmp_path):
        """Cyclic graphs are reported as errors."""
        path = tmp_path / "cycle.json"
        path.write_text(
            json.dumps(
                {
                    "api": {
                        "nodes": [
                            {"id": "a", "kind": "queue"},
                            {"id": "b", "kind": "queue"},
                        ],
                        "edges": [{"source": "a", "target": "b"}, {"source": "b", "target": "a"}],
                    }
                }
            )
        )
        result = runner.invoke(cli, ["plan", str(path)])
        assert result.exit_code == 1
        assert "cycle" in result.output

    def test_invalid_json_file(self, runner, tmp_path):
        """Unreadable payloads exit with an error."""
        path = tmp_path / "broken.json"
        path.write_text("{nope")
        result = runner.invoke(cli, ["plan", str(path)])
        assert result.exit_code == 1
        assert "invalid JSON" in result.output


class TestAnalyze:
    """archsim analyze."""

    def test_json_output(self, runner, users_file):
        """--json prints the design report."""
        result = runner.invoke(cli, ["analyze", users_file, "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["deploy"]["ready"] is True

    def test_table_output(self, runner, health_file):
        """The default output lists stages and readiness."""
        result = runner.invoke(cli, ["analyze", health_file])
        assert result.exit_code == 0
        assert "Workflow" in result.output
        assert "Not ready" in result.output


class TestRequest:
    """archsim request."""

    def test_mock_health(self, runner, health_file):
        """A request against the file prints status and body."""
        result = runner.invoke(cli, ["request", health_file, "POST", "/mock/health"])

        assert result.exit_code == 0
        assert "200" in result.output
        assert '"source": "mock-graph"' in result.output

    def test_body_and_debug(self, runner, users_file):
        """--data is sent as the JSON body; --debug adds _runtime."""
        result = runner.invoke(
            cli,
            ["request", users_file, "POST", "/users", "--data", '{"name": "Ada"}', "--debug"],
        )

        assert result.exit_code == 0
        assert "201" in result.output
        assert "_runtime" in result.output

    def test_invalid_data(self, runner, health_file):
        """--data must be JSON."""
        result = runner.invoke(cli, ["request", health_file, "POST", "/mock/health", "-d", "{"])
        assert result.exit_code == 1
