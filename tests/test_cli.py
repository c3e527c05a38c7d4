"""
Тесты CLI (typer CliRunner).

Сервер поднимается в процессе через FastAPI TestClient,
ApiClient в cli.main подменяется на клиента поверх него.
"""

import json

import pytest
import uvicorn
from fastapi.testclient import TestClient
from typer.testing import CliRunner

import cli.main
from backend.config import Settings
from backend.main import create_app
from cli.api_client import ApiClient
from cli.main import AnnouncingServer, app

runner = CliRunner()


def write_rc(path, assertions):
    path.write_text(json.dumps({"ci": {"assert": {"assertions": assertions}}}))
    return path


@pytest.fixture
def server():
    with TestClient(create_app(Settings(storage_method="sql", sql_database_path=":memory:"))) as client:
        yield client


@pytest.fixture
def in_process_api(monkeypatch, server):
    """Все ApiClient в cli.main ходят в TestClient."""

    class InProcessApiClient(ApiClient):
        def __init__(self, base_url, token="", **kwargs):
            super().__init__(base_url, token=token)
            self.client.close()
            self.client = server

        def close(self):
            pass

    monkeypatch.setattr(cli.main, "ApiClient", InProcessApiClient)
    return server


@pytest.fixture
def build_env(monkeypatch):
    monkeypatch.setenv("PERFBUDGET_BUILD_BRANCH", "main")
    monkeypatch.setenv("PERFBUDGET_BUILD_HASH", "abc123")
    monkeypatch.setenv("PERFBUDGET_BUILD_COMMIT_MESSAGE", "Speed up landing page")
    monkeypatch.setenv("PERFBUDGET_BUILD_AUTHOR", "CI <ci@example.com>")


# ═══════════════════════════════════════════════════════
# ASSERT
# ═══════════════════════════════════════════════════════

def test_assert_failing_error_rule_exits_1(results_dir):
    result = runner.invoke(app, [
        "assert", "--results-dir", str(results_dir), "--assertions.works-offline=error",
    ])

    assert result.exit_code == 1
    assert "Checking assertions against 2 run(s)" in result.output
    assert "works-offline failure for minScore assertion" in result.output
    assert "expected: >=1" in result.output
    assert "Assertion failed. Exiting with status code 1." in result.output

    written = json.loads((results_dir / "assertion-results.json").read_text())
    assert written[0]["auditId"] == "works-offline"
    assert written[0]["passed"] is False


def test_assert_warn_only_exits_0(results_dir):
    result = runner.invoke(app, [
        "assert", "--results-dir", str(results_dir), "--assertions.works-offline", "warn",
    ])

    assert result.exit_code == 0
    assert "works-offline failure for minScore assertion" in result.output
    assert "All results processed!" not in result.output


def test_assert_passing_run_prints_only_summary(tmp_path, results_dir):
    rc_file = tmp_path / "perfbudgetrc.json"
    rc_file.write_text(json.dumps({"ci": {"assert": {
        "budgets": [{"resourceSizes": [{"resourceType": "document", "budget": 8}]}],
    }}}))

    result = runner.invoke(app, ["assert", "--rc-file", str(rc_file), "--results-dir", str(results_dir)])

    assert result.exit_code == 0
    assert result.output == "Checking assertions against 2 run(s)\n"


def test_cli_override_turns_rc_rule_off(tmp_path, results_dir):
    rc_file = write_rc(tmp_path / "perfbudgetrc.json", {
        "works-offline": "error",
        "uses-http2": "warn",
    })

    result = runner.invoke(app, [
        "assert", "--rc-file", str(rc_file), "--results-dir", str(results_dir),
        "--assertions.works-offline=off",
    ])

    assert result.exit_code == 0
    assert "works-offline" not in result.output
    assert "uses-http2 failure for auditRan assertion" in result.output


def test_assert_budget_from_rc_file(tmp_path, results_dir):
    rc_file = tmp_path / "perfbudgetrc.json"
    rc_file.write_text(json.dumps({"ci": {"assert": {
        "budgets": [{"resourceSizes": [{"resourceType": "document", "budget": 2}]}],
    }}}))

    result = runner.invoke(app, ["assert", "--rc-file", str(rc_file), "--results-dir", str(results_dir)])

    assert result.exit_code == 1
    assert "performance-budget.document.size failure for maxNumericValue assertion" in result.output
    assert "found: 4096" in result.output


def test_assert_without_results_fails(tmp_path):
    result = runner.invoke(app, [
        "assert", "--results-dir", str(tmp_path / "empty"), "--assertions.works-offline=error",
    ])

    assert result.exit_code == 1
    assert "No results found to assert against" in result.output


def test_assert_without_rules_fails(results_dir):
    result = runner.invoke(app, ["assert", "--results-dir", str(results_dir)])

    assert result.exit_code == 1
    assert "No assertions to use" in result.output


def test_assert_rejects_bad_override(results_dir):
    result = runner.invoke(app, ["assert", "--results-dir", str(results_dir), "--assertions.works-offline=fatal"])

    assert result.exit_code == 1
    assert "Unknown level 'fatal'" in result.output


# ═══════════════════════════════════════════════════════
# REPORT → ASSERT (remote)
# ═══════════════════════════════════════════════════════

def test_report_uploads_runs_and_assert_reads_them_back(tmp_path, results_dir, in_process_api, build_env):
    project = in_process_api.post("/v1/projects", json={"name": "AwesomeCIProjectName"}).json()

    result = runner.invoke(app, [
        "report", "--server-base-url", "http://testserver",
        "--token", project["token"], "--results-dir", str(results_dir),
    ])

    assert result.exit_code == 0, result.output
    assert f"Saving CI project AwesomeCIProjectName ({project['id']})" in result.output
    assert result.output.count("Saved LHR to http://testserver") == 2
    assert "Done saving build results" in result.output

    builds = in_process_api.get(f"/v1/projects/{project['id']}/builds").json()
    assert len(builds) == 1
    assert builds[0]["branch"] == "main"
    assert builds[0]["hash"] == "abc123"

    result = runner.invoke(app, [
        "assert", "--server-base-url", "http://testserver",
        "--project-id", project["id"], "--build-id", builds[0]["id"],
        "--results-dir", str(tmp_path / "out"),
        "--assertions.works-offline=error",
    ])

    assert result.exit_code == 1
    assert "Checking assertions against 2 run(s)" in result.output
    assert (tmp_path / "out" / "assertion-results.json").exists()


def test_report_with_wrong_token_fails(results_dir, in_process_api):
    result = runner.invoke(app, [
        "report", "--server-base-url", "http://testserver",
        "--token", "not-a-token", "--results-dir", str(results_dir),
    ])

    assert result.exit_code == 1
    assert "No project matches the given token" in result.output


def test_report_requires_token(monkeypatch, results_dir):
    monkeypatch.delenv("PERFBUDGET_TOKEN", raising=False)
    result = runner.invoke(app, ["report", "--results-dir", str(results_dir)])

    assert result.exit_code == 1
    assert "Missing project token" in result.output


# ═══════════════════════════════════════════════════════
# WIZARD / HEALTHCHECK
# ═══════════════════════════════════════════════════════

def test_wizard_creates_project(in_process_api):
    answers = "\n".join(["", "http://testserver", "AwesomeCIProjectName", ""]) + "\n"

    result = runner.invoke(app, ["wizard"], input=answers)

    assert result.exit_code == 0, result.output
    assert "Created project AwesomeCIProjectName" in result.output
    assert "Use token" in result.output
    names = [p["name"] for p in in_process_api.get("/v1/projects").json()]
    assert names == ["AwesomeCIProjectName"]


def test_healthcheck(in_process_api):
    result = runner.invoke(app, ["healthcheck", "--server-base-url", "http://testserver"])

    assert result.exit_code == 0
    assert "Server: ok" in result.output
    assert "Storage: healthy" in result.output


# ═══════════════════════════════════════════════════════
# SERVER
# ═══════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_server_announces_bound_port_after_startup(monkeypatch):
    printed = []
    monkeypatch.setattr(cli.main.console, "print", lambda message, **kwargs: printed.append(message))
    config = uvicorn.Config(
        create_app(Settings(storage_method="sql", sql_database_path=":memory:")),
        host="127.0.0.1",
        port=0,
        lifespan="off",
    )
    server = AnnouncingServer(config)

    await server.startup()
    try:
        port = server.servers[0].sockets[0].getsockname()[1]
        assert port != 0
        assert printed == [f"Server listening on port {port}"]
    finally:
        await server.shutdown()
