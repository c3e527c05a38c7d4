"""
E2E‑тесты HTTP API (FastAPI) поверх backend.main.create_app.

Хранилище — SQLite в памяти, поэтому тестам не нужны внешние сервисы.
"""

import json

import pytest
from fastapi.testclient import TestClient

from backend.config import Settings
from backend.main import create_app

from conftest import make_lhr


@pytest.fixture
def api_client():
    app = create_app(Settings(storage_method="sql", sql_database_path=":memory:"))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def created_project(api_client):
    resp = api_client.post("/v1/projects", json={"name": "AwesomeCIProjectName", "external_url": "https://example.com"})
    assert resp.status_code == 201
    return resp.json()


def auth(project):
    return {"X-Project-Token": project["token"]}


def test_health_endpoint(api_client):
    resp = api_client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["storage"]["status"] == "healthy"


def test_projects_start_empty(api_client):
    resp = api_client.get("/v1/projects")
    assert resp.status_code == 200
    assert resp.json() == []


def test_create_project_returns_token_once(api_client, created_project):
    assert created_project["token"]
    assert created_project["read_token"]

    listed = api_client.get("/v1/projects").json()
    assert [p["name"] for p in listed] == ["AwesomeCIProjectName"]
    assert "token" not in listed[0]

    single = api_client.get(f"/v1/projects/{created_project['id']}").json()
    assert "token" not in single


def test_create_project_validation(api_client, created_project):
    assert api_client.post("/v1/projects", json={"name": "  "}).status_code == 422
    resp = api_client.post("/v1/projects", json={"name": "AwesomeCIProjectName"})
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"


def test_lookup_by_token(api_client, created_project):
    resp = api_client.post("/v1/projects/lookup", json={"token": created_project["token"]})
    assert resp.status_code == 200
    assert resp.json()["id"] == created_project["id"]
    assert api_client.post("/v1/projects/lookup", json={"token": "nope"}).status_code == 404


def test_build_and_runs_flow(api_client, created_project):
    project_id = created_project["id"]
    build = api_client.post(
        f"/v1/projects/{project_id}/builds",
        json={"branch": "main", "hash": "abc123"},
        headers=auth(created_project),
    )
    assert build.status_code == 201
    build_id = build.json()["id"]

    runs_url = f"/v1/projects/{project_id}/builds/{build_id}/runs"
    assert api_client.get(runs_url).json() == []

    run_ids = []
    for _ in range(2):
        resp = api_client.post(
            runs_url,
            json={"url": "chrome://version", "lhr": make_lhr("chrome://version")},
            headers=auth(created_project),
        )
        assert resp.status_code == 201
        run_ids.append(resp.json()["id"])

    runs = api_client.get(runs_url).json()
    assert [run["id"] for run in runs] == list(reversed(run_ids))
    assert [run["url"] for run in runs] == ["chrome://version", "chrome://version"]
    assert [json.loads(run["lhr"])["requestedUrl"] for run in runs] == ["chrome://version"] * 2

    builds = api_client.get(f"/v1/projects/{project_id}/builds").json()
    assert [b["id"] for b in builds] == [build_id]
    assert api_client.get(f"/v1/projects/{project_id}/builds/{build_id}").json()["hash"] == "abc123"


def test_writes_require_matching_token(api_client, created_project):
    project_id = created_project["id"]
    assert api_client.post(f"/v1/projects/{project_id}/builds", json={}).status_code == 403
    assert api_client.post(
        f"/v1/projects/{project_id}/builds", json={}, headers={"X-Project-Token": "wrong"}
    ).status_code == 403

    build_id = api_client.post(
        f"/v1/projects/{project_id}/builds", json={}, headers=auth(created_project)
    ).json()["id"]
    resp = api_client.post(
        f"/v1/projects/{project_id}/builds/{build_id}/runs",
        json={"lhr": "not even json"},
        headers={"X-Project-Token": "wrong"},
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "authorization_error"


def test_invalid_report_payload_is_rejected(api_client, created_project):
    project_id = created_project["id"]
    build_id = api_client.post(
        f"/v1/projects/{project_id}/builds", json={}, headers=auth(created_project)
    ).json()["id"]
    resp = api_client.post(
        f"/v1/projects/{project_id}/builds/{build_id}/runs",
        json={"lhr": json.dumps({"audits": {}})},
        headers=auth(created_project),
    )
    assert resp.status_code == 422


def test_unknown_resources_are_404(api_client, created_project):
    project_id = created_project["id"]
    assert api_client.get("/v1/projects/missing").status_code == 404
    assert api_client.get(f"/v1/projects/{project_id}/builds/missing/runs").status_code == 404
    assert api_client.post(
        "/v1/projects/missing/builds", json={}, headers=auth(created_project)
    ).status_code == 404


def test_metrics_endpoint(api_client):
    api_client.get("/v1/projects")
    resp = api_client.get("/metrics/")
    assert resp.status_code == 200
    assert "perfbudget_storage_operations_total" in resp.text


@pytest.mark.parametrize("path,body", [
    ("builds", {"branch": 5}),
    ("builds", {"hash": ["not", "a", "string"]}),
    ("runs", {"lhr": {"a": 1}}),
    ("runs", {"url": "chrome://version"}),
])
def test_wrong_token_is_rejected_before_body_validation(api_client, created_project, path, body):
    project_id = created_project["id"]
    build_id = api_client.post(
        f"/v1/projects/{project_id}/builds", json={}, headers=auth(created_project)
    ).json()["id"]
    url = {
        "builds": f"/v1/projects/{project_id}/builds",
        "runs": f"/v1/projects/{project_id}/builds/{build_id}/runs",
    }[path]

    resp = api_client.post(url, json=body, headers={"X-Project-Token": "wrong"})

    assert resp.status_code == 403
    assert resp.json()["error"] == "authorization_error"


def test_wrong_token_with_unparseable_body_is_403(api_client, created_project):
    resp = api_client.post(
        f"/v1/projects/{created_project['id']}/builds",
        content=b"{not json",
        headers={"X-Project-Token": "wrong", "Content-Type": "application/json"},
    )
    assert resp.status_code == 403


def test_malformed_body_with_valid_token_is_422(api_client, created_project):
    project_id = created_project["id"]
    resp = api_client.post(f"/v1/projects/{project_id}/builds", json={"branch": 5}, headers=auth(created_project))
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"
    assert "branch" in resp.json()["message"]

    build_id = api_client.post(
        f"/v1/projects/{project_id}/builds", json={}, headers=auth(created_project)
    ).json()["id"]
    resp = api_client.post(
        f"/v1/projects/{project_id}/builds/{build_id}/runs",
        json={"lhr": {"a": 1}},
        headers=auth(created_project),
    )
    assert resp.status_code == 422
