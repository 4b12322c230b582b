from __future__ import annotations

import textwrap

import pytest
from fastapi.testclient import TestClient

from workflow_interpreter import app as app_module

AGENT_ONLY = textwrap.dedent("""
    workflows:
      main:
        task: Needs an agent
        steps:
          - id: think
            task: Think hard
""")

COUNTER = textwrap.dedent("""
    workflows:
      main:
        task: Count up
        inputs:
          - id: start
            default: 1
        steps:
          - id: next
            task: Add one
            code: return ctx.input["start"] + 1
        output: next
""")


@pytest.fixture
def client():
    with TestClient(app_module.app) as test_client:
        yield test_client


def test_health(client):
    assert client.get("/healthz").json() == {"status": "healthy"}
    assert client.get("/readyz").json() == {"status": "ready"}
    assert client.get("/config").json()["service"] == "workflow-interpreter"


def test_validate(client):
    ok = client.post("/api/v1/workflows/validate", json={"source": AGENT_ONLY})
    assert ok.json() == {"success": True, "errors": []}

    bad = client.post("/api/v1/workflows/validate", json={"source": "workflows:\n  main: [unclosed"})
    body = bad.json()
    assert body["success"] is False
    assert body["errors"][0].startswith("Invalid YAML")


def test_run_reports_execution_failures_in_body(client):
    response = client.post("/api/v1/workflows/run", json={"source": AGENT_ONLY})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert "requires agent execution" in body["error"]


def test_run_code_steps_when_enabled(client, monkeypatch):
    monkeypatch.setattr(app_module.config, "WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION", True)

    response = client.post("/api/v1/workflows/run", json={"source": COUNTER, "input": {"start": 41}})

    body = response.json()
    assert body["success"] is True
    assert body["output"] == 42


def test_run_rejects_invalid_definitions(client):
    response = client.post(
        "/api/v1/workflows/run",
        json={"source": "workflows:\n  main:\n    task: t\n    steps: []\n"},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["errors"] == ["Workflow 'main' has no steps"]
