"""HTTP API tests against the FastAPI app with the bundled fixture config.

The app is entered once per module so the lifespan initialises the engines
a single time. Simulated actions run with zero latency.
"""

import os
import time

import pytest

os.environ["ACTION_LATENCY_SCALE"] = "0"
os.environ.pop("ACTION_WEBHOOK_URL", None)

from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402

TERMINAL = {"COMPLETED", "FAILED", "CANCELLED"}


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as test_client:
        yield test_client


def make_signal(signal_id, **overrides) -> dict:
    data = {
        "id": signal_id,
        "type": "MAINTENANCE",
        "severity": "LOW",
        "strength": 30,
        "asset_id": "hvac-3",
        "timestamp": "2026-03-02T12:00:00Z",
    }
    data.update(overrides)
    return data


def wait_for(client, execution_id, timeout=5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/executions/{execution_id}").json()
        if body["status"] in TERMINAL or time.monotonic() > deadline:
            return body
        time.sleep(0.02)


class TestIntake:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_configured_workflow_runs(self, client):
        response = client.post("/signals", json=make_signal("api-1"))

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "started"
        assert body["workflow_id"] == "maintenance-response"
        assert body["generated_workflow_id"] is None

        execution = wait_for(client, body["execution_id"])
        assert execution["status"] == "COMPLETED"
        assert sorted(execution["completed_steps"]) == ["maintenance-notification", "maintenance-scheduling"]

        latest = client.get("/executions/latest").json()
        assert latest["execution_id"] == body["execution_id"]

    def test_unmatched_signal_gets_generated_workflow(self, client):
        response = client.post(
            "/signals",
            json=make_signal("api-2", type="ENVIRONMENTAL", severity="HIGH", strength=70, asset_id="river-2"),
        )

        body = response.json()
        assert body["status"] == "started"
        assert body["generated_workflow_id"].startswith("workflow-api-2-")
        assert body["workflow_id"] == body["generated_workflow_id"]
        assert body["recommended_actions"] >= 0

        ids = [w["id"] for w in client.get("/workflows").json()]
        assert body["generated_workflow_id"] in ids

        execution = wait_for(client, body["execution_id"])
        assert execution["status"] in TERMINAL

    def test_invalid_body(self, client):
        response = client.post("/signals", json=make_signal("bad", strength=250))
        assert response.status_code == 422


class TestExecutions:
    def test_unknown_execution(self, client):
        response = client.get("/executions/ghost")
        assert response.status_code == 404
        assert response.json()["detail"] == "Execution 'ghost' not found."

    def test_cancel_unknown(self, client):
        response = client.post("/executions/ghost/cancel")
        assert response.status_code == 404
        assert response.json()["detail"] == "Execution not active: ghost"

    def test_statistics(self, client):
        client.post("/signals", json=make_signal("api-3"))

        stats = client.get("/statistics").json()

        assert set(stats) == {"orchestration", "performance", "generator", "intelligence"}
        assert stats["orchestration"]["workflows"] >= 3
        assert stats["intelligence"]["signals_analyzed"] >= 1
        assert stats["generator"]["templates_count"] == 3
