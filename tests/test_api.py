from fastapi.testclient import TestClient

from devtrail.api import app
from devtrail.storage import claim_job, fail_job, init_db


def _client():
    return TestClient(app)


def test_health():
    response = _client().get("/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_create_and_get_job():
    client = _client()
    response = client.post(
        "/jobs", json={"job_type": "sync_github", "config": {"repositories": ["org/repo"], "dry_run": True}}
    )
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "PENDING"
    assert body["job_type"] == "sync_github"
    assert body["processing"] == "queued"

    job = client.get(f"/jobs/{body['job_id']}").json()
    assert job["status"] == "PENDING"
    assert job["config"] == {"repositories": ["org/repo"], "dry_run": True}

    listed = client.get("/jobs", params={"job_type": "sync_github"}).json()["jobs"]
    assert [item["id"] for item in listed] == [body["job_id"]]


def test_create_job_rejects_bad_requests():
    client = _client()
    unknown = client.post("/jobs", json={"job_type": "bogus", "config": {}})
    assert unknown.status_code == 400
    assert unknown.json()["detail"].startswith("Unknown job type: bogus.")

    deprecated = client.post("/jobs", json={"job_type": "jira_sync", "config": {}})
    assert deprecated.status_code == 400
    assert "deprecated" in deprecated.json()["detail"]

    invalid = client.post("/jobs", json={"job_type": "generate_insight", "config": {}})
    assert invalid.status_code == 400


def test_sync_agent_maps_to_job_types():
    client = _client()
    github = client.post("/sync/agent", json={"agent_type": "github", "username": "dev", "dry_run": True})
    jira = client.post("/sync/agent", json={"agent_type": "jira", "projects": ["PROJ"]})

    assert github.status_code == 201
    assert github.json()["job_type"] == "sync_github"
    assert client.get(f"/jobs/{github.json()['job_id']}").json()["config"]["username"] == "dev"
    assert jira.json()["job_type"] == "sync_jira"
    assert client.post("/sync/agent", json={"agent_type": "gitlab"}).status_code == 422


def test_cancel_job_and_conflict():
    client = _client()
    job_id = client.post("/jobs", json={"job_type": "sync_jira", "config": {}}).json()["job_id"]

    cancelled = client.post(f"/jobs/{job_id}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "CANCELLED"

    assert client.post(f"/jobs/{job_id}/cancel").status_code == 409
    assert client.post("/jobs/job_missing/cancel").status_code == 404
    assert client.get("/jobs/job_missing").status_code == 404


def test_stats_and_clear_failed():
    client = _client()
    job_id = client.post("/jobs", json={"job_type": "sync_jira", "config": {}}).json()["job_id"]
    conn = init_db()
    claim_job(conn, job_id)
    fail_job(conn, job_id, "boom")
    conn.close()

    assert client.get("/jobs/stats").json()["failed"] == 1
    assert client.post("/jobs/clear-failed").json() == {"deleted": 1}
    assert client.get("/jobs/stats").json()["total"] == 0
    assert client.post("/jobs/cleanup", params={"days": -1}).status_code == 400


def test_worker_health_without_heartbeat():
    body = _client().get("/worker/health").json()
    assert body["healthy"] is False
    assert body["message"] == "Worker has never run"


def test_admin_token_guards_mutations(monkeypatch):
    monkeypatch.setenv("DT_ADMIN_TOKEN", "secret")
    client = _client()
    payload = {"job_type": "sync_jira", "config": {}}

    assert client.post("/jobs", json=payload).status_code == 401
    assert client.post("/jobs", json=payload, headers={"X-Admin-Token": "secret"}).status_code == 201
    assert client.get("/jobs/stats").status_code == 200
