import json

from devtrail.cli import main
from devtrail.services.criteria_service import list_criteria
from devtrail.storage import create_job, get_job, init_db, list_jobs


def test_jobs_enqueue_and_show(capsys):
    assert main(["jobs", "enqueue", "generate_insight", "--config", '{"month": "2024-03"}']) == 0
    enqueued = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert enqueued["job_type"] == "generate_insight"

    assert main(["jobs", "show", enqueued["job_id"]]) == 0
    shown = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert shown["config"] == {"month": "2024-03"}


def test_jobs_enqueue_rejects_invalid_input():
    assert main(["jobs", "enqueue", "github_sync"]) == 1
    assert main(["jobs", "enqueue", "generate_insight", "--config", "{not json"]) == 1
    assert main(["jobs", "enqueue", "generate_insight", "--config", "{}"]) == 1
    conn = init_db()
    assert list_jobs(conn) == []


def test_jobs_cancel(tmp_path):
    conn = init_db()
    job_id = create_job(conn, "sync_jira", {})
    assert main(["jobs", "cancel", job_id]) == 0
    assert get_job(conn, job_id).status == "CANCELLED"
    assert main(["jobs", "cancel", job_id]) == 1
    assert main(["jobs", "cancel", "job_missing"]) == 1


def test_criteria_import(tmp_path):
    path = tmp_path / "criteria.yml"
    path.write_text(
        "- id: 1\n  area: Delivery\n  description: Ships fixes\n",
        encoding="utf-8",
    )
    assert main(["criteria", "import", str(path)]) == 0
    assert [criterion.id for criterion in list_criteria(init_db())] == [1]
    assert main(["criteria", "import", str(tmp_path / "missing.yml")]) == 1
