import json
from urllib.error import HTTPError

import pytest

from devtrail.agent.loop import PlannerTurn, ToolCall
from devtrail.agent.orchestrator import run_github_sync, run_jira_sync
from devtrail.config import load_runtime_config
from devtrail.errors import ConfigurationError, ExternalAPIError
from devtrail.job_configs import SyncGithubConfig, SyncJiraConfig
from devtrail.job_logger import JobLogger
from devtrail.llm.client import AnthropicClient
from devtrail.services.evidence_service import count_evidence, find_evidence, find_github_pr, find_jira_ticket
from devtrail.storage import claim_next_job, create_job, get_job, init_db


class ScriptedPlanner:
    def __init__(self, turns):
        self.turns = list(turns)
        self.tool_names = None

    def next_turn(self, system, messages, tools):
        self.tool_names = [tool["name"] for tool in tools]
        if self.turns:
            return PlannerTurn(text="", tool_calls=self.turns.pop(0))
        return PlannerTurn(text="Saved what I could.", tool_calls=[], usage={"input_tokens": 10})


class FakeGitHub:
    def __init__(self, author_count=2):
        self.author_count = author_count
        self.queries = []

    def count_prs(self, query):
        self.queries.append(query)
        return self.author_count if "author:" in query else 0

    def search_prs(self, query, limit=None):
        items = [
            {
                "number": number,
                "title": f"PR {number}",
                "repository_url": "https://api.github.com/repos/org/repo",
                "html_url": f"https://github.com/org/repo/pull/{number}",
                "user": {"login": "dev"},
                "pull_request": {"merged_at": "2024-02-01T10:00:00Z"},
            }
            for number in (1, 2)
        ]
        return items[:limit] if limit else items

    def get_pull(self, repo, number):
        if number == 1:
            raise ExternalAPIError("github", "Not Found", status=404)
        return {
            "number": number,
            "title": "PROJ-7 Add user export",
            "body": "See https://figma.com/file/abc",
            "html_url": f"https://github.com/{repo}/pull/{number}",
            "user": {"login": "dev"},
            "merged_at": "2024-02-01T10:00:00Z",
            "additions": 120,
            "deletions": 30,
            "changed_files": 2,
            "base": {"repo": {"full_name": repo}},
            "head": {"ref": "feature/export"},
            "labels": [],
        }

    def list_pull_files(self, repo, number):
        return [{"filename": "src/api/export.py"}, {"filename": "src/api/users.py"}]

    def list_pull_reviews(self, repo, number):
        return [{"user": {"login": "lead"}, "state": "APPROVED"}]


def _call(index, name, **arguments):
    return ToolCall(id=f"call_{index}", name=name, arguments=arguments)


def _running(tmp_path, job_type="sync_github"):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    create_job(conn, job_type, {})
    job = claim_next_job(conn)
    return conn, JobLogger.for_job(conn, job), load_runtime_config(conn)


def _github_turns(additions=120):
    save_args = {
        "repo": "org/repo",
        "number": 2,
        "title": "PROJ-7 Add user export",
        "user_role": "author",
        "additions": additions,
        "deletions": 30,
        "changed_files": 2,
        "components": ["src/api"],
    }
    return [
        [_call(1, "search_user_prs", role="author", repo="org/repo")],
        [_call(2, "get_existing_github_pr", repo="org/repo", number=1)],
        [_call(3, "fetch_pr_details", repo="org/repo", number=1)],
        [_call(4, "fetch_pr_details", repo="org/repo", number=2)],
        [
            _call(5, "categorize", title="PROJ-7 Add user export"),
            _call(6, "summarize", title="PROJ-7 Add user export"),
        ],
        [_call(7, "save_github_pr", **save_args)],
        [
            _call(
                8,
                "save_evidence",
                source="github",
                external_id="org/repo#2",
                role="author",
                title="PROJ-7 Add user export",
                summary="PROJ-7 Add user export",
                category="feature",
                scope="medium",
            )
        ],
    ]


def test_github_sync_saves_items_and_survives_item_failure(tmp_path):
    conn, job_logger, runtime = _running(tmp_path)
    github = FakeGitHub()
    planner = ScriptedPlanner(_github_turns())
    cfg = SyncGithubConfig(username="dev", repositories=["org/repo"])

    result = run_github_sync(conn, job_logger, cfg, runtime, github=github, planner=planner)

    assert result["items_expected"] == 2
    assert result["items_saved"] == 1
    assert result["tool_calls"] == 8
    assert result["hit_step_limit"] is False
    assert result["agent_response"] == "Saved what I could."
    assert result["usage"] == {"input_tokens": 10}
    assert len(github.queries) == 2
    assert "repo:org/repo" in github.queries[0]

    assert find_github_pr(conn, "org/repo", 2, "author") is not None
    assert find_github_pr(conn, "org/repo", 1, "author") is None
    evidence = find_evidence(conn, "github", "org/repo#2", "author")
    assert evidence is not None
    assert evidence.evidence_type == "pr_authored"

    job = get_job(conn, job_logger.job_id)
    assert job.progress == runtime.progress.sync_max
    assert job.status_message == "Finalizing"
    messages = [entry.message for entry in job.logs]
    assert any(message.startswith("fetch_pr_details: org/repo#1 → ERROR") for message in messages)
    assert "save_github_pr: org/repo#2 → created new" in messages
    assert "get_existing_jira_ticket" not in planner.tool_names


def test_github_sync_dry_run_caps_discovery_and_writes_nothing(tmp_path):
    conn, job_logger, runtime = _running(tmp_path)
    planner = ScriptedPlanner(_github_turns())
    cfg = SyncGithubConfig(username="dev", dry_run=True)

    result = run_github_sync(conn, job_logger, cfg, runtime, github=FakeGitHub(author_count=50), planner=planner)

    assert result["items_expected"] == runtime.sync.dry_run_limit
    assert result["items_saved"] == 1
    assert find_github_pr(conn, "org/repo", 2, "author") is None
    assert count_evidence(conn) == 0


def test_github_sync_zero_items_reaches_sync_max(tmp_path):
    conn, job_logger, runtime = _running(tmp_path)
    cfg = SyncGithubConfig(username="dev")

    result = run_github_sync(
        conn, job_logger, cfg, runtime, github=FakeGitHub(author_count=0), planner=ScriptedPlanner([])
    )

    assert result["items_expected"] == 0
    assert result["items_saved"] == 0
    assert get_job(conn, job_logger.job_id).progress == runtime.progress.sync_max


def test_github_sync_requires_username(tmp_path):
    conn, job_logger, runtime = _running(tmp_path)
    with pytest.raises(ConfigurationError):
        run_github_sync(
            conn, job_logger, SyncGithubConfig(), runtime, github=FakeGitHub(), planner=ScriptedPlanner([])
        )


class FakeJira:
    def count(self, jql):
        return 1


def test_jira_sync_saves_ticket(tmp_path, monkeypatch):
    monkeypatch.setenv("JIRA_EMAIL", "dev@example.com")
    conn, job_logger, runtime = _running(tmp_path, "sync_jira")
    planner = ScriptedPlanner(
        [
            [
                _call(
                    1,
                    "save_jira_ticket",
                    key="PROJ-7",
                    summary="User export",
                    issue_type="Story",
                    story_points=5,
                )
            ]
        ]
    )

    result = run_jira_sync(conn, job_logger, SyncJiraConfig(projects=["PROJ"]), runtime, jira=FakeJira(), planner=planner)

    assert result["items_expected"] == 1
    assert result["items_saved"] == 1
    assert find_jira_ticket(conn, "PROJ-7") is not None
    assert "search_user_jira_tickets" in planner.tool_names
    assert "save_github_pr" not in planner.tool_names
    assert get_job(conn, job_logger.job_id).progress == runtime.progress.sync_max


def test_jira_sync_requires_email(tmp_path):
    conn, job_logger, runtime = _running(tmp_path, "sync_jira")
    with pytest.raises(ConfigurationError):
        run_jira_sync(conn, job_logger, SyncJiraConfig(), runtime, jira=FakeJira(), planner=ScriptedPlanner([]))


def _next_job(conn):
    create_job(conn, "sync_github", {})
    return JobLogger.for_job(conn, claim_next_job(conn))


def _pr_rows(conn):
    return conn.execute("SELECT COUNT(*) FROM github_prs").fetchone()[0]


def test_github_sync_rerun_skips_existing_items(tmp_path):
    conn, job_logger, runtime = _running(tmp_path)
    cfg = SyncGithubConfig(username="dev", repositories=["org/repo"])
    run_github_sync(conn, job_logger, cfg, runtime, github=FakeGitHub(), planner=ScriptedPlanner(_github_turns()))
    assert (count_evidence(conn), _pr_rows(conn)) == (1, 1)

    rerun = run_github_sync(
        conn,
        _next_job(conn),
        cfg,
        runtime,
        github=FakeGitHub(),
        planner=ScriptedPlanner(_github_turns(additions=999)),
    )

    assert rerun["items_saved"] == 0
    assert (count_evidence(conn), _pr_rows(conn)) == (1, 1)
    assert find_github_pr(conn, "org/repo", 2, "author")["additions"] == 120


def test_github_sync_rerun_updates_existing_items(tmp_path):
    conn, job_logger, runtime = _running(tmp_path)
    first_cfg = SyncGithubConfig(username="dev", repositories=["org/repo"])
    run_github_sync(
        conn, job_logger, first_cfg, runtime, github=FakeGitHub(), planner=ScriptedPlanner(_github_turns())
    )
    evidence_id = find_evidence(conn, "github", "org/repo#2", "author").id

    rerun = run_github_sync(
        conn,
        _next_job(conn),
        SyncGithubConfig(username="dev", repositories=["org/repo"], update_existing=True),
        runtime,
        github=FakeGitHub(),
        planner=ScriptedPlanner(_github_turns(additions=200)),
    )

    assert rerun["items_saved"] == 1
    assert (count_evidence(conn), _pr_rows(conn)) == (1, 1)
    assert find_github_pr(conn, "org/repo", 2, "author")["additions"] == 200
    assert find_evidence(conn, "github", "org/repo#2", "author").id == evidence_id
    owner = conn.execute("SELECT job_id FROM evidence WHERE id = ?", (evidence_id,)).fetchone()[0]
    assert owner == job_logger.job_id


class _Response:
    def __init__(self, payload):
        self.raw = json.dumps(payload).encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def read(self):
        return self.raw


def test_github_sync_survives_overloaded_planner(tmp_path, monkeypatch):
    calls = []

    def flaky_urlopen(request, timeout=None):
        calls.append(request.full_url)
        if len(calls) == 1:
            raise HTTPError(request.full_url, 529, "overloaded", {}, None)
        return _Response(
            {
                "content": [{"type": "text", "text": "Nothing new to save."}],
                "stop_reason": "end_turn",
                "usage": {"input_tokens": 12},
            }
        )

    monkeypatch.setattr("devtrail.clients.http.urlopen", flaky_urlopen)
    monkeypatch.setattr("devtrail.clients.http.time.sleep", lambda seconds: None)
    conn, job_logger, runtime = _running(tmp_path)

    result = run_github_sync(
        conn,
        job_logger,
        SyncGithubConfig(username="dev"),
        runtime,
        github=FakeGitHub(),
        llm=AnthropicClient("sk-test", runtime.llm),
    )

    assert len(calls) == 2
    assert calls[0].endswith("/v1/messages")
    assert result["agent_response"] == "Nothing new to save."
    assert result["usage"] == {"input_tokens": 12}
    assert get_job(conn, job_logger.job_id).progress == runtime.progress.sync_max
