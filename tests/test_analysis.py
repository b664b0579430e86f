import json

from devtrail.agent.tools import Toolset
from devtrail.config import load_runtime_config
from devtrail.errors import ExternalAPIError
from devtrail.models import Criterion
from devtrail.services.criteria_service import import_criteria
from devtrail.services.evidence_service import get_evidence, save_evidence
from devtrail.storage import init_db
from devtrail.tools.analysis import analysis_tools, categorize_work, estimate_scope, summarize_work
from devtrail.tools.context import ToolContext
from devtrail.tools.storage_tools import storage_tools


class FakeLLM:
    def __init__(self, response):
        self.response = response

    def complete(self, prompt, system=None, max_tokens=None):
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def test_categorize_work():
    assert categorize_work("Fix null pointer in checkout") == ("bug", 0.9)
    assert categorize_work("Story", issue_type="Bug") == ("bug", 0.9)
    assert categorize_work("Refactor payment module") == ("refactor", 0.85)
    assert categorize_work("Update README") == ("docs", 0.85)
    assert categorize_work("Add coverage for cart") == ("devex", 0.8)
    assert categorize_work("Tweak ci workflow") == ("devex", 0.75)
    assert categorize_work("Kudos to the team") == ("recognition", 0.9)
    assert categorize_work("Pair with Sam to unblock release") == ("help", 0.75)
    assert categorize_work("Implement bulk export") == ("feature", 0.7)
    assert categorize_work("Misc") == ("feature", 0.5)


def test_estimate_scope():
    assert estimate_scope(10, 5, 1)["scope"] == "small"
    assert estimate_scope(300, 50, 8)["scope"] == "medium"
    large = estimate_scope(800, 200, 30, story_points=8)
    assert large["scope"] == "large"
    assert large["score"] == 7
    assert "8 story points (large)" in large["factors"]


def test_summarize_falls_back():
    assert summarize_work(None, ["Title: x"], "x")["fallback"] is True
    down = summarize_work(FakeLLM(ExternalAPIError("anthropic", "overloaded")), ["Title: x"], "x")
    assert down == {"summary": "x", "fallback": True, "error": "anthropic error: overloaded"}
    ok = summarize_work(FakeLLM("  Shipped CSV export.  "), ["Title: x"], "x")
    assert ok == {"summary": "Shipped CSV export.", "fallback": False}


def _ctx(conn, llm=None, dry_run=False):
    return ToolContext(conn=conn, config=load_runtime_config(conn), llm=llm, dry_run=dry_run)


def test_match_criteria_tool_without_criteria_fails(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    toolset = Toolset(analysis_tools(_ctx(conn, FakeLLM("{}"))))
    result = toolset.invoke("match_criteria", {"title": "Add export"})
    assert result.success is False
    assert result.error == "No criteria found in database"


def test_match_criteria_tool_caps_and_sorts(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    import_criteria(
        conn,
        [Criterion(id=n, area="Area", subarea="", description=f"c{n}", pr_detectable=True) for n in range(1, 6)],
    )
    response = json.dumps(
        {"matches": [{"criterion_id": n, "confidence": 50 + n * 10, "explanation": "e"} for n in range(1, 6)]}
    )
    toolset = Toolset(analysis_tools(_ctx(conn, FakeLLM(response))))
    result = toolset.invoke("match_criteria", {"title": "Add export"})

    assert result.success
    assert [match["criterion_id"] for match in result.data["matches"]] == [5, 4, 3]
    assert result.data["criteria_evaluated"] == 5


def test_save_criteria_matches_tool_ignores_unknown_criteria(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    import_criteria(conn, [Criterion(id=1, area="Area", subarea="", description="c1", pr_detectable=True)])
    evidence_id = save_evidence(
        conn,
        {
            "source": "jira",
            "external_id": "PROJ-1",
            "role": "assignee",
            "evidence_type": "jira_ticket",
            "title": "Ticket",
        },
    ).id
    toolset = Toolset(storage_tools(_ctx(conn)))

    result = toolset.invoke(
        "save_criteria_matches",
        {
            "evidence_id": evidence_id,
            "matches": [{"criterion_id": 1, "confidence": 0.7}, {"criterion_id": 42, "confidence": 0.9}],
        },
    )
    assert result.success
    assert result.data == {"count": 1, "ignored_criteria": [42]}
    assert [match.criterion_id for match in get_evidence(conn, evidence_id).matches] == [1]

    missing = toolset.invoke("save_criteria_matches", {"evidence_id": "nope", "matches": []})
    assert missing.success is False


def test_storage_tools_dry_run_writes_nothing(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    toolset = Toolset(storage_tools(_ctx(conn, dry_run=True)))
    result = toolset.invoke("save_jira_ticket", {"key": "PROJ-1", "summary": "Ticket"})
    assert result.data == {"action": "dry_run", "id": None, "already_exists": False}
    assert conn.execute("SELECT COUNT(*) FROM jira_tickets").fetchone()[0] == 0

    link = toolset.invoke("link_pr_to_jira", {"pr_id": "x", "jira_key": "PROJ-1"})
    assert link.data["action"] == "dry_run"


def test_match_criteria_repeated_criterion_uses_one_slot(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    import_criteria(
        conn,
        [Criterion(id=n, area="Area", subarea="", description=f"c{n}", pr_detectable=True) for n in range(1, 5)],
    )
    response = json.dumps(
        {
            "matches": [
                {"criterion_id": 1, "confidence": 95, "explanation": "first"},
                {"criterion_id": 1, "confidence": 90, "explanation": "again"},
                {"criterion_id": 1, "confidence": 85, "explanation": "and again"},
                {"criterion_id": 2, "confidence": 80, "explanation": "e"},
                {"criterion_id": 3, "confidence": 70, "explanation": "e"},
            ]
        }
    )
    toolset = Toolset(analysis_tools(_ctx(conn, FakeLLM(response))))
    result = toolset.invoke("match_criteria", {"title": "Add export"})

    assert [match["criterion_id"] for match in result.data["matches"]] == [1, 2, 3]
    assert result.data["matches"][0]["explanation"] == "first"
