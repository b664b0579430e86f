from devtrail.tools.extraction import (
    classify_link,
    extract_components,
    extract_jira_keys,
    extract_links,
    extraction_tools,
    parse_pr_title,
)
from devtrail.agent.tools import Toolset
from devtrail.tools.jira_tools import adf_text, duration_days, ticket_details
from devtrail.tools.github_tools import pr_details, summarize_search_item


def test_extract_jira_keys_dedupes_in_order():
    text = "PROJ-12: fix login (see PROJ-12 and OPS-7, not lower-1)"
    assert extract_jira_keys(text) == ["PROJ-12", "OPS-7"]
    assert extract_jira_keys("") == []


def test_extract_links_classifies():
    text = (
        "Design https://www.figma.com/file/abc, spec https://acme.atlassian.net/wiki/spaces/X "
        "and https://docs.google.com/document/d/1 plus https://github.com/org/repo/pull/2."
    )
    links = extract_links(text)
    assert links["figma"] == ["https://www.figma.com/file/abc"]
    assert links["confluence"] == ["https://acme.atlassian.net/wiki/spaces/X"]
    assert links["google_docs"] == ["https://docs.google.com/document/d/1"]
    assert links["github"] == ["https://github.com/org/repo/pull/2"]
    assert classify_link("https://example.com") == "other"


def test_extract_components():
    files = [
        "src/api/users/views.py",
        "src/api/users/models.py",
        "src/api/auth.py",
        "docs/readme.md",
    ]
    result = extract_components(files)
    assert result["total_files"] == 4
    assert result["top_components"][0] == "src"
    assert "src/api" in result["top_components"]
    assert result["leaf_components"] == ["src/api/users"]
    assert result["file_extensions"] == {"py": 3, "md": 1}
    assert "backend" in result["primary_domains"]


def test_parse_pr_title():
    assert parse_pr_title("[PROJ-9] feat(api): add export") == {
        "jira_key": "PROJ-9",
        "commit_type": "feat",
        "scope": "api",
        "description": "add export",
    }
    parsed = parse_pr_title("Fix crash on empty cart")
    assert parsed["jira_key"] is None
    assert parsed["commit_type"] == "fix"


def test_extract_links_tool_counts():
    toolset = Toolset(extraction_tools())
    result = toolset.invoke("extract_links", {"text": "https://figma.com/a https://slack.com/b"})
    assert result.success
    assert result.data["total_links"] == 2
    assert result.data["has_design_links"] is True
    assert result.data["has_doc_links"] is False


def test_adf_text_and_duration():
    doc = {
        "type": "doc",
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": "Export users"}]},
            {"type": "paragraph", "content": [{"type": "text", "text": "as CSV"}]},
        ],
    }
    assert adf_text(doc) == "Export users\nas CSV\n"
    assert duration_days("2024-01-01T10:00:00.000+0000", "2024-01-11T09:00:00.000+0000") == 9
    assert duration_days("2024-01-01", None) is None


def test_ticket_details():
    issue = {
        "key": "PROJ-7",
        "fields": {
            "summary": "User export",
            "description": "plain text",
            "issuetype": {"name": "Story"},
            "status": {"name": "Done"},
            "customfield_10028": 5,
            "created": "2024-01-01T10:00:00.000+0000",
            "resolutiondate": "2024-01-04T10:00:00.000+0000",
        },
    }
    details = ticket_details(issue, "customfield_10028")
    assert details["story_points"] == 5.0
    assert details["duration_days"] == 3
    assert details["issue_type"] == "Story"
    assert details["priority"] is None


def test_github_item_shapes():
    item = {
        "number": 3,
        "title": "Add export",
        "repository_url": "https://api.github.com/repos/org/repo",
        "user": {"login": "dev"},
        "closed_at": "2024-02-01T00:00:00Z",
        "labels": [{"name": "feature"}],
    }
    summary = summarize_search_item(item)
    assert summary["repo"] == "org/repo"
    assert summary["merged_at"] == "2024-02-01T00:00:00Z"
    assert summary["labels"] == ["feature"]

    details = pr_details(
        {"number": 3, "merged_at": "2024-02-01T00:00:00Z", "additions": 5, "base": {"repo": {"full_name": "org/repo"}}},
        [{"filename": "a.py"}],
        [{"user": {"login": "lead"}, "state": "APPROVED"}],
    )
    assert details["state"] == "merged"
    assert details["changed_files"] == 1
    assert details["files"] == ["a.py"]
    assert details["reviews"] == [{"user": "lead", "state": "APPROVED"}]
