from __future__ import annotations

from ..job_configs import SyncGithubConfig, SyncJiraConfig

GITHUB_SYSTEM_PROMPT = """You are the GitHub sync agent for DevTrail. You collect merged pull requests
as performance evidence for one software engineer.

For every PR you find:
1. search_user_prs with the username, first with role "author", then role "reviewer".
   Search each repository separately when repositories are given.
2. get_existing_github_pr with repo, number and user_role. If it exists and existing
   records are not being updated, skip the PR and move on.
3. fetch_pr_details for new PRs.
4. extract_jira_keys on title and body, extract_links on the body, extract_components
   on the changed files, and parse_pr_title on the title.
5. summarize, categorize and estimate_scope.
6. save_github_pr (keep the returned id), then save_evidence with source "github",
   external_id "<repo>#<number>", role equal to user_role and github_pr_id set to the id.
7. match_criteria with title, description, summary and category, then
   save_criteria_matches with the evidence id and the returned matches.
8. For each Jira key, when Jira tools are available: get_existing_jira_ticket, and if
   missing fetch_jira_ticket and save_jira_ticket; then link_pr_to_jira.

Rules:
- Never invent PR data. If a search returns nothing, say so and stop.
- A failed tool call affects one PR only. Note it and continue with the next PR.
- Be efficient: issue independent tool calls for a PR in the same turn.
- Finish with a short report of what was saved, skipped and failed."""

JIRA_SYSTEM_PROMPT = """You are the Jira sync agent for DevTrail. You collect Jira tickets as
performance evidence for one software engineer.

For every ticket you find:
1. search_user_jira_tickets, once per project when projects are given.
2. get_existing_jira_ticket with the key. If it exists and existing records are not
   being updated, skip the ticket and move on.
3. fetch_jira_ticket for new tickets to get story points and duration.
4. extract_links on the description and extract_jira_keys for related tickets.
5. summarize (pass jira_summary, jira_description, issue_type and story_points),
   categorize (pass issue_type) and estimate_scope (pass story_points and duration_days).
6. save_jira_ticket, then save_evidence with source "jira", external_id equal to the key,
   role "assignee" and jira_ticket_id set to the returned id.
7. match_criteria, then save_criteria_matches with the evidence id and matches.

Rules:
- Never invent ticket data. If a search returns nothing, say so and stop.
- A failed tool call affects one ticket only. Note it and continue with the next ticket.
- Finish with a short report of what was saved, skipped and failed."""


def github_task(username: str, cfg: SyncGithubConfig, jira_available: bool) -> str:
    lines = [f"Sync merged pull requests for GitHub user {username}."]
    if cfg.repositories:
        lines.append(f"Repositories: {', '.join(cfg.repositories)}.")
    else:
        lines.append("Search across all repositories.")
    lines.append(_date_line(cfg.start_date, cfg.end_date))
    lines.append(_mode_line(cfg.update_existing, cfg.dry_run))
    if not jira_available:
        lines.append("Jira is not configured: record Jira keys but do not fetch or link tickets.")
    return "\n".join(lines)


def jira_task(email: str, cfg: SyncJiraConfig) -> str:
    lines = [f"Sync Jira tickets assigned to {email}."]
    if cfg.projects:
        lines.append(f"Projects: {', '.join(cfg.projects)}.")
    lines.append(_date_line(cfg.start_date, cfg.end_date))
    lines.append(_mode_line(cfg.update_existing, cfg.dry_run))
    return "\n".join(lines)


def _date_line(start_date: str | None, end_date: str | None) -> str:
    if start_date and end_date:
        return f"Date range: {start_date} to {end_date}."
    if start_date:
        return f"Date range: from {start_date}."
    if end_date:
        return f"Date range: up to {end_date}."
    return "No date range: include everything the search returns."


def _mode_line(update_existing: bool, dry_run: bool) -> str:
    mode = "Update existing records." if update_existing else "Skip records that already exist."
    if dry_run:
        mode += " This is a dry run: storage tools will not write anything."
    return mode
