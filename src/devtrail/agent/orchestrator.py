from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..clients.github import GitHubClient, build_pr_query
from ..clients.jira import JiraClient, build_jql
from ..config import Config
from ..errors import ConfigurationError
from ..job_configs import SyncGithubConfig, SyncJiraConfig
from ..job_logger import JobLogger
from ..llm.client import AnthropicClient, AnthropicPlanner, build_llm_client
from ..progress import ProgressTracker
from ..services.credentials_service import load_credential, require_credential
from ..tools.context import ToolContext
from ..tools.toolsets import build_github_toolset, build_jira_toolset
from ..utils import log_event, truncate
from .formatting import format_tool_log
from .loop import Planner, StepRecord, run_agent, step_budget
from .prompts import GITHUB_SYSTEM_PROMPT, JIRA_SYSTEM_PROMPT, github_task, jira_task
from .tools import Toolset

logger = logging.getLogger("devtrail.agent.orchestrator")

SAVED_ACTIONS = {"created", "updated", "dry_run"}


@dataclass(frozen=True)
class AgentPhase:
    system: str
    task: str
    toolset: Toolset
    save_tool: str
    item_label: str
    expected_items: int


def run_github_sync(
    conn: Any,
    job_logger: JobLogger,
    cfg: SyncGithubConfig,
    runtime: Config,
    github: GitHubClient | None = None,
    jira: JiraClient | None = None,
    llm: AnthropicClient | None = None,
    planner: Planner | None = None,
) -> dict[str, Any]:
    job_logger.update_progress(5, "Initializing GitHub sync")
    if github is None:
        github = GitHubClient(require_credential(conn, "github_token"), runtime.github)
    username = cfg.username or load_credential(conn, "github_username")
    if not username:
        raise ConfigurationError("GitHub username not configured (set github_username or pass username)")
    if planner is None:
        llm = llm or build_llm_client(conn, runtime.llm)
        planner = AnthropicPlanner(llm)
    if jira is None:
        jira = optional_jira_client(conn, runtime)
    job_logger.update_progress(10, "Configuration loaded")
    job_logger.info(
        f"Syncing GitHub PRs for {username}"
        + (f" in {', '.join(cfg.repositories)}" if cfg.repositories else "")
    )

    expected = 0
    for repo in cfg.repositories or [None]:
        for role in ("author", "reviewer"):
            query = build_pr_query(username, role, repo, cfg.start_date, cfg.end_date)
            expected += github.count_prs(query)
    if cfg.dry_run:
        expected = min(expected, runtime.sync.dry_run_limit)
    job_logger.update_progress(20, f"Found {expected} PRs")

    ctx = ToolContext(
        conn=conn,
        config=runtime,
        github=github,
        jira=jira,
        llm=llm,
        username=username,
        jira_email=load_credential(conn, "jira_email") if jira is not None else None,
        dry_run=cfg.dry_run,
        update_existing=cfg.update_existing,
        job_id=job_logger.job_id,
    )
    phase = AgentPhase(
        system=GITHUB_SYSTEM_PROMPT,
        task=github_task(username, cfg, jira is not None),
        toolset=build_github_toolset(ctx),
        save_tool="save_github_pr",
        item_label="PRs",
        expected_items=expected,
    )
    return run_agent_phase(job_logger, planner, phase, runtime)


def run_jira_sync(
    conn: Any,
    job_logger: JobLogger,
    cfg: SyncJiraConfig,
    runtime: Config,
    jira: JiraClient | None = None,
    llm: AnthropicClient | None = None,
    planner: Planner | None = None,
) -> dict[str, Any]:
    job_logger.update_progress(5, "Initializing Jira sync")
    email = require_credential(conn, "jira_email")
    if jira is None:
        jira = JiraClient(
            require_credential(conn, "jira_host"),
            email,
            require_credential(conn, "jira_api_token"),
            runtime.jira.http,
        )
    if planner is None:
        llm = llm or build_llm_client(conn, runtime.llm)
        planner = AnthropicPlanner(llm)
    job_logger.update_progress(10, "Configuration loaded")
    job_logger.info(
        f"Syncing Jira tickets for {email}"
        + (f" in {', '.join(cfg.projects)}" if cfg.projects else "")
    )

    expected = jira.count(build_jql(email, cfg.projects, cfg.start_date, cfg.end_date))
    if cfg.dry_run:
        expected = min(expected, runtime.sync.dry_run_limit)
    job_logger.update_progress(20, f"Found {expected} tickets")

    ctx = ToolContext(
        conn=conn,
        config=runtime,
        jira=jira,
        llm=llm,
        jira_email=email,
        dry_run=cfg.dry_run,
        update_existing=cfg.update_existing,
        job_id=job_logger.job_id,
    )
    phase = AgentPhase(
        system=JIRA_SYSTEM_PROMPT,
        task=jira_task(email, cfg),
        toolset=build_jira_toolset(ctx),
        save_tool="save_jira_ticket",
        item_label="tickets",
        expected_items=expected,
    )
    return run_agent_phase(job_logger, planner, phase, runtime)


def run_agent_phase(
    job_logger: JobLogger, planner: Planner, phase: AgentPhase, runtime: Config
) -> dict[str, Any]:
    """Runs the planner over the toolset, advancing progress on every successful save."""
    tracker = ProgressTracker(
        job_logger, runtime.progress.sync_base, runtime.progress.sync_max, phase.item_label
    )
    tracker.set_total_items(phase.expected_items)
    max_steps = step_budget(
        phase.expected_items,
        runtime.agent.min_steps,
        runtime.agent.steps_per_item,
        runtime.agent.max_steps,
    )
    job_logger.info(f"Starting agent with a budget of {max_steps} steps")
    saved = 0

    def on_step(record: StepRecord) -> None:
        nonlocal saved
        job_logger.info(format_tool_log(record.call.name, record.call.arguments, record.result))
        if record.call.name != phase.save_tool or not record.result.success:
            return
        if record.result.data.get("action") in SAVED_ACTIONS:
            saved += 1
        tracker.increment_processed(_item_name(record.call.arguments))

    run = run_agent(
        planner,
        phase.system,
        phase.task,
        phase.toolset,
        max_steps,
        on_step=on_step,
        logger=logger,
    )
    if run.hit_step_limit:
        job_logger.warn(f"Agent stopped at the step limit ({max_steps}); some items may be unprocessed")
    failed_calls = sum(1 for record in run.steps if not record.result.success)
    job_logger.info(
        f"Agent finished: {run.step_count} steps, {run.tool_call_count} tool calls, "
        f"{saved} {phase.item_label} saved, {failed_calls} failed calls"
    )
    log_event(
        logger,
        logging.INFO,
        "agent_phase_finished",
        job_id=job_logger.job_id,
        steps=run.step_count,
        tool_calls=run.tool_call_count,
        saved=saved,
        hit_step_limit=run.hit_step_limit,
    )
    job_logger.update_progress(runtime.progress.sync_max, "Finalizing")
    return {
        "agent_response": run.text,
        "tool_calls": run.tool_call_count,
        "steps": run.step_count,
        "usage": dict(run.usage),
        "items_expected": phase.expected_items,
        "items_saved": saved,
        "hit_step_limit": run.hit_step_limit,
    }


def optional_jira_client(conn: Any, runtime: Config) -> JiraClient | None:
    host = load_credential(conn, "jira_host")
    email = load_credential(conn, "jira_email")
    token = load_credential(conn, "jira_api_token")
    if not (host and email and token):
        return None
    return JiraClient(host, email, token, runtime.jira.http)


def _item_name(arguments: dict[str, Any]) -> str:
    title = arguments.get("title") or arguments.get("summary")
    if title:
        return truncate(str(title), 60)
    if arguments.get("repo"):
        return f"{arguments['repo']}#{arguments.get('number')}"
    return str(arguments.get("key") or "item")
