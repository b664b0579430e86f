from __future__ import annotations

from ..agent.tools import Toolset
from .analysis import analysis_tools
from .context import ToolContext
from .extraction import extraction_tools
from .github_tools import github_tools
from .jira_tools import jira_tools
from .storage_tools import storage_tools

GITHUB_STORAGE = {"save_github_pr", "save_evidence", "link_pr_to_jira", "save_criteria_matches"}
JIRA_STORAGE = {"save_jira_ticket", "save_evidence", "save_criteria_matches"}
JIRA_LOOKUP = {"get_existing_jira_ticket", "fetch_jira_ticket"}


def build_github_toolset(ctx: ToolContext) -> Toolset:
    """GitHub sync tools; Jira lookup and save are added when a Jira client is available for linking."""
    storage_names = set(GITHUB_STORAGE)
    tools = [*github_tools(ctx), *extraction_tools(), *analysis_tools(ctx)]
    if ctx.jira is not None:
        tools.extend(tool for tool in jira_tools(ctx) if tool.name in JIRA_LOOKUP)
        storage_names.add("save_jira_ticket")
    tools.extend(tool for tool in storage_tools(ctx) if tool.name in storage_names)
    return Toolset(tools, logger=ctx.logger)


def build_jira_toolset(ctx: ToolContext) -> Toolset:
    extraction = [tool for tool in extraction_tools() if tool.name in {"extract_jira_keys", "extract_links"}]
    storage = [tool for tool in storage_tools(ctx) if tool.name in JIRA_STORAGE]
    return Toolset(
        [*jira_tools(ctx), *extraction, *analysis_tools(ctx), *storage],
        logger=ctx.logger,
    )
