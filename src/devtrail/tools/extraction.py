from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from ..agent.tools import Tool, ToolResult

JIRA_KEY_RE = re.compile(r"\b([A-Z][A-Z0-9]+-\d+)\b")
URL_RE = re.compile(r"https?://[^\s<>\[\]\"'`)]+", re.IGNORECASE)
TITLE_KEY_RE = re.compile(r"^\[?([A-Z][A-Z0-9]+-\d+)\]?:?\s*")
CONVENTIONAL_RE = re.compile(
    r"^(feat|fix|docs|style|refactor|perf|test|build|ci|chore|revert)(\((.+?)\))?:\s*",
    re.IGNORECASE,
)

LINK_KINDS = ("figma", "confluence", "google_docs", "github", "slack", "other")

# first hit wins; order matters
_DOMAIN_RULES = (
    ("testing", ("test", "spec", "__tests__")),
    ("documentation", ("doc", "readme")),
    ("backend", ("api", "service", "backend")),
    ("frontend", ("component", "ui", "frontend", "app")),
    ("infrastructure", ("config", "script", "tool")),
)
_TITLE_TYPE_RULES = (
    ("fix", ("fix", "bug")),
    ("refactor", ("refactor", "clean")),
    ("test", ("test",)),
    ("docs", ("doc",)),
    ("feat", ("add", "create", "implement")),
    ("chore", ("update", "upgrade", "bump")),
)


def extract_jira_keys(text: str) -> list[str]:
    keys: list[str] = []
    for key in JIRA_KEY_RE.findall(text or ""):
        if key not in keys:
            keys.append(key)
    return keys


def classify_link(url: str) -> str:
    lowered = url.lower()
    if "figma.com" in lowered:
        return "figma"
    if "atlassian.net/wiki" in lowered or "confluence" in lowered:
        return "confluence"
    if any(host in lowered for host in ("docs.google.com", "drive.google.com", "sheets.google.com")):
        return "google_docs"
    if "github.com" in lowered:
        return "github"
    if "slack.com" in lowered:
        return "slack"
    return "other"


def extract_links(text: str) -> dict[str, list[str]]:
    links: dict[str, list[str]] = {kind: [] for kind in LINK_KINDS}
    for raw in URL_RE.findall(text or ""):
        url = raw.rstrip(".,;:!?)")
        bucket = links[classify_link(url)]
        if url not in bucket:
            bucket.append(url)
    return links


def extract_components(file_paths: list[str], max_depth: int = 4) -> dict[str, Any]:
    counts: Counter[str] = Counter()
    extensions: Counter[str] = Counter()
    for path in file_paths:
        name = path.rsplit("/", 1)[-1]
        if "." in name:
            extensions[name.rsplit(".", 1)[1]] += 1
        parts = [part for part in path.split("/") if part]
        for depth in range(1, min(len(parts) - 1, max_depth) + 1):
            counts["/".join(parts[:depth])] += 1

    components = sorted(
        ({"name": name, "count": count, "depth": name.count("/") + 1} for name, count in counts.items()),
        key=lambda item: (item["depth"], -item["count"]),
    )
    top = sorted((c for c in components if c["depth"] <= 2), key=lambda c: -c["count"])[:5]
    leaf = sorted(
        (c for c in components if c["depth"] >= 3 and c["count"] >= 2), key=lambda c: -c["count"]
    )[:10]

    domains: list[str] = []
    for component in top:
        lowered = component["name"].lower()
        for domain, needles in _DOMAIN_RULES:
            if any(needle in lowered for needle in needles):
                if domain not in domains:
                    domains.append(domain)
                break

    return {
        "total_files": len(file_paths),
        "components": components,
        "top_components": [c["name"] for c in top],
        "leaf_components": [c["name"] for c in leaf],
        "file_extensions": dict(extensions),
        "primary_domains": domains,
    }


def parse_pr_title(title: str) -> dict[str, Any]:
    key_match = TITLE_KEY_RE.match(title)
    jira_key = key_match.group(1) if key_match else None
    if jira_key is None:
        keys = extract_jira_keys(title)
        jira_key = keys[0] if keys else None
    clean = TITLE_KEY_RE.sub("", title, count=1).strip()

    commit_type = None
    scope = None
    conventional = CONVENTIONAL_RE.match(clean)
    if conventional:
        commit_type = conventional.group(1).lower()
        scope = conventional.group(3)
        clean = clean[conventional.end():].strip()
    else:
        lowered = clean.lower()
        for kind, needles in _TITLE_TYPE_RULES:
            if any(needle in lowered for needle in needles):
                commit_type = kind
                break

    return {"jira_key": jira_key, "commit_type": commit_type, "scope": scope, "description": clean}


@dataclass(frozen=True)
class TextInput:
    text: str


@dataclass(frozen=True)
class ComponentsInput:
    files: list[str] = field(default_factory=list)
    max_depth: int = 4


@dataclass(frozen=True)
class TitleInput:
    title: str


_TEXT_SCHEMA = {
    "type": "object",
    "properties": {"text": {"type": "string"}},
    "required": ["text"],
}


def extraction_tools() -> list[Tool]:
    def run_jira_keys(params: TextInput) -> ToolResult:
        keys = extract_jira_keys(params.text)
        return ToolResult.ok(found=bool(keys), key=keys[0] if keys else None, keys=keys)

    def run_links(params: TextInput) -> ToolResult:
        links = extract_links(params.text)
        return ToolResult.ok(
            links=links,
            total_links=sum(len(urls) for urls in links.values()),
            has_design_links=bool(links["figma"]),
            has_doc_links=bool(links["confluence"] or links["google_docs"]),
        )

    def run_components(params: ComponentsInput) -> ToolResult:
        return ToolResult.ok(**extract_components(params.files, params.max_depth))

    def run_title(params: TitleInput) -> ToolResult:
        return ToolResult.ok(original=params.title, parsed=parse_pr_title(params.title))

    return [
        Tool(
            name="extract_jira_keys",
            description="Extract Jira ticket keys such as PROJ-123 from text (PR title, body, branch).",
            input_type=TextInput,
            input_schema=_TEXT_SCHEMA,
            run=run_jira_keys,
        ),
        Tool(
            name="extract_links",
            description="Extract and classify links (Figma, Confluence, Google Docs, GitHub, Slack) from text.",
            input_type=TextInput,
            input_schema=_TEXT_SCHEMA,
            run=run_links,
        ),
        Tool(
            name="extract_components",
            description="Derive code components and domains touched from a list of changed file paths.",
            input_type=ComponentsInput,
            input_schema={
                "type": "object",
                "properties": {
                    "files": {"type": "array", "items": {"type": "string"}},
                    "max_depth": {"type": "integer", "minimum": 1, "maximum": 10},
                },
                "required": ["files"],
            },
            run=run_components,
        ),
        Tool(
            name="parse_pr_title",
            description="Parse a PR title into Jira key, conventional commit type, scope and description.",
            input_type=TitleInput,
            input_schema={
                "type": "object",
                "properties": {"title": {"type": "string"}},
                "required": ["title"],
            },
            run=run_title,
        ),
    ]
