from __future__ import annotations

from typing import Any
from urllib.parse import quote, urlencode

from ..config import HttpConfig
from .http import request_json

ROLE_QUALIFIERS = {
    "author": "author",
    "reviewer": "reviewed-by",
    "assignee": "assignee",
}


def build_pr_query(
    username: str,
    role: str = "author",
    repo: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> str:
    qualifier = ROLE_QUALIFIERS.get(role)
    if qualifier is None:
        raise ValueError(f"unsupported role {role}")
    parts = ["is:pr", "is:merged", f"{qualifier}:{username}"]
    if repo:
        parts.append(f"repo:{repo}")
    if start_date and end_date:
        parts.append(f"merged:{start_date[:10]}..{end_date[:10]}")
    elif start_date:
        parts.append(f"merged:>={start_date[:10]}")
    elif end_date:
        parts.append(f"merged:<={end_date[:10]}")
    return " ".join(parts)


class GitHubClient:
    def __init__(self, token: str, http: HttpConfig) -> None:
        self.token = token
        self.http = http

    def search_issues(self, query: str, page: int = 1, per_page: int | None = None) -> dict[str, Any]:
        params = {"q": query, "page": page, "per_page": per_page or self.http.page_size}
        return self._get(f"/search/issues?{urlencode(params)}")

    def count_prs(self, query: str) -> int:
        response = self.search_issues(query, per_page=1)
        return int(response.get("total_count") or 0)

    def search_prs(self, query: str, limit: int | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            response = self.search_issues(query, page=page)
            batch = response.get("items") or []
            items.extend(batch)
            total = int(response.get("total_count") or 0)
            if limit is not None and len(items) >= limit:
                return items[:limit]
            if not batch or len(items) >= total or len(batch) < self.http.page_size:
                return items
            page += 1

    def get_pull(self, repo: str, number: int) -> dict[str, Any]:
        return self._get(f"/repos/{_repo_path(repo)}/pulls/{int(number)}")

    def list_pull_files(self, repo: str, number: int) -> list[dict[str, Any]]:
        files: list[dict[str, Any]] = []
        page = 1
        while True:
            batch = self._get(
                f"/repos/{_repo_path(repo)}/pulls/{int(number)}/files?per_page=100&page={page}"
            )
            if not isinstance(batch, list) or not batch:
                return files
            files.extend(batch)
            if len(batch) < 100:
                return files
            page += 1

    def list_pull_reviews(self, repo: str, number: int) -> list[dict[str, Any]]:
        reviews = self._get(f"/repos/{_repo_path(repo)}/pulls/{int(number)}/reviews?per_page=100")
        return reviews if isinstance(reviews, list) else []

    def _get(self, path: str) -> Any:
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        return request_json("github", self.http.api_base.rstrip("/") + path, headers, self.http)


def repo_from_url(url: str | None) -> str | None:
    # https://api.github.com/repos/<owner>/<name>
    if not url or "/repos/" not in url:
        return None
    return "/".join(url.split("/repos/", 1)[1].split("/")[:2])


def _repo_path(repo: str) -> str:
    owner, _, name = repo.partition("/")
    return f"{quote(owner)}/{quote(name)}"
