from __future__ import annotations

import base64
from typing import Any
from urllib.parse import quote, urlencode

from ..config import HttpConfig
from .http import request_json

SEARCH_FIELDS = [
    "summary",
    "description",
    "issuetype",
    "status",
    "priority",
    "created",
    "resolutiondate",
    "assignee",
    "labels",
]


def build_jql(
    email: str,
    projects: list[str] | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> str:
    clauses = [f'assignee = "{email}"']
    if projects:
        clauses.append(f"project IN ({', '.join(projects)})")
    if start_date:
        clauses.append(f'updated >= "{start_date[:10]}"')
    if end_date:
        clauses.append(f'updated <= "{end_date[:10]}"')
    return " AND ".join(clauses) + " ORDER BY updated DESC"


class JiraClient:
    def __init__(self, base_url: str, email: str, token: str, http: HttpConfig) -> None:
        if not base_url.startswith("http"):
            base_url = f"https://{base_url}"
        self.base_url = base_url.rstrip("/")
        self.email = email
        self._auth = base64.b64encode(f"{email}:{token}".encode("utf-8")).decode("ascii")
        self.http = http

    def count(self, jql: str) -> int:
        response = self._get(f"/rest/api/3/search?{urlencode({'jql': jql, 'maxResults': 0})}")
        return int(response.get("total") or 0)

    def search(
        self,
        jql: str,
        fields: list[str] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        start_at = 0
        while True:
            params = {
                "jql": jql,
                "startAt": start_at,
                "maxResults": self.http.page_size,
                "fields": ",".join(fields or SEARCH_FIELDS),
            }
            response = self._get(f"/rest/api/3/search?{urlencode(params)}")
            batch = response.get("issues") or []
            issues.extend(batch)
            if limit is not None and len(issues) >= limit:
                return issues[:limit]
            start_at += len(batch)
            if not batch or start_at >= int(response.get("total") or 0):
                return issues

    def get_issue(self, key: str, extra_fields: list[str] | None = None) -> dict[str, Any]:
        fields = ",".join(SEARCH_FIELDS + list(extra_fields or []))
        return self._get(f"/rest/api/3/issue/{quote(key)}?{urlencode({'fields': fields})}")

    def _get(self, path: str) -> Any:
        headers = {"Authorization": f"Basic {self._auth}"}
        return request_json("jira", self.base_url + path, headers, self.http)
