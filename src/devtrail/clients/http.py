from __future__ import annotations

import json
import time
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..config import HttpConfig
from ..errors import ExternalAPIError

USER_AGENT = "DevTrail/0.1"
# 529 is Anthropic's "overloaded"
RETRY_STATUSES = {429, 500, 502, 503, 529}


def request_json(
    service: str,
    url: str,
    headers: dict[str, str],
    http: HttpConfig,
    method: str = "GET",
    payload: dict[str, Any] | None = None,
) -> Any:
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    all_headers = {"User-Agent": USER_AGENT, "Accept": "application/json", **headers}
    if data is not None:
        all_headers["Content-Type"] = "application/json"
    attempt = 0
    while True:
        try:
            request = Request(url, data=data, headers=all_headers, method=method)
            with urlopen(request, timeout=http.timeout_seconds) as response:
                raw = response.read().decode("utf-8")
            break
        except HTTPError as exc:
            if exc.code in RETRY_STATUSES and attempt < http.max_retries:
                time.sleep(http.backoff_seconds * (attempt + 1))
                attempt += 1
                continue
            detail = exc.read().decode("utf-8", errors="ignore")
            raise ExternalAPIError(service, detail[:300] or str(exc.reason), status=exc.code) from exc
        except URLError as exc:
            if attempt < http.max_retries:
                time.sleep(http.backoff_seconds * (attempt + 1))
                attempt += 1
                continue
            raise ExternalAPIError(service, f"network_error: {exc.reason}") from exc
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ExternalAPIError(service, f"non-JSON response: {raw[:200]}") from exc
