from __future__ import annotations

import json
import logging
from typing import Any

import jsonschema

from ..agent.loop import PlannerTurn, ToolCall
from ..clients.http import request_json
from ..config import LlmConfig
from ..errors import ConfigurationError, ExternalAPIError, ParseError
from ..services.credentials_service import require_credential

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicClient:
    """Thin Messages API client; returns parsed JSON or raises ExternalAPIError.

    Transient failures (429, 500, 502, 503, 529 and network errors) are
    retried with backoff by `request_json` before anything is raised.
    """

    def __init__(self, api_key: str, config: LlmConfig, logger: logging.Logger | None = None) -> None:
        self.api_key = api_key
        self.config = config
        self.logger = logger or logging.getLogger("devtrail.llm")

    def create_message(self, payload: dict[str, Any]) -> dict[str, Any]:
        body = {"model": self.config.model, "max_tokens": self.config.max_tokens, **payload}
        return request_json(
            "anthropic",
            _join_url(self.config.base_url, "/messages"),
            _auth_headers(self.api_key),
            self.config.http(),
            method="POST",
            payload=body,
        )

    def complete(self, prompt: str, system: str | None = None, max_tokens: int | None = None) -> str:
        payload: dict[str, Any] = {"messages": [{"role": "user", "content": prompt}]}
        if system:
            payload["system"] = system
        if max_tokens:
            payload["max_tokens"] = max_tokens
        return _read_text(self.create_message(payload))

    def complete_json(
        self,
        prompt: str,
        schema: dict[str, Any],
        system: str | None = None,
        max_tokens: int | None = None,
    ) -> Any:
        raw = self.complete(prompt, system=system, max_tokens=max_tokens)
        parsed = parse_json_response(raw)
        validation = _validate_json(schema, parsed)
        if not validation["ok"]:
            raise ParseError(f"model output failed schema validation: {validation['error']}")
        return parsed


class AnthropicPlanner:
    def __init__(self, client: AnthropicClient) -> None:
        self.client = client

    def next_turn(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> PlannerTurn:
        response = self.client.create_message(
            {"system": system, "messages": messages, "tools": tools}
        )
        text_parts: list[str] = []
        calls: list[ToolCall] = []
        for block in response.get("content") or []:
            if block.get("type") == "text":
                text_parts.append(block.get("text") or "")
            elif block.get("type") == "tool_use":
                calls.append(
                    ToolCall(
                        id=str(block.get("id")),
                        name=str(block.get("name")),
                        arguments=dict(block.get("input") or {}),
                    )
                )
        usage = {
            key: int(value)
            for key, value in (response.get("usage") or {}).items()
            if isinstance(value, int)
        }
        return PlannerTurn(
            text="\n".join(part for part in text_parts if part),
            tool_calls=calls,
            usage=usage,
            stop_reason=response.get("stop_reason"),
        )


def build_llm_client(conn, config: LlmConfig) -> AnthropicClient:
    if config.provider != "anthropic":
        raise ConfigurationError(f"unsupported llm provider {config.provider}")
    return AnthropicClient(require_credential(conn, "anthropic_api_key"), config)


def parse_json_response(raw: str) -> Any:
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    start = min((idx for idx in (text.find("{"), text.find("[")) if idx >= 0), default=-1)
    if start > 0:
        text = text[start:]
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"model returned invalid JSON: {exc}") from exc


def _read_text(response: dict[str, Any]) -> str:
    content = response.get("content") or []
    texts = [block.get("text") or "" for block in content if block.get("type") == "text"]
    if not texts:
        raise ExternalAPIError("anthropic", "anthropic_missing_content")
    return "".join(texts)


def _auth_headers(api_key: str) -> dict[str, str]:
    return {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + path


def _validate_json(schema: dict[str, Any], payload: Any) -> dict[str, Any]:
    try:
        jsonschema.validate(payload, schema)
        return {"ok": True}
    except jsonschema.ValidationError as exc:
        return {"ok": False, "error": exc.message}
