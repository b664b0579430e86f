from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

import jsonschema

from ..errors import ConfigurationError, ExternalAPIError, ParseError
from ..utils import json_dumps, log_event


@dataclass(frozen=True)
class ToolResult:
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def ok(cls, **data: Any) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, **data: Any) -> "ToolResult":
        return cls(success=False, data=data, error=error)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, **self.data}
        if self.error is not None:
            payload["error"] = self.error
        return payload

    def to_content(self) -> str:
        return json_dumps(self.to_dict())


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_type: type
    input_schema: dict[str, Any]
    run: Callable[[Any], ToolResult]

    def spec(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class Toolset:
    """Closed set of tools offered to the planner, looked up by name."""

    def __init__(self, tools: Iterable[Tool], logger: logging.Logger | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"duplicate tool {tool.name}")
            self._tools[tool.name] = tool
        self._logger = logger or logging.getLogger("devtrail.agent.tools")

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def specs(self) -> list[dict[str, Any]]:
        return [tool.spec() for tool in self._tools.values()]

    def invoke(self, name: str, arguments: dict[str, Any] | None) -> ToolResult:
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult.fail(f"Unknown tool {name}. Available: {', '.join(self._tools)}")
        args = dict(arguments or {})
        try:
            jsonschema.validate(args, tool.input_schema)
        except jsonschema.ValidationError as exc:
            return ToolResult.fail(f"Invalid arguments for {name}: {exc.message}")
        try:
            params = tool.input_type(**_known_fields(tool.input_type, args))
        except TypeError as exc:
            return ToolResult.fail(f"Invalid arguments for {name}: {exc}")
        try:
            return tool.run(params)
        except ConfigurationError:
            raise
        except (ExternalAPIError, ParseError) as exc:
            log_event(self._logger, logging.WARNING, "tool_failed", tool=name, error=str(exc))
            return ToolResult.fail(str(exc))
        except Exception as exc:  # noqa: BLE001
            log_event(self._logger, logging.ERROR, "tool_crashed", tool=name, error=str(exc))
            return ToolResult.fail(f"{type(exc).__name__}: {exc}")


def _known_fields(input_type: type, args: dict[str, Any]) -> dict[str, Any]:
    names = {item.name for item in dataclasses.fields(input_type)}
    return {key: value for key, value in args.items() if key in names}
