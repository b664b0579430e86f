from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from .tools import ToolResult, Toolset


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class PlannerTurn:
    text: str
    tool_calls: list[ToolCall]
    usage: dict[str, int] = field(default_factory=dict)
    stop_reason: str | None = None


class Planner(Protocol):
    def next_turn(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> PlannerTurn: ...


@dataclass(frozen=True)
class StepRecord:
    step: int
    call: ToolCall
    result: ToolResult


@dataclass
class AgentRun:
    text: str = ""
    steps: list[StepRecord] = field(default_factory=list)
    usage: dict[str, int] = field(default_factory=dict)
    step_count: int = 0
    hit_step_limit: bool = False

    @property
    def tool_call_count(self) -> int:
        return len(self.steps)


StepCallback = Callable[[StepRecord], None]


def step_budget(expected_items: int, floor: int, per_item: int, ceiling: int) -> int:
    """Steps granted to the planner: scales with the discovered item count, capped by ceiling."""
    return max(1, min(ceiling, max(floor, expected_items * per_item)))


def run_agent(
    planner: Planner,
    system: str,
    task: str,
    toolset: Toolset,
    max_steps: int,
    on_step: StepCallback | None = None,
    logger: logging.Logger | None = None,
) -> AgentRun:
    logger = logger or logging.getLogger("devtrail.agent")
    run = AgentRun()
    messages: list[dict[str, Any]] = [{"role": "user", "content": task}]
    tool_specs = toolset.specs()

    while run.step_count < max_steps:
        turn = planner.next_turn(system, messages, tool_specs)
        _add_usage(run.usage, turn.usage)
        if turn.text:
            run.text = turn.text
        if not turn.tool_calls:
            return run

        run.step_count += 1
        messages.append(_assistant_message(turn))
        tool_results: list[dict[str, Any]] = []
        for call in turn.tool_calls:
            result = toolset.invoke(call.name, call.arguments)
            record = StepRecord(step=run.step_count, call=call, result=result)
            run.steps.append(record)
            if on_step:
                on_step(record)
            tool_results.append(
                {
                    "type": "tool_result",
                    "tool_use_id": call.id,
                    "content": result.to_content(),
                    "is_error": not result.success,
                }
            )
        messages.append({"role": "user", "content": tool_results})

    run.hit_step_limit = True
    logger.warning("agent_step_limit_reached max_steps=%s", max_steps)
    return run


def _assistant_message(turn: PlannerTurn) -> dict[str, Any]:
    content: list[dict[str, Any]] = []
    if turn.text:
        content.append({"type": "text", "text": turn.text})
    for call in turn.tool_calls:
        content.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments})
    return {"role": "assistant", "content": content}


def _add_usage(total: dict[str, int], usage: dict[str, int]) -> None:
    for key, value in (usage or {}).items():
        if isinstance(value, int):
            total[key] = total.get(key, 0) + value
