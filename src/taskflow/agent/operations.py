# src/taskflow/agent/operations.py

"""
Structured mutation operations emitted by the command agent.

The agent speaks in tool calls (name + args). This module owns:
- the operation types (UpdateTime / Reorder / Delete),
- the tool declarations sent to the model,
- strict parsing of tool calls into operations.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from ..errors import MalformedResponse

UPDATE_TASK_TIME = "updateTaskTime"
REORDER_TASK = "reorderTask"
DELETE_TASK = "deleteTask"


@dataclass(slots=True, frozen=True)
class UpdateTime:
    target_keyword: str
    new_minutes: int


@dataclass(slots=True, frozen=True)
class Reorder:
    target_keyword: str
    new_position: int  # 1-based


@dataclass(slots=True, frozen=True)
class Delete:
    target_keyword: str


MutationOperation = UpdateTime | Reorder | Delete


@dataclass(slots=True, frozen=True)
class ToolCall:
    name: str
    args: Any = None


@dataclass(slots=True, frozen=True)
class AgentReply:
    response_text: str
    tool_calls: list[ToolCall] = field(default_factory=list)


def _function_tool(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


TOOL_DECLARATIONS: list[dict[str, Any]] = [
    _function_tool(
        UPDATE_TASK_TIME,
        "Update the estimated minutes for a specific task identified by a keyword.",
        {
            "taskKeyword": {
                "type": "string",
                "description": "A word or phrase to identify the task (e.g., 'Math', 'Essay').",
            },
            "newMinutes": {"type": "integer", "description": "The new duration in minutes."},
        },
        ["taskKeyword", "newMinutes"],
    ),
    _function_tool(
        REORDER_TASK,
        "Move a task to a specific position (1-based index) in the list.",
        {
            "taskKeyword": {"type": "string", "description": "A word or phrase to identify the task."},
            "newPosition": {
                "type": "integer",
                "description": "The new position number (1 for top, 2 for second, etc.).",
            },
        },
        ["taskKeyword", "newPosition"],
    ),
    _function_tool(
        DELETE_TASK,
        "Remove a task from the list.",
        {"taskKeyword": {"type": "string", "description": "A word or phrase to identify the task."}},
        ["taskKeyword"],
    ),
]


def _args_dict(call: ToolCall) -> dict[str, Any]:
    args = call.args
    if args is None:
        return {}
    if isinstance(args, str):
        try:
            args = json.loads(args) if args.strip() else {}
        except ValueError as e:
            raise MalformedResponse(f"Tool call {call.name!r} has non-JSON args") from e
    if not isinstance(args, dict):
        raise MalformedResponse(f"Tool call {call.name!r} args must be an object")
    return args


def _keyword(call: ToolCall, args: dict[str, Any]) -> str:
    kw = args.get("taskKeyword")
    if not isinstance(kw, str):
        raise MalformedResponse(f"Tool call {call.name!r} is missing taskKeyword")
    return kw


def _integer(call: ToolCall, args: dict[str, Any], key: str) -> int:
    raw = args.get(key)
    # bool is an int subclass; JSON models sometimes send 20.0 for 20.
    if isinstance(raw, bool):
        raise MalformedResponse(f"Tool call {call.name!r}: {key} must be an integer")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    raise MalformedResponse(f"Tool call {call.name!r}: {key} must be an integer")


def parse_tool_call(call: ToolCall) -> MutationOperation:
    args = _args_dict(call)

    if call.name == UPDATE_TASK_TIME:
        minutes = _integer(call, args, "newMinutes")
        if minutes <= 0:
            raise MalformedResponse(f"Tool call {call.name!r}: newMinutes must be positive")
        return UpdateTime(target_keyword=_keyword(call, args), new_minutes=minutes)

    if call.name == REORDER_TASK:
        return Reorder(target_keyword=_keyword(call, args), new_position=_integer(call, args, "newPosition"))

    if call.name == DELETE_TASK:
        return Delete(target_keyword=_keyword(call, args))

    raise MalformedResponse(f"Unknown tool {call.name!r}")


def parse_tool_calls(calls: Iterable[ToolCall]) -> list[MutationOperation]:
    """Parse every call; one bad call rejects the whole batch."""
    return [parse_tool_call(c) for c in calls]
