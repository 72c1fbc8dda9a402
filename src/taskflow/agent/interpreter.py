# src/taskflow/agent/interpreter.py

"""
Command interpreter.

The external agent decides *what* to change; this module decides whether it
is safe and applies it:
- resolves each operation's keyword to exactly one task (first substring match),
- applies operations sequentially to one evolving snapshot,
- commits the snapshot to the store only if something actually changed,
- never crashes on a bad agent response (apology text, unchanged list).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..core.ports import CommandAgent
from ..errors import InvariantViolation, ServiceUnavailable, UnresolvedTarget
from ..tasks.task_api import render_task_context
from ..tasks.task_models import Task
from ..tasks.task_store import TaskStore
from .operations import Delete, MutationOperation, Reorder, UpdateTime, parse_tool_calls

logger = logging.getLogger(__name__)

APOLOGY_TEXT = "Sorry, I had trouble connecting to my brain! Try again?"
IDLE_REPLY_TEXT = "You've got this! Tell me if you want to change anything."


@dataclass(slots=True, frozen=True)
class OperationOutcome:
    operation: MutationOperation
    applied: bool
    message: str
    task_id: str | None = None


@dataclass(slots=True, frozen=True)
class InterpretationResult:
    response_text: str
    tasks: list[Task]
    changed: bool = False
    operations: list[MutationOperation] = field(default_factory=list)
    outcomes: list[OperationOutcome] = field(default_factory=list)


def unresolved_message(keyword: str) -> str:
    return f'I couldn\'t find a task matching "{keyword}".'


def resolve_target(tasks: Iterable[Task], keyword: str) -> Task:
    """
    First task (list order) whose title or subject contains keyword, case-insensitive.

    An empty or whitespace-only keyword matches nothing.
    """
    needle = (keyword or "").lower()
    if not needle.strip():
        raise UnresolvedTarget(keyword)
    for task in tasks:
        if needle in task.title.lower() or needle in task.subject.value.lower():
            return task
    raise UnresolvedTarget(keyword)


def _apply_one(snapshot: TaskStore, op: MutationOperation) -> OperationOutcome:
    task = resolve_target(snapshot.list_tasks(), op.target_keyword)

    if isinstance(op, UpdateTime):
        snapshot.update_fields(task.id, estimated_minutes=op.new_minutes)
        return OperationOutcome(op, True, f"Updated {task.title} to {op.new_minutes} minutes.", task.id)

    if isinstance(op, Delete):
        snapshot.remove(task.id)
        return OperationOutcome(op, True, f"Removed {task.title} from your list.", task.id)

    if isinstance(op, Reorder):
        index = snapshot.move_to(task.id, op.new_position - 1)
        if index is None:
            raise InvariantViolation(f"Resolved task {task.id!r} is missing from the snapshot")
        return OperationOutcome(op, True, f"Moved {task.title} to position #{index + 1}.", task.id)

    raise TypeError(f"Unsupported operation {op!r}")


def apply_operations(
    tasks: Sequence[Task],
    operations: Sequence[MutationOperation],
    *,
    reply_text: str = "",
) -> InterpretationResult:
    """
    Apply a batch to a copy of tasks. The input list is never modified.

    Response text:
    - no operations        -> the agent's own reply
    - every operation failed -> the last failure message, tasks unchanged
    - otherwise            -> all outcome messages, in order
    """
    original = list(tasks)
    ops = list(operations)

    if not ops:
        return InterpretationResult(
            response_text=reply_text.strip() or IDLE_REPLY_TEXT,
            tasks=original,
        )

    snapshot = TaskStore(original)
    outcomes: list[OperationOutcome] = []

    for op in ops:
        try:
            outcome = _apply_one(snapshot, op)
            logger.debug("Applied %s -> task_id=%s", type(op).__name__, outcome.task_id)
        except UnresolvedTarget as e:
            logger.info("Unresolved keyword %r for %s", e.keyword, type(op).__name__)
            outcome = OperationOutcome(op, False, unresolved_message(e.keyword))
        outcomes.append(outcome)

    if not any(o.applied for o in outcomes):
        return InterpretationResult(
            response_text=outcomes[-1].message,
            tasks=original,
            operations=ops,
            outcomes=outcomes,
        )

    return InterpretationResult(
        response_text=" ".join(o.message for o in outcomes),
        tasks=snapshot.list_tasks(),
        changed=True,
        operations=ops,
        outcomes=outcomes,
    )


class CommandInterpreter:
    """Sends user text to the command agent and applies its tool calls to the store."""

    def __init__(self, store: TaskStore, agent: CommandAgent) -> None:
        self._store = store
        self._agent = agent

    async def interpret(self, user_text: str) -> InterpretationResult:
        context = render_task_context(self._store.list_tasks())

        try:
            reply = await self._agent.run_command(user_text, context)
            operations = parse_tool_calls(reply.tool_calls)
        except ServiceUnavailable as e:
            logger.warning("Command agent unavailable (%s); plan left unchanged.", e)
            return InterpretationResult(response_text=APOLOGY_TEXT, tasks=self._store.list_tasks())
        except Exception:
            logger.exception("Command agent crashed; plan left unchanged.")
            return InterpretationResult(response_text=APOLOGY_TEXT, tasks=self._store.list_tasks())

        # Resolve against the list as it is now, not as it was when the request left:
        # other events (a completed task, a quick add) may have landed meanwhile.
        result = apply_operations(self._store.list_tasks(), operations, reply_text=reply.response_text)
        if result.changed:
            self._store.replace_all(result.tasks)
            logger.info("Command batch committed ops=%d", len(operations))
        return result
