# src/taskflow/cli/commands.py

from __future__ import annotations

import inspect
import logging
import mimetypes
from collections.abc import Awaitable, Callable
from pathlib import Path

from ..core.state import AppState
from ..focus.session import SessionPhase
from ..tasks.task_api import fill_missing_steps, import_from_image, plan_summary, quick_add
from ..tasks.task_models import TaskStatus

CommandResult = str | Awaitable[str]
CommandHandler = Callable[[AppState, list[str]], CommandResult]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, /focus, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        result = handler(state, args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        lines.append("Anything else is sent to your study companion (e.g. 'move math to position 1').")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_clock(seconds: int) -> str:
    return f"{seconds // 60}:{seconds % 60:02d}"


def render_plan(state: AppState) -> str:
    tasks = state.store.list_tasks()
    if not tasks:
        return "Your plan is empty. Use /add <title> or /scan <image>."
    lines = [plan_summary(tasks)]
    marks = {TaskStatus.PENDING: " ", TaskStatus.ACTIVE: ">", TaskStatus.COMPLETED: "x"}
    for i, t in enumerate(tasks, start=1):
        steps = f", {len(t.steps)} steps" if t.steps else ""
        lines.append(f"{i}. [{marks[t.status]}] [{t.subject.value}] {t.title} ({t.estimated_minutes} min{steps})")
    return "\n".join(lines)


def render_focus(state: AppState) -> str:
    session = state.session
    task = session.active_task
    if session.phase == SessionPhase.IDLE or task is None:
        return "All done! You've completed your flow for today. Use /stop to go back to the plan."

    label = {
        SessionPhase.RUNNING: "running",
        SessionPhase.PAUSED: "paused",
        SessionPhase.EXPIRED: "time's up",
    }[session.phase]
    nxt = session.next_task
    lines = [
        f"[{task.subject.value}] {task.title}",
        f"  {_fmt_clock(session.remaining_seconds)} remaining ({label}, {session.urgency})",
    ]
    if task.steps:
        for i, step in enumerate(task.steps, start=1):
            lines.append(f"  {i}. [{'x' if step.is_completed else ' '}] {step.text}")
    else:
        lines.append("  (generating steps...)")
    lines.append(f"  Next: {nxt.title if nxt else 'Finish'}")
    return "\n".join(lines)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    models = ", ".join(list(getattr(state.settings, "llm_models", []) or []))
    return (
        "Status:\n"
        f"  Mode: {state.mode} (session {state.session.phase})\n"
        f"  AI client: {type(state.ai).__name__}\n"
        f"  Models (priority -> fallback): {models}\n"
        f"  Plan: {plan_summary(state.store.list_tasks())}"
    )


def cmd_list(state: AppState, args: list[str]) -> str:
    return render_plan(state)


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title>  -> quick add (Other, default minutes); steps are generated in the background
    """
    title = " ".join(args).strip()
    if not title:
        return "Usage: /add <task title>"
    minutes = int(getattr(state.settings, "quick_add_minutes", 30))
    task = quick_add(state.store, title, minutes=minutes)
    state.spawn(fill_missing_steps(state.store, state.ai, task.id), name=f"fill-steps-{task.id}")
    return f"Added {task.title} ({task.estimated_minutes} min)."


async def cmd_scan(state: AppState, args: list[str]) -> str:
    """
    /scan <image path>  -> extract tasks from a photo of the homework
    """
    if not args:
        return "Usage: /scan <path to image>"
    path = Path(" ".join(args)).expanduser()
    try:
        image = path.read_bytes()
    except OSError as e:
        return f"Cannot read {path}: {e.strerror or e}"
    mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    result = await import_from_image(state.store, state.ai, image, mime_type=mime_type)
    return result.message


def cmd_remove(state: AppState, args: list[str]) -> str:
    """
    /remove <n>  -> delete the task at position n
    """
    tasks = state.store.list_tasks()
    if not args or not args[0].isdigit() or not 1 <= int(args[0]) <= len(tasks):
        return f"Usage: /remove <1-{max(1, len(tasks))}>"
    task = tasks[int(args[0]) - 1]
    state.store.remove(task.id)
    state.session.refresh()
    return f"Removed {task.title} from your list."


def cmd_focus(state: AppState, args: list[str]) -> str:
    if not state.store.pending_tasks():
        return "Nothing to focus on. Add a task first."
    state.mode = "focus"
    state.session.enter()
    return render_focus(state)


def cmd_pause(state: AppState, args: list[str]) -> str:
    if state.mode != "focus":
        return "Not in focus mode. Use /focus to start."
    phase = state.session.toggle()
    return f"Timer {phase}."


def cmd_done(state: AppState, args: list[str]) -> str:
    if state.mode != "focus":
        return "Not in focus mode. Use /focus to start."
    state.session.complete_active()
    return render_focus(state)


def cmd_step(state: AppState, args: list[str]) -> str:
    """
    /step <n>  -> toggle step n of the active task
    """
    task = state.session.active_task
    if state.mode != "focus" or task is None:
        return "No active task."
    if not args or not args[0].isdigit() or not 1 <= int(args[0]) <= len(task.steps):
        return f"Usage: /step <1-{max(1, len(task.steps))}>"
    state.session.toggle_step(task.steps[int(args[0]) - 1].id)
    return render_focus(state)


def cmd_timer(state: AppState, args: list[str]) -> str:
    if state.mode != "focus":
        return render_plan(state)
    return render_focus(state)


def cmd_stop(state: AppState, args: list[str]) -> str:
    # Leave focus mode first so the idle callback is not reported as "all done".
    state.mode = "planning"
    state.session.exit()
    return render_plan(state)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show mode, AI client and plan totals.")
registry.register("list", cmd_list, help_text="Show the plan.", aliases=["ls", "plan"])
registry.register("add", cmd_add, help_text="Quick-add a task: /add <title>.")
registry.register("scan", cmd_scan, help_text="Import tasks from a photo: /scan <image path>.")
registry.register("remove", cmd_remove, help_text="Delete a task by position: /remove <n>.", aliases=["rm"])
registry.register("focus", cmd_focus, help_text="Start the flow (focus mode).", aliases=["start"])
registry.register("pause", cmd_pause, help_text="Pause/resume the countdown.", aliases=["p", "resume"])
registry.register("done", cmd_done, help_text="Mark the active task done and move on.")
registry.register("step", cmd_step, help_text="Toggle a step of the active task: /step <n>.")
registry.register("timer", cmd_timer, help_text="Show the focus view (or the plan).", aliases=["t"])
registry.register("stop", cmd_stop, help_text="Leave focus mode and go back to the plan.")
