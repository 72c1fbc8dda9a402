# src/taskflow/core/state.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any, Literal

from ..agent.interpreter import CommandInterpreter
from ..focus.session import FocusSession
from ..tasks.task_store import TaskStore
from .ports import AIClient

logger = logging.getLogger(__name__)

AppMode = Literal["planning", "focus"]


@dataclass(slots=True)
class ChatLine:
    sender: Literal["user", "agent"]
    text: str


@dataclass
class AppState:
    """
    Everything the host needs, wired once in cli.bootstrap.

    The task list lives only in `store`; interpreter and session hold
    references to that same store.
    """

    settings: Any
    ai: AIClient
    store: TaskStore
    interpreter: CommandInterpreter
    session: FocusSession

    mode: AppMode = "planning"
    chat: list[ChatLine] = field(default_factory=list)
    background: set[asyncio.Task[Any]] = field(default_factory=set)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        """Run a coroutine in the background, keeping a strong reference until it finishes."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self.background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task[Any]) -> None:
        self.background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed", task.get_name(), exc_info=exc)
