# src/taskflow/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps AI providers swappable (OpenRouter, offline demo, test fakes)
and lets tests drive the focus timer by hand.
"""

from typing import Protocol

from ..agent.operations import AgentReply
from ..tasks.task_models import ExtractedTask


class TaskExtractor(Protocol):
    """Image -> ordered list of tasks found in it."""
    async def extract_tasks(self, image: bytes, mime_type: str = "image/jpeg") -> list[ExtractedTask]: ...


class StepGenerator(Protocol):
    """(title, subject) -> 3-5 short instructions."""
    async def generate_steps(self, title: str, subject: str) -> list[str]: ...


class CommandAgent(Protocol):
    """
    User text + rendered task list -> free-text reply and zero or more tool calls.

    task_context is the numbered list produced by task_api.render_task_context.
    """

    async def run_command(self, user_text: str, task_context: str) -> AgentReply: ...


class AIClient(TaskExtractor, StepGenerator, CommandAgent, Protocol):
    """All three capabilities from one provider."""


class Ticker(Protocol):
    """
    Per-second tick source owned by a focus session.

    start() while already running must not create a second timer.
    """

    @property
    def running(self) -> bool: ...
    def start(self) -> None: ...
    def stop(self) -> None: ...
