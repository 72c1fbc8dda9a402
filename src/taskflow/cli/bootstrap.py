# src/taskflow/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the local (gitignored) data directory exists,
- wires concrete implementations into AppState (AI client, store, interpreter, session).
"""

from __future__ import annotations

import logging

from ..agent.interpreter import CommandInterpreter
from ..config import get_settings
from ..core.ports import AIClient
from ..core.state import AppState
from ..focus.session import FocusSession
from ..llm.client import OpenRouterAIClient
from ..llm.offline import OfflineAIClient
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def build_ai_client(settings) -> AIClient:
    if getattr(settings, "offline", False):
        logger.info("Offline mode forced by settings.")
        return OfflineAIClient()
    try:
        return OpenRouterAIClient(settings)
    except RuntimeError as e:
        # Fallback for demos / local runs without external services.
        logger.info("Using offline AI client: %s", e)
        return OfflineAIClient()


def create_initial_state(*, settings=None, ai: AIClient | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    settings.data_dir.mkdir(parents=True, exist_ok=True)

    if ai is None:
        ai = build_ai_client(settings)

    store = TaskStore()
    session = FocusSession(
        store,
        step_generator=ai,
        tick_interval_seconds=float(getattr(settings, "tick_interval_seconds", 1.0)),
    )
    return AppState(
        settings=settings,
        ai=ai,
        store=store,
        interpreter=CommandInterpreter(store, ai),
        session=session,
    )
