# src/taskflow/llm/offline.py

from __future__ import annotations

import logging
import re

from ..agent.operations import DELETE_TASK, REORDER_TASK, UPDATE_TASK_TIME, AgentReply, ToolCall
from ..tasks.task_api import FALLBACK_STEPS
from ..tasks.task_models import ExtractedTask

logger = logging.getLogger(__name__)

_DELETE_RE = re.compile(r"^\s*(?:delete|remove|drop)\s+(?P<kw>.+?)\s*$", re.IGNORECASE)
_MOVE_RE = re.compile(
    r"^\s*move\s+(?P<kw>.+?)\s+to\s+(?:position\s+|#)?(?P<pos>\d+)\s*$",
    re.IGNORECASE,
)
_TIME_RE = re.compile(
    r"^\s*(?:set|change|make)\s+(?P<kw>.+?)\s+(?:to\s+)?(?P<min>\d+)\s*(?:m|min|mins|minutes?)\s*$",
    re.IGNORECASE,
)


class OfflineAIClient:
    """
    Offline deterministic AI client used for demos when no external API is configured.

    Behavior:
    - Image extraction -> no tasks (there is no vision model offline)
    - Step generation  -> the fixed fallback steps
    - Command agent    -> recognises three phrasings, otherwise a friendly notice:
        "delete <kw>" / "move <kw> to position <n>" / "set <kw> to <n> min"
    """

    async def extract_tasks(self, image: bytes, mime_type: str = "image/jpeg") -> list[ExtractedTask]:
        logger.info("Offline mode: image extraction unavailable (bytes=%d).", len(image))
        return []

    async def generate_steps(self, title: str, subject: str) -> list[str]:
        return list(FALLBACK_STEPS)

    async def run_command(self, user_text: str, task_context: str) -> AgentReply:
        text = (user_text or "").strip()

        m = _MOVE_RE.match(text)
        if m:
            args = {"taskKeyword": m.group("kw"), "newPosition": int(m.group("pos"))}
            return AgentReply(response_text="", tool_calls=[ToolCall(REORDER_TASK, args)])

        m = _TIME_RE.match(text)
        if m:
            args = {"taskKeyword": m.group("kw"), "newMinutes": int(m.group("min"))}
            return AgentReply(response_text="", tool_calls=[ToolCall(UPDATE_TASK_TIME, args)])

        m = _DELETE_RE.match(text)
        if m:
            return AgentReply(response_text="", tool_calls=[ToolCall(DELETE_TASK, {"taskKeyword": m.group("kw")})])

        return AgentReply(
            response_text=(
                "Offline demo mode: no external AI is configured.\n"
                "Set TASKFLOW_OPENROUTER_API_KEY (and TASKFLOW_LLM_MODELS) to enable real responses.\n"
                'Try: "move math to position 1", "set essay to 15 min", "delete art".'
            )
        )
