# tests/test_offline.py

from __future__ import annotations

import pytest

from taskflow.agent.interpreter import CommandInterpreter
from taskflow.agent.operations import DELETE_TASK, REORDER_TASK, UPDATE_TASK_TIME
from taskflow.llm.offline import OfflineAIClient
from taskflow.tasks.task_api import FALLBACK_STEPS
from taskflow.tasks.task_store import TaskStore


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("text", "name", "args"),
    [
        ("move math to position 1", REORDER_TASK, {"taskKeyword": "math", "newPosition": 1}),
        ("Move lab report to #3", REORDER_TASK, {"taskKeyword": "lab report", "newPosition": 3}),
        ("set essay to 15 min", UPDATE_TASK_TIME, {"taskKeyword": "essay", "newMinutes": 15}),
        ("change math 40 minutes", UPDATE_TASK_TIME, {"taskKeyword": "math", "newMinutes": 40}),
        ("delete art", DELETE_TASK, {"taskKeyword": "art"}),
    ],
)
async def test_offline_agent_recognises_phrasings(text: str, name: str, args: dict) -> None:
    reply = await OfflineAIClient().run_command(text, "")

    assert [c.name for c in reply.tool_calls] == [name]
    assert reply.tool_calls[0].args == args


@pytest.mark.asyncio
async def test_offline_agent_other_text_is_a_notice() -> None:
    reply = await OfflineAIClient().run_command("how are you?", "")
    assert reply.tool_calls == []
    assert "Offline" in reply.response_text


@pytest.mark.asyncio
async def test_offline_steps_and_extraction() -> None:
    ai = OfflineAIClient()
    assert await ai.generate_steps("Essay", "Language") == list(FALLBACK_STEPS)
    assert await ai.extract_tasks(b"x") == []


@pytest.mark.asyncio
async def test_offline_agent_drives_interpreter(store: TaskStore) -> None:
    result = await CommandInterpreter(store, OfflineAIClient()).interpret("move math to position 1")

    assert result.response_text == "Moved Worksheet p.42 to position #1."
    assert store.list_tasks()[0].title == "Worksheet p.42"
