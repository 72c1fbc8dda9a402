# tests/test_llm_client.py

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any

import httpx
import openai
import pytest

from taskflow.agent.operations import REORDER_TASK
from taskflow.errors import MalformedResponse, ServiceUnavailable
from taskflow.llm import client as llm_client
from taskflow.llm.client import (
    OpenRouterAIClient,
    clean_json_text,
    friendly_llm_error_message,
    parse_agent_message,
    parse_extracted_tasks,
    parse_steps,
)

_REQUEST = httpx.Request("POST", "https://example.invalid/api/v1/chat/completions")


def _status_error(cls: type[openai.APIStatusError], code: int) -> openai.APIStatusError:
    return cls("error", response=httpx.Response(code, request=_REQUEST), body=None)


def _completion(content: str | None = None, tool_calls: list[Any] | None = None) -> SimpleNamespace:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _tool_call(name: str, args: dict[str, Any]) -> SimpleNamespace:
    return SimpleNamespace(function=SimpleNamespace(name=name, arguments=json.dumps(args)))


class FakeCompletions:
    """Stands in for AsyncOpenAI().chat.completions; outcomes are keyed by model."""

    def __init__(self, outcomes: dict[str, Any]) -> None:
        self.outcomes = outcomes
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        outcome = self.outcomes[kwargs["model"]]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _client(settings, outcomes: dict[str, Any]) -> tuple[OpenRouterAIClient, FakeCompletions]:
    completions = FakeCompletions(outcomes)
    sdk = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenRouterAIClient(settings, client=sdk), completions


# ---- parsing helpers ----


def test_clean_json_text_strips_fences_and_chatter() -> None:
    assert clean_json_text('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert clean_json_text('Sure! Here you go: ["x", "y"] Enjoy.') == '["x", "y"]'
    assert clean_json_text("") == ""


def test_parse_extracted_tasks_accepts_wrapped_and_bare_arrays() -> None:
    item = {"subject": "Math", "title": "Fractions", "estimatedMinutes": 20, "steps": ["a", "b"]}

    wrapped = parse_extracted_tasks(json.dumps({"tasks": [item]}))
    bare = parse_extracted_tasks(json.dumps([item]))

    assert wrapped == bare
    assert wrapped[0].title == "Fractions"
    assert wrapped[0].estimated_minutes == 20
    assert wrapped[0].steps == ("a", "b")


@pytest.mark.parametrize(
    "payload",
    [
        {"items": []},
        [{"subject": "Math", "title": "x", "estimatedMinutes": "20", "steps": []}],
        [{"subject": "Math", "title": "x", "estimatedMinutes": 20, "steps": "one"}],
        ["not an object"],
    ],
)
def test_parse_extracted_tasks_wrong_shape_is_empty(payload: Any) -> None:
    assert parse_extracted_tasks(json.dumps(payload)) == []


def test_parse_extracted_tasks_garbage_raises() -> None:
    with pytest.raises(ServiceUnavailable):
        parse_extracted_tasks("definitely not json")


def test_parse_steps() -> None:
    assert parse_steps('{"steps": ["Read", " Write "]}') == ["Read", "Write"]
    assert parse_steps('["a"]') == ["a"]
    assert parse_steps('{"steps": [1, 2]}') == []


def test_parse_agent_message() -> None:
    message = SimpleNamespace(
        content="  On it! ",
        tool_calls=[_tool_call(REORDER_TASK, {"taskKeyword": "math", "newPosition": 1})],
    )
    reply = parse_agent_message(message)

    assert reply.response_text == "On it!"
    assert reply.tool_calls[0].name == REORDER_TASK
    assert json.loads(reply.tool_calls[0].args) == {"taskKeyword": "math", "newPosition": 1}


def test_parse_agent_message_rejects_nameless_tool_call() -> None:
    message = SimpleNamespace(content=None, tool_calls=[SimpleNamespace(function=SimpleNamespace(name=""))])
    with pytest.raises(MalformedResponse):
        parse_agent_message(message)


def test_friendly_llm_error_message() -> None:
    msg = friendly_llm_error_message(RuntimeError("LLM API key is not set. Set it."))
    assert "missing API key" in msg
    assert friendly_llm_error_message(RuntimeError("")) == "LLM error."


# ---- client behavior ----


def test_client_requires_configuration_without_injected_sdk(settings) -> None:
    settings.openrouter_api_key = None
    with pytest.raises(RuntimeError, match="API key"):
        OpenRouterAIClient(settings)


def test_client_requires_models(settings) -> None:
    settings.llm_models = []
    with pytest.raises(RuntimeError, match="model list is empty"):
        OpenRouterAIClient(settings, client=SimpleNamespace())


@pytest.mark.asyncio
async def test_run_command_sends_tools_and_parses_reply(settings) -> None:
    completion = _completion(None, [_tool_call(REORDER_TASK, {"taskKeyword": "math", "newPosition": 1})])
    ai, completions = _client(settings, {"model-a": completion})

    reply = await ai.run_command("move math to position 1", "1. [Math] Worksheet (20 min)")

    assert reply.tool_calls[0].name == REORDER_TASK
    call = completions.calls[0]
    assert call["model"] == "model-a"
    assert [t["function"]["name"] for t in call["tools"]] == ["updateTaskTime", "reorderTask", "deleteTask"]
    assert "1. [Math] Worksheet (20 min)" in call["messages"][0]["content"]
    assert call["messages"][1] == {"role": "user", "content": "move math to position 1"}


@pytest.mark.asyncio
async def test_falls_back_to_next_model_on_rate_limit(settings) -> None:
    ai, completions = _client(
        settings,
        {
            "model-a": _status_error(openai.RateLimitError, 429),
            "model-b": _completion('{"steps": ["one", "two"]}'),
        },
    )

    assert await ai.generate_steps("Essay", "Language") == ["one", "two"]
    assert [c["model"] for c in completions.calls] == ["model-a", "model-b"]


@pytest.mark.asyncio
async def test_not_found_model_is_parked(settings) -> None:
    ai, completions = _client(
        settings,
        {
            "model-a": _status_error(openai.NotFoundError, 404),
            "model-b": _completion('{"steps": ["x"]}'),
        },
    )

    await ai.generate_steps("Essay", "Language")
    await ai.generate_steps("Essay", "Language")

    assert [c["model"] for c in completions.calls] == ["model-a", "model-b", "model-b"]
    assert "model-a" in llm_client._BAD_MODELS


@pytest.mark.asyncio
async def test_auth_error_fails_fast(settings) -> None:
    ai, completions = _client(
        settings,
        {
            "model-a": _status_error(openai.AuthenticationError, 401),
            "model-b": _completion("{}"),
        },
    )

    with pytest.raises(ServiceUnavailable, match="authentication"):
        await ai.run_command("hi", "")
    assert len(completions.calls) == 1


@pytest.mark.asyncio
async def test_all_models_failing_raises_service_unavailable(settings) -> None:
    err = openai.APIConnectionError(request=_REQUEST)
    ai, _ = _client(settings, {"model-a": err, "model-b": err})

    with pytest.raises(ServiceUnavailable, match="network"):
        await ai.run_command("hi", "")


@pytest.mark.asyncio
async def test_empty_choices_try_next_model(settings) -> None:
    ai, completions = _client(
        settings,
        {
            "model-a": SimpleNamespace(choices=[]),
            "model-b": _completion("Nice work!"),
        },
    )

    reply = await ai.run_command("thanks", "")
    assert reply.response_text == "Nice work!"
    assert reply.tool_calls == []
    assert len(completions.calls) == 2


@pytest.mark.asyncio
async def test_extract_tasks_sends_image_data_url(settings) -> None:
    payload = {"tasks": [{"subject": "Science", "title": "Lab", "estimatedMinutes": 30, "steps": ["Mix"]}]}
    settings.vision_models = ["vision-x"]
    ai, completions = _client(settings, {"vision-x": _completion(json.dumps(payload))})

    tasks = await ai.extract_tasks(b"\x89PNG", "image/png")

    assert [t.title for t in tasks] == ["Lab"]
    content = completions.calls[0]["messages"][0]["content"]
    assert content[0]["image_url"]["url"].startswith("data:image/png;base64,")
    assert completions.calls[0]["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_extract_tasks_empty_content_is_no_tasks(settings) -> None:
    ai, _ = _client(settings, {"model-a": _completion("")})
    assert await ai.extract_tasks(b"x") == []
