# src/taskflow/llm/client.py

from __future__ import annotations

import base64
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from ..agent.operations import TOOL_DECLARATIONS, AgentReply, ToolCall
from ..errors import MalformedResponse, ServiceUnavailable
from ..tasks.task_models import ExtractedTask
from .prompts import IMAGE_EXTRACTION_PROMPT, companion_system_prompt, step_generation_prompt

logger = logging.getLogger(__name__)

_BAD_MODELS: dict[str, float] = {}  # model -> retry_at (monotonic)
_BAD_MODEL_COOLDOWN_SECONDS = 3600.0


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    return exc.__class__.__name__ in {"UnauthorizedError"}


def _is_rate_limit_error(exc: Exception) -> bool:
    return isinstance(exc, openai.RateLimitError)


def _is_connection_error(exc: Exception) -> bool:
    # APITimeoutError is a subclass of APIConnectionError.
    if isinstance(exc, (openai.APIConnectionError, httpx.TimeoutException)):
        return True
    return exc.__class__.__name__ in {"Timeout", "ConnectTimeout", "ReadTimeout", "WriteTimeout"}


def _is_not_found_error(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError)


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if "LLM API key is not set" in msg:
        return "AI is not configured (missing API key). Set TASKFLOW_OPENROUTER_API_KEY in .env."
    if "LLM model list is empty" in msg:
        return "AI is not configured (no models). Set TASKFLOW_LLM_MODELS in .env."
    if "LLM base URL is not set" in msg:
        return "AI is not configured (missing base URL). Set TASKFLOW_OPENROUTER_BASE_URL in .env."
    return msg


def clean_json_text(raw: str) -> str:
    """Strip Markdown code fences and surrounding chatter around a JSON document."""
    text = (raw or "").strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text[:4].lower() == "json":
            text = text[4:]
        text = text.strip()
    if text and text[0] in "[{":
        return text
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text
    first = min(starts)
    last = max(text.rfind("}"), text.rfind("]"))
    if last > first:
        return text[first : last + 1]
    return text


def _load_json(raw: str) -> Any:
    try:
        return json.loads(clean_json_text(raw))
    except ValueError as e:
        raise ServiceUnavailable(f"Unparseable JSON from model: {raw[:200]!r}") from e


def _unwrap_list(payload: Any, key: str) -> list[Any] | None:
    """Accept either a bare JSON array or {"<key>": [...]}."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return payload[key]
    return None


def parse_extracted_tasks(raw: str) -> list[ExtractedTask]:
    """
    Parse extractor output.

    Raises ServiceUnavailable on unparseable JSON; any structural problem
    yields an empty list instead.
    """
    payload = _load_json(raw)
    items = _unwrap_list(payload, "tasks")
    if items is None:
        logger.warning("Extractor payload has wrong shape: %r", type(payload).__name__)
        return []

    out: list[ExtractedTask] = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning("Extractor item is not an object; dropping payload")
            return []
        title = item.get("title")
        subject = item.get("subject", "")
        minutes = item.get("estimatedMinutes")
        steps = item.get("steps", [])
        if isinstance(minutes, float) and minutes.is_integer():
            minutes = int(minutes)
        if (
            not isinstance(title, str)
            or not isinstance(subject, str)
            or not isinstance(minutes, int)
            or isinstance(minutes, bool)
            or not isinstance(steps, list)
            or not all(isinstance(s, str) for s in steps)
        ):
            logger.warning("Extractor item failed validation: %r", item)
            return []
        out.append(ExtractedTask(subject=subject, title=title, estimated_minutes=minutes, steps=tuple(steps)))
    return out


def parse_steps(raw: str) -> list[str]:
    payload = _load_json(raw)
    items = _unwrap_list(payload, "steps")
    if items is None or not all(isinstance(s, str) for s in items):
        logger.warning("Step payload has wrong shape: %r", payload)
        return []
    return [s.strip() for s in items if s.strip()]


def parse_agent_message(message: Any) -> AgentReply:
    """Turn an OpenAI chat message (content + tool_calls) into an AgentReply."""
    if message is None:
        raise MalformedResponse("Completion has no message")

    content = getattr(message, "content", None)
    if content is not None and not isinstance(content, str):
        raise MalformedResponse("Message content is not text")

    calls: list[ToolCall] = []
    for tc in getattr(message, "tool_calls", None) or []:
        fn = getattr(tc, "function", None)
        name = getattr(fn, "name", None)
        if not isinstance(name, str) or not name:
            raise MalformedResponse("Tool call without a function name")
        calls.append(ToolCall(name=name, args=getattr(fn, "arguments", None)))

    return AgentReply(response_text=(content or "").strip(), tool_calls=calls)


def _first_message(completion: Any) -> Any:
    try:
        return completion.choices[0].message
    except (AttributeError, IndexError, TypeError):
        return None


class OpenRouterAIClient:
    """
    OpenAI-compatible (OpenRouter) implementation of the three AI contracts.

    Behavior:
    - Tries models in the order from settings (TASKFLOW_LLM_MODELS).
    - 404 (model not available) -> park the model for an hour, try next.
    - Rate limit / network / other errors -> try next.
    - Auth issues -> fail fast.
    - Nothing left -> ServiceUnavailable.

    IMPORTANT:
    - SDK retries are disabled to allow quick fallback across models.
    """

    def __init__(self, settings: Any, *, client: Any = None) -> None:
        api_key = getattr(settings, "openrouter_api_key", None)
        base_url = str(getattr(settings, "openrouter_base_url", "") or "")

        if client is None:
            if not api_key or not str(api_key).strip():
                raise RuntimeError("LLM API key is not set. Set TASKFLOW_OPENROUTER_API_KEY in your .env.")
            if not base_url.strip():
                raise RuntimeError("LLM base URL is not set. Set TASKFLOW_OPENROUTER_BASE_URL in your .env.")

            connect_s = float(getattr(settings, "llm_connect_timeout_seconds", 5.0))
            read_s = float(getattr(settings, "llm_read_timeout_seconds", 45.0))
            client = AsyncOpenAI(
                base_url=base_url,
                api_key=str(api_key),
                timeout=httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s),
                max_retries=0,
            )

        self._client = client
        self._models: list[str] = [m.strip() for m in getattr(settings, "llm_models", []) or [] if m.strip()]
        vision = [m.strip() for m in getattr(settings, "vision_models", []) or [] if m.strip()]
        self._vision_models: list[str] = vision or list(self._models)
        self._headers: dict[str, str] = dict(getattr(settings, "extra_headers", {}) or {})

        if not self._models:
            raise RuntimeError("LLM model list is empty. Set TASKFLOW_LLM_MODELS in your .env.")

    async def _complete(
        self,
        models: list[str],
        purpose: str,
        request: Callable[[str], Awaitable[Any]],
    ) -> Any:
        last_error: Exception | None = None
        now = time.monotonic()

        for model in models:
            retry_at = _BAD_MODELS.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.info("LLM[%s]: trying model=%s", purpose, model)
            t0 = time.monotonic()
            try:
                completion = await request(model)
            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise ServiceUnavailable(
                        "LLM authentication failed. Check your API key (TASKFLOW_OPENROUTER_API_KEY)."
                    ) from e

                if _is_not_found_error(e):
                    _BAD_MODELS[model] = time.monotonic() + _BAD_MODEL_COOLDOWN_SECONDS
                    logger.info("LLM[%s]: model not available (404): %s", purpose, model)
                elif _is_rate_limit_error(e):
                    logger.info("LLM[%s]: rate-limited on model=%s, trying next", purpose, model)
                elif _is_connection_error(e):
                    logger.info("LLM[%s]: network/timeout error on model=%s, trying next", purpose, model)
                else:
                    logger.info("LLM[%s]: error on model=%s (%s), trying next", purpose, model, e.__class__.__name__)
                continue

            if _first_message(completion) is None:
                last_error = MalformedResponse(f"Model returned no choices: {model}")
                logger.info("LLM[%s]: empty completion from model=%s, trying next", purpose, model)
                continue

            logger.debug("LLM[%s]: completed with model=%s (%.2fs)", purpose, model, time.monotonic() - t0)
            return completion

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise ServiceUnavailable("LLM is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise ServiceUnavailable("LLM network/timeout error. Try again later or change models.") from last_error
            raise ServiceUnavailable("All LLM models failed.") from last_error
        raise ServiceUnavailable("All LLM models failed.")

    async def extract_tasks(self, image: bytes, mime_type: str = "image/jpeg") -> list[ExtractedTask]:
        data_url = f"data:{mime_type};base64,{base64.b64encode(image).decode('ascii')}"
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "image_url", "image_url": {"url": data_url}},
                    {"type": "text", "text": IMAGE_EXTRACTION_PROMPT},
                ],
            }
        ]

        async def request(model: str) -> Any:
            return await self._client.chat.completions.create(
                model=model,
                messages=messages,
                response_format={"type": "json_object"},
                extra_headers=self._headers or None,
            )

        completion = await self._complete(self._vision_models, "extract", request)
        content = getattr(_first_message(completion), "content", None) or ""
        if not content.strip():
            return []
        return parse_extracted_tasks(content)

    async def generate_steps(self, title: str, subject: str) -> list[str]:
        messages = [{"role": "user", "content": step_generation_prompt(title, subject)}]

        async def request(model: str) -> Any:
            return await self._client.chat.completions.create(
                model=model,
                messages=messages,
                response_format={"type": "json_object"},
                extra_headers=self._headers or None,
            )

        completion = await self._complete(self._models, "steps", request)
        content = getattr(_first_message(completion), "content", None) or ""
        if not content.strip():
            return []
        return parse_steps(content)

    async def run_command(self, user_text: str, task_context: str) -> AgentReply:
        messages = [
            {"role": "system", "content": companion_system_prompt(task_context)},
            {"role": "user", "content": user_text},
        ]

        async def request(model: str) -> Any:
            return await self._client.chat.completions.create(
                model=model,
                messages=messages,
                tools=TOOL_DECLARATIONS,
                extra_headers=self._headers or None,
            )

        completion = await self._complete(self._models, "agent", request)
        reply = parse_agent_message(_first_message(completion))
        logger.debug("Agent reply tool_calls=%s", [c.name for c in reply.tool_calls])
        return reply
