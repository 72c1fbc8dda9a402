# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskflow.llm import client as llm_client
from taskflow.tasks.task_models import Subject, Task
from taskflow.tasks.task_store import TaskStore

from .fakes import FakeAIClient, ManualTicker, make_task


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and the AI client.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskflow-test",
        data_dir=tmp_path / "data",
        offline=False,
        openrouter_api_key="test-key",
        openrouter_base_url="https://example.invalid/api/v1",
        llm_models=["model-a", "model-b"],
        vision_models=[],
        extra_headers={},
        llm_connect_timeout_seconds=1.0,
        llm_read_timeout_seconds=1.0,
        quick_add_minutes=30,
        tick_interval_seconds=1.0,
    )


@pytest.fixture(autouse=True)
def _reset_bad_models():
    """The model cooldown cache is module-global; keep tests independent."""
    llm_client._BAD_MODELS.clear()
    yield
    llm_client._BAD_MODELS.clear()


@pytest.fixture()
def three_tasks() -> list[Task]:
    """[Language(T1), Math(T2), Science(T3)]"""
    return [
        make_task("Read chapter 3", Subject.LANGUAGE, 15),
        make_task("Worksheet p.42", Subject.MATH, 20),
        make_task("Lab report", Subject.SCIENCE, 30),
    ]


@pytest.fixture()
def store(three_tasks: list[Task]) -> TaskStore:
    return TaskStore(three_tasks)


@pytest.fixture()
def ai() -> FakeAIClient:
    return FakeAIClient()


@pytest.fixture()
def ticker() -> ManualTicker:
    return ManualTicker()
