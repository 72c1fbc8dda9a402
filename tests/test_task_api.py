# tests/test_task_api.py

from __future__ import annotations

import asyncio

import pytest

from taskflow.tasks.task_api import (
    FALLBACK_STEPS,
    IMPORT_FAILED_TEXT,
    fill_missing_steps,
    generate_steps_with_fallback,
    import_from_image,
    plan_summary,
    quick_add,
    render_task_context,
    tasks_from_extraction,
)
from taskflow.tasks.task_models import ExtractedTask, Subject, TaskStatus
from taskflow.tasks.task_store import TaskStore

from .fakes import FakeAIClient, GatedStepGenerator, make_task

EXTRACTED = [
    ExtractedTask(subject="Mathematics", title="Fractions p.12", estimated_minutes=20, steps=("Do 1-5", "Do 6-10")),
    ExtractedTask(subject="English", title="Read poem", estimated_minutes=15, steps=("Read", "Annotate")),
]


def test_tasks_from_extraction_maps_subject_and_steps() -> None:
    tasks = tasks_from_extraction(EXTRACTED)

    assert [t.subject for t in tasks] == [Subject.MATH, Subject.LANGUAGE]
    assert [s.text for s in tasks[0].steps] == ["Do 1-5", "Do 6-10"]
    assert all(t.status == TaskStatus.PENDING for t in tasks)
    assert len({t.id for t in tasks}) == 2


def test_tasks_from_extraction_skips_unusable_items() -> None:
    items = [
        ExtractedTask(subject="Art", title="", estimated_minutes=10),
        ExtractedTask(subject="Art", title="Sketch", estimated_minutes=0),
        ExtractedTask(subject="Art", title="Paint", estimated_minutes=25),
    ]
    assert [t.title for t in tasks_from_extraction(items)] == ["Paint"]


@pytest.mark.asyncio
async def test_import_from_image_appends_in_order(store: TaskStore) -> None:
    ai = FakeAIClient(extracted=EXTRACTED)

    result = await import_from_image(store, ai, b"jpeg-bytes", mime_type="image/png")

    assert result.message == "Added 2 tasks (35 min)."
    assert [t.title for t in store.list_tasks()[-2:]] == ["Fractions p.12", "Read poem"]
    assert len(store) == 5
    assert ai.extract_calls == [(b"jpeg-bytes", "image/png")]


@pytest.mark.asyncio
async def test_import_failure_leaves_store_untouched(store: TaskStore) -> None:
    before = store.list_tasks()

    result = await import_from_image(store, FakeAIClient(extracted=RuntimeError("vision down")), b"x")

    assert result.message == IMPORT_FAILED_TEXT
    assert result.tasks == []
    assert store.list_tasks() == before


@pytest.mark.asyncio
async def test_import_with_no_tasks(store: TaskStore) -> None:
    result = await import_from_image(store, FakeAIClient(extracted=[]), b"x")
    assert result.message == "No tasks found in that image."
    assert len(store) == 3


def test_quick_add_uses_defaults() -> None:
    store = TaskStore()
    task = quick_add(store, "  Practice piano  ")

    assert task.title == "Practice piano"
    assert task.subject == Subject.OTHER
    assert task.estimated_minutes == 30
    assert task.steps == ()
    assert store.list_tasks() == [task]


def test_quick_add_rejects_blank_title() -> None:
    with pytest.raises(ValueError):
        quick_add(TaskStore(), "   ")


@pytest.mark.asyncio
async def test_generate_steps_with_fallback_variants() -> None:
    assert await generate_steps_with_fallback(None, "t", "Math") == list(FALLBACK_STEPS)
    assert await generate_steps_with_fallback(FakeAIClient(steps=[]), "t", "Math") == list(FALLBACK_STEPS)
    assert await generate_steps_with_fallback(FakeAIClient(steps=[" ", ""]), "t", "Math") == list(FALLBACK_STEPS)
    assert await generate_steps_with_fallback(FakeAIClient(steps=RuntimeError()), "t", "Math") == list(FALLBACK_STEPS)
    assert await generate_steps_with_fallback(FakeAIClient(steps=[" a ", "b"]), "t", "Math") == ["a", "b"]


@pytest.mark.asyncio
async def test_fill_missing_steps_installs_for_quick_added_task() -> None:
    store = TaskStore()
    task = quick_add(store, "Practice piano")
    ai = FakeAIClient(steps=["Scales", "Piece"])

    assert await fill_missing_steps(store, ai, task.id) is True
    assert [s.text for s in store.get(task.id).steps] == ["Scales", "Piece"]
    assert ai.step_calls == [("Practice piano", "General")]


@pytest.mark.asyncio
async def test_fill_missing_steps_discards_when_task_deleted_meanwhile() -> None:
    store = TaskStore()
    task = quick_add(store, "Practice piano")
    gen = GatedStepGenerator(["x"])

    pending = asyncio.ensure_future(fill_missing_steps(store, gen, task.id))
    await asyncio.sleep(0)
    store.remove(task.id)
    gen.release.set()

    assert await pending is False
    assert len(store) == 0


@pytest.mark.asyncio
async def test_fill_missing_steps_keeps_existing_steps(store: TaskStore) -> None:
    task = store.list_tasks()[0]
    assert await fill_missing_steps(store, FakeAIClient(steps=["new"]), task.id) is False
    assert store.get(task.id).steps == task.steps


def test_render_task_context_and_summary() -> None:
    tasks = [make_task("Essay", Subject.LANGUAGE, 45), make_task("Quiz", Subject.MATH, 20)]

    assert render_task_context(tasks) == "1. [Language] Essay (45 min)\n2. [Math] Quiz (20 min)"
    assert plan_summary(tasks) == "2 tasks • 1h 5m total"
    assert render_task_context([]) == ""
