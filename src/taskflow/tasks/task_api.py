# src/taskflow/tasks/task_api.py

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..core.ports import StepGenerator, TaskExtractor
from .task_models import ExtractedTask, Subject, Task, make_steps, new_task
from .task_store import TaskStore

logger = logging.getLogger(__name__)

FALLBACK_STEPS: tuple[str, ...] = (
    "Prepare materials",
    "Focus on the first problem",
    "Continue through the rest",
    "Review work",
)

QUICK_ADD_MINUTES = 30
QUICK_ADD_SUBJECT_HINT = "General"

IMPORT_FAILED_TEXT = "Oops! Couldn't analyze the image. Try again clearly."


@dataclass(slots=True, frozen=True)
class ImportResult:
    message: str
    tasks: list[Task] = field(default_factory=list)


def tasks_from_extraction(items: Iterable[ExtractedTask], *, now_ts: float | None = None) -> list[Task]:
    """Map extractor output into fresh pending tasks (items that cannot form a task are skipped)."""
    out: list[Task] = []
    for item in items:
        try:
            out.append(
                new_task(
                    item.title,
                    subject=Subject.from_text(item.subject),
                    estimated_minutes=item.estimated_minutes,
                    steps=item.steps,
                    created_at=now_ts,
                )
            )
        except ValueError:
            logger.warning("Skipping extracted task title=%r minutes=%r", item.title, item.estimated_minutes)
    return out


async def import_from_image(
    store: TaskStore,
    extractor: TaskExtractor,
    image: bytes,
    *,
    mime_type: str = "image/jpeg",
) -> ImportResult:
    """
    Bulk-create tasks from a photographed document.

    Any extractor failure leaves the store untouched; retries are up to the user.
    """
    try:
        items = await extractor.extract_tasks(image, mime_type)
    except Exception:
        logger.exception("Image task extraction failed (bytes=%d).", len(image))
        return ImportResult(message=IMPORT_FAILED_TEXT)

    tasks = tasks_from_extraction(items)
    if not tasks:
        return ImportResult(message="No tasks found in that image.")

    store.extend(tasks)
    minutes = sum(t.estimated_minutes for t in tasks)
    logger.info("Imported %d tasks from image (%d min).", len(tasks), minutes)
    return ImportResult(message=f"Added {len(tasks)} tasks ({minutes} min).", tasks=tasks)


def quick_add(store: TaskStore, title: str, *, minutes: int = QUICK_ADD_MINUTES) -> Task:
    """Append a single task without steps; call fill_missing_steps to generate them."""
    task = new_task(title, subject=Subject.OTHER, estimated_minutes=minutes)
    store.append(task)
    return task


async def generate_steps_with_fallback(generator: StepGenerator | None, title: str, subject: str) -> list[str]:
    """Never raises: a failed or empty generation yields FALLBACK_STEPS."""
    if generator is None:
        return list(FALLBACK_STEPS)
    try:
        steps = [s.strip() for s in await generator.generate_steps(title, subject) if s and s.strip()]
    except Exception:
        logger.exception("Step generation failed for %r; using fallback steps.", title)
        return list(FALLBACK_STEPS)
    if not steps:
        logger.info("Step generation returned nothing for %r; using fallback steps.", title)
        return list(FALLBACK_STEPS)
    return steps


async def fill_missing_steps(
    store: TaskStore,
    generator: StepGenerator | None,
    task_id: str,
    *,
    subject_hint: str = QUICK_ADD_SUBJECT_HINT,
) -> bool:
    """
    Background step generation for a quick-added task.

    Installs the result only if the task still exists and still has no steps
    (it may have been deleted, or filled by a focus session, meanwhile).
    """
    task = store.get(task_id)
    if task is None:
        return False

    texts = await generate_steps_with_fallback(generator, task.title, subject_hint)

    current = store.get(task_id)
    if current is None or current.steps:
        logger.debug("Discarding generated steps for task_id=%s (gone or already filled)", task_id)
        return False
    store.update_fields(task_id, steps=make_steps(texts))
    logger.debug("Installed %d generated steps for task_id=%s", len(texts), task_id)
    return True


def render_task_context(tasks: Sequence[Task]) -> str:
    """Numbered list sent to the command agent: `1. [Math] Title (20 min)`."""
    return "\n".join(
        f"{i}. [{t.subject.value}] {t.title} ({t.estimated_minutes} min)" for i, t in enumerate(tasks, start=1)
    )


def plan_summary(tasks: Sequence[Task]) -> str:
    total = sum(t.estimated_minutes for t in tasks)
    return f"{len(tasks)} tasks • {total // 60}h {total % 60}m total"
