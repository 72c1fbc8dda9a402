# src/taskflow/tasks/task_models.py

from __future__ import annotations

import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum


class Subject(StrEnum):
    MATH = "Math"
    LANGUAGE = "Language"
    SCIENCE = "Science"
    ART = "Art"
    OTHER = "Other"

    @classmethod
    def from_text(cls, raw: str | None) -> Subject:
        """
        Map a free-text subject (as returned by the extractor) onto the enum.

        Containment checks run in order, so "Language Arts" is Language.
        """
        s = (raw or "").lower()
        if "math" in s:
            return cls.MATH
        if "lang" in s or "english" in s:
            return cls.LANGUAGE
        if "sci" in s:
            return cls.SCIENCE
        if "art" in s:
            return cls.ART
        return cls.OTHER


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - "active" marks the task a focus session is currently running.
    - "completed" is terminal.
    """

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True, frozen=True)
class Step:
    id: str
    text: str
    is_completed: bool = False


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    title: str
    subject: Subject
    estimated_minutes: int
    steps: tuple[Step, ...] = ()
    status: TaskStatus = TaskStatus.PENDING
    created_at: float = field(default_factory=time.time)

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED


@dataclass(slots=True, frozen=True)
class ExtractedTask:
    """One item produced by the image task extractor (subject is free text)."""

    subject: str
    title: str
    estimated_minutes: int
    steps: tuple[str, ...] = ()


def make_steps(texts: Iterable[str]) -> tuple[Step, ...]:
    return tuple(Step(id=new_id(), text=str(t)) for t in texts)


def new_task(
    title: str,
    *,
    subject: Subject = Subject.OTHER,
    estimated_minutes: int = 30,
    steps: Iterable[str] = (),
    created_at: float | None = None,
) -> Task:
    """Build a fresh pending task. Raises ValueError on an empty title or non-positive minutes."""
    title = (title or "").strip()
    if not title:
        raise ValueError("title is required")
    if estimated_minutes <= 0:
        raise ValueError("estimated_minutes must be positive")

    return Task(
        id=new_id(),
        title=title,
        subject=subject,
        estimated_minutes=int(estimated_minutes),
        steps=make_steps(steps),
        status=TaskStatus.PENDING,
        created_at=time.time() if created_at is None else float(created_at),
    )
