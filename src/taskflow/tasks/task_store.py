# src/taskflow/tasks/task_store.py

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import replace

from ..errors import InvariantViolation
from .task_models import Step, Subject, Task, TaskStatus

logger = logging.getLogger(__name__)


def _check_steps(task_id: str, steps: Iterable[Step]) -> None:
    seen: set[str] = set()
    for step in steps:
        if step.id in seen:
            raise InvariantViolation(f"Duplicate step id {step.id!r} in task {task_id!r}")
        seen.add(step.id)


def _check_task(task: Task) -> None:
    if not task.title or not task.title.strip():
        raise InvariantViolation(f"Task {task.id!r} has an empty title")
    if task.estimated_minutes <= 0:
        raise InvariantViolation(
            f"Task {task.id!r} has non-positive estimated_minutes={task.estimated_minutes}"
        )
    _check_steps(task.id, task.steps)


class TaskStore:
    """
    In-memory ordered task store.

    Layout:
    - _tasks: id -> Task
    - _order: ids in execution order

    Tasks and steps are frozen dataclasses; every mutation swaps in a replaced
    copy, so a snapshot taken earlier never sees later changes.

    All mutations are total (unknown ids are a no-op) except where an invariant
    would break: those raise InvariantViolation, which is a programming error.
    """

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._tasks: dict[str, Task] = {}
        self._order: list[str] = []
        self.extend(tasks)

    # ---- queries ----

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[Task]:
        return iter(self.list_tasks())

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def list_tasks(self) -> list[Task]:
        return [self._tasks[tid] for tid in self._order]

    def index_of(self, task_id: str) -> int | None:
        if task_id not in self._tasks:
            return None
        return self._order.index(task_id)

    def pending_tasks(self) -> list[Task]:
        """Non-completed tasks in list order (pending and active)."""
        return [t for t in self.list_tasks() if not t.is_completed]

    def total_minutes(self) -> int:
        return sum(t.estimated_minutes for t in self._tasks.values())

    def snapshot(self) -> TaskStore:
        clone = TaskStore()
        clone._tasks = dict(self._tasks)
        clone._order = list(self._order)
        return clone

    # ---- mutations ----

    def append(self, task: Task) -> None:
        if task.id in self._tasks:
            raise InvariantViolation(f"Duplicate task id {task.id!r}")
        _check_task(task)
        self._tasks[task.id] = task
        self._order.append(task.id)
        logger.debug("Task appended id=%s title=%r", task.id, task.title)

    def extend(self, tasks: Iterable[Task]) -> None:
        """Append several tasks; validated up front so nothing is added on failure."""
        batch = list(tasks)
        seen = set(self._tasks)
        for task in batch:
            if task.id in seen:
                raise InvariantViolation(f"Duplicate task id {task.id!r}")
            seen.add(task.id)
            _check_task(task)
        for task in batch:
            self._tasks[task.id] = task
            self._order.append(task.id)
        if batch:
            logger.debug("Tasks appended count=%d total=%d", len(batch), len(self._order))

    def replace_all(self, tasks: Iterable[Task]) -> None:
        """Swap in a whole new ordered list (used to commit a command batch)."""
        fresh = TaskStore(tasks)
        self._tasks = fresh._tasks
        self._order = fresh._order
        logger.debug("Task list replaced total=%d", len(self._order))

    def remove(self, task_id: str) -> Task | None:
        task = self._tasks.pop(task_id, None)
        if task is None:
            return None
        self._order.remove(task_id)
        logger.debug("Task removed id=%s", task_id)
        return task

    def update_fields(
        self,
        task_id: str,
        *,
        title: str | None = None,
        subject: Subject | None = None,
        estimated_minutes: int | None = None,
        steps: Iterable[Step] | None = None,
        status: TaskStatus | None = None,
    ) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return False

        changes: dict[str, object] = {}
        if title is not None:
            changes["title"] = title
        if subject is not None:
            changes["subject"] = subject
        if estimated_minutes is not None:
            changes["estimated_minutes"] = int(estimated_minutes)
        if steps is not None:
            changes["steps"] = tuple(steps)
        if status is not None:
            if task.is_completed and status != TaskStatus.COMPLETED:
                raise InvariantViolation(f"Task {task_id!r} is completed and cannot revert")
            changes["status"] = status

        if not changes:
            return True

        updated = replace(task, **changes)
        _check_task(updated)
        self._tasks[task_id] = updated
        logger.debug("Task updated id=%s fields=%s", task_id, sorted(changes))
        return True

    def move_to(self, task_id: str, index: int) -> int | None:
        """
        Move a task to a 0-based index, clamped to [0, len - 1].

        The clamp is computed against the list without the moved task, so 0 is
        always "first" and anything past the end is always "last".
        """
        if task_id not in self._tasks:
            return None
        self._order.remove(task_id)
        target = max(0, min(int(index), len(self._order)))
        self._order.insert(target, task_id)
        logger.debug("Task moved id=%s index=%d", task_id, target)
        return target

    def toggle_step(self, task_id: str, step_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return False

        found = False
        steps: list[Step] = []
        for step in task.steps:
            if step.id == step_id:
                step = replace(step, is_completed=not step.is_completed)
                found = True
            steps.append(step)

        if not found:
            return False
        self._tasks[task_id] = replace(task, steps=tuple(steps))
        return True
