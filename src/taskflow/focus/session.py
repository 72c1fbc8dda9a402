# src/taskflow/focus/session.py

"""
Focus session state machine.

Phases (derived, never stored):
- idle:    no active task (nothing left, or the user left focus mode)
- running: countdown active
- paused:  countdown frozen, task unchanged
- expired: countdown hit zero; the task is NOT auto-completed

Key invariants:
- the ticker runs iff the phase is running,
- only the transitions in this class start/stop the ticker,
- asynchronously generated steps are installed only while the task that
  requested them is still active (same ActiveTaskRef, generation included).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from ..core.ports import StepGenerator, Ticker
from ..tasks.task_api import generate_steps_with_fallback
from ..tasks.task_models import Task, TaskStatus, make_steps
from ..tasks.task_store import TaskStore
from .ticker import CountdownTicker

logger = logging.getLogger(__name__)

WARNING_FRACTION = 0.40
CRITICAL_FRACTION = 0.15


class SessionPhase(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRED = "expired"


class Urgency(StrEnum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


def classify_urgency(remaining_seconds: int, total_seconds: int) -> Urgency:
    if total_seconds <= 0:
        raise ValueError("total_seconds must be positive")
    fraction = remaining_seconds / total_seconds
    if fraction >= WARNING_FRACTION:
        return Urgency.NORMAL
    if fraction >= CRITICAL_FRACTION:
        return Urgency.WARNING
    return Urgency.CRITICAL


@dataclass(slots=True, frozen=True)
class ActiveTaskRef:
    """Weak reference to the active task, stamped with the activation generation."""

    task_id: str
    generation: int


class FocusSession:
    def __init__(
        self,
        store: TaskStore,
        *,
        step_generator: StepGenerator | None = None,
        ticker: Ticker | None = None,
        tick_interval_seconds: float = 1.0,
        on_phase_change: Callable[[SessionPhase], None] | None = None,
    ) -> None:
        self._store = store
        self._step_generator = step_generator
        self._ticker: Ticker = ticker or CountdownTicker(self.tick, interval_seconds=tick_interval_seconds)
        self.on_phase_change = on_phase_change

        self._active: ActiveTaskRef | None = None
        self._generation = 0
        self.remaining_seconds = 0
        self.total_seconds = 0
        self.is_running = False
        self._step_request: asyncio.Task[bool] | None = None
        self._step_requests: set[asyncio.Task[bool]] = set()

    # ---- derived state ----

    @property
    def active_ref(self) -> ActiveTaskRef | None:
        return self._active

    @property
    def active_task_id(self) -> str | None:
        return self._active.task_id if self._active else None

    @property
    def active_task(self) -> Task | None:
        if self._active is None:
            return None
        return self._store.get(self._active.task_id)

    @property
    def phase(self) -> SessionPhase:
        if self._active is None:
            return SessionPhase.IDLE
        if self.remaining_seconds <= 0:
            return SessionPhase.EXPIRED
        if self.is_running:
            return SessionPhase.RUNNING
        return SessionPhase.PAUSED

    @property
    def urgency(self) -> Urgency | None:
        if self._active is None or self.total_seconds <= 0:
            return None
        return classify_urgency(self.remaining_seconds, self.total_seconds)

    @property
    def next_task(self) -> Task | None:
        """The task that would follow the active one (presentation only)."""
        pending = [t for t in self._store.pending_tasks() if t.id != self.active_task_id]
        return pending[0] if pending else None

    @property
    def step_request(self) -> asyncio.Task[bool] | None:
        """The most recently started step generation, if any (tests await it)."""
        return self._step_request

    @property
    def pending_step_requests(self) -> frozenset[asyncio.Task[bool]]:
        return frozenset(self._step_requests)

    # ---- transitions ----

    def enter(self) -> SessionPhase:
        """Enter focus mode: activate the first non-completed task, or stay idle."""
        if self._active is not None:
            return self.phase
        return self._advance()

    def toggle(self) -> SessionPhase:
        phase = self.phase
        if phase == SessionPhase.RUNNING:
            return self.pause()
        if phase == SessionPhase.PAUSED:
            return self.resume()
        return phase

    def pause(self) -> SessionPhase:
        if self.phase != SessionPhase.RUNNING:
            return self.phase
        self.is_running = False
        self._ticker.stop()
        return self._changed()

    def resume(self) -> SessionPhase:
        if self.phase != SessionPhase.PAUSED:
            return self.phase
        self.is_running = True
        self._ticker.start()
        return self._changed()

    def tick(self) -> SessionPhase:
        """One second elapsed. Has no effect unless running with time left."""
        if not self.is_running or self.remaining_seconds <= 0:
            return self.phase
        self.remaining_seconds -= 1
        if self.remaining_seconds == 0:
            self.is_running = False
            self._ticker.stop()
            logger.info("Countdown expired task_id=%s", self.active_task_id)
            return self._changed()
        return SessionPhase.RUNNING

    def complete_active(self) -> SessionPhase:
        """Mark the active task completed and move on (running) or finish (idle)."""
        if self._active is None:
            return SessionPhase.IDLE
        task_id = self._active.task_id
        self._store.update_fields(task_id, status=TaskStatus.COMPLETED)
        logger.info("Task completed id=%s", task_id)
        self._deactivate(restore_pending=False)
        return self._advance()

    def exit(self) -> SessionPhase:
        """Leave focus mode. The active task goes back to pending."""
        if self._active is None:
            return SessionPhase.IDLE
        self._deactivate(restore_pending=True)
        return self._changed()

    def refresh(self) -> SessionPhase:
        """Re-derive after outside mutations (e.g. the active task was deleted by a command)."""
        if self._active is None:
            return SessionPhase.IDLE
        task = self.active_task
        if task is not None and not task.is_completed:
            return self.phase
        logger.info("Active task %s vanished; advancing", self._active.task_id)
        self._deactivate(restore_pending=False)
        return self._advance()

    def toggle_step(self, step_id: str) -> bool:
        """Flip a step of the active task. Never touches the countdown."""
        if self._active is None:
            return False
        return self._store.toggle_step(self._active.task_id, step_id)

    # ---- step generation ----

    def install_steps(self, ref: ActiveTaskRef, texts: list[str]) -> bool:
        """Install generated steps if ref is still the active task; otherwise drop them."""
        if ref != self._active:
            logger.debug("Discarding stale steps for task_id=%s gen=%d", ref.task_id, ref.generation)
            return False
        task = self._store.get(ref.task_id)
        if task is None or task.steps:
            return False
        self._store.update_fields(ref.task_id, steps=make_steps(texts))
        return True

    async def _request_steps(self, ref: ActiveTaskRef, title: str, subject: str) -> bool:
        texts = await generate_steps_with_fallback(self._step_generator, title, subject)
        return self.install_steps(ref, texts)

    # ---- internals ----

    def _advance(self) -> SessionPhase:
        pending = self._store.pending_tasks()
        if not pending:
            return self._changed()
        self._activate(pending[0])
        return self._changed()

    def _activate(self, task: Task) -> None:
        self._generation += 1
        ref = ActiveTaskRef(task_id=task.id, generation=self._generation)
        self._active = ref
        self._store.update_fields(task.id, status=TaskStatus.ACTIVE)

        self.total_seconds = task.estimated_minutes * 60
        self.remaining_seconds = self.total_seconds
        self.is_running = True
        self._ticker.start()
        logger.info(
            "Focus on task id=%s title=%r (%d min) gen=%d",
            task.id,
            task.title,
            task.estimated_minutes,
            ref.generation,
        )

        if not task.steps and self._step_generator is not None:
            request = asyncio.get_running_loop().create_task(
                self._request_steps(ref, task.title, task.subject.value),
                name=f"steps-{task.id}",
            )
            self._step_request = request
            self._step_requests.add(request)
            request.add_done_callback(self._step_request_done)

    def _deactivate(self, *, restore_pending: bool) -> None:
        self._ticker.stop()
        ref, self._active = self._active, None
        if ref is not None and restore_pending:
            task = self._store.get(ref.task_id)
            if task is not None and task.status == TaskStatus.ACTIVE:
                self._store.update_fields(ref.task_id, status=TaskStatus.PENDING)
        self.remaining_seconds = 0
        self.total_seconds = 0
        self.is_running = False

    def _changed(self) -> SessionPhase:
        phase = self.phase
        if self.on_phase_change is not None:
            try:
                self.on_phase_change(phase)
            except Exception:
                logger.exception("on_phase_change callback failed")
        return phase

    def _step_request_done(self, task: asyncio.Task[bool]) -> None:
        self._step_requests.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Step request %s failed", task.get_name(), exc_info=exc)
