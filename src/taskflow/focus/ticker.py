# src/taskflow/focus/ticker.py

"""
Countdown ticker.

One asyncio task that calls on_tick every interval_seconds until stopped.
The focus session owns exactly one ticker and is the only caller of
start()/stop(), so there is never more than one timer per session.

To stop the ticker from outside the session, exit the session.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CountdownTicker:
    def __init__(self, on_tick: Callable[[], None], *, interval_seconds: float = 1.0) -> None:
        self._on_tick = on_tick
        self._interval = max(0.01, float(interval_seconds))
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking. Requires a running event loop; no-op if already running."""
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name="focus-countdown")
        logger.debug("Ticker started interval=%.2fs", self._interval)

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("Ticker stopped")

    async def aclose(self) -> None:
        """Stop and wait for the task to finish cancelling."""
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._on_tick()
            except Exception:
                logger.exception("Tick handler failed")
