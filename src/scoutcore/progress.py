"""
Publish/subscribe channel for pipeline progress.

Fire-and-forget: a failing subscriber is logged and never interrupts the
publish loop or the pipeline.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Dict, Set

import structlog

from scoutcore.protocols import ProgressEvent

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[ProgressEvent], Any]


class ProgressBus:
    """Broadcasts ``ProgressEvent`` objects to any number of subscribers."""

    def __init__(self) -> None:
        self._subscribers: Dict[int, ProgressCallback] = {}
        self._next_token = 0
        self._tasks: Set[asyncio.Task] = set()
        self.logger = logger.bind(component="ProgressBus")

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a sync or async callback. Returns an idempotent unsubscribe."""
        token = self._next_token
        self._next_token += 1
        self._subscribers[token] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, step: str, message: str, progress: float) -> ProgressEvent:
        event = ProgressEvent(step=step, message=message, progress=progress)
        for callback in list(self._subscribers.values()):
            try:
                outcome = callback(event)
            except Exception as e:
                self.logger.warning("Progress subscriber failed", step=step, error=str(e), error_type=type(e).__name__)
                continue
            if inspect.isawaitable(outcome):
                self._schedule(outcome, step)
        return event

    def _schedule(self, awaitable: Any, step: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop to drive an async subscriber
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.logger.warning("Async progress subscriber skipped outside an event loop", step=step)
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.warning("Async progress subscriber failed", error=str(error), error_type=type(error).__name__)

    async def drain(self) -> None:
        """Wait for outstanding async subscribers."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
