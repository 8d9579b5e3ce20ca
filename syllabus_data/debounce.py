"""
Debounced writes keyed by what they edit.

Free-text edits (class titles, descriptions, instructions) arrive one
keystroke at a time. Scheduling them through a :class:`Debouncer` replaces a
still-waiting write for the same key, so only the last value is persisted.
A write whose quiet period has elapsed is in flight and is never cancelled;
if a newer edit lands meanwhile, the later write simply wins.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import typing as t
from dataclasses import dataclass

logger = logging.getLogger(__name__)

WriteCallback = t.Callable[..., t.Any]


def _collect_result(task: asyncio.Task) -> None:
    # Failures are logged by Debouncer._run; retrieving them keeps the loop quiet
    if not task.cancelled():
        task.exception()


@dataclass
class _Scheduled:
    task: asyncio.Task
    callback: WriteCallback
    args: tuple


class Debouncer:
    def __init__(self, delay: float = 0.5) -> None:
        self.delay = delay
        self._scheduled: dict[t.Hashable, _Scheduled] = {}
        self._in_flight: set[asyncio.Task] = set()

    def schedule(self, key: t.Hashable, callback: WriteCallback, *args: t.Any) -> None:
        """Run ``callback(*args)`` after the quiet period unless rescheduled first.

        Must be called from a running event loop. ``callback`` may be a plain
        function or a coroutine function.
        """
        if self.cancel(key):
            logger.debug("Debounced write for %r replaced", key)
        task = asyncio.get_running_loop().create_task(self._fire_later(key))
        task.add_done_callback(_collect_result)
        self._scheduled[key] = _Scheduled(task=task, callback=callback, args=args)

    def cancel(self, key: t.Hashable) -> bool:
        """Cancel a write that has not fired yet. Returns whether one was pending."""
        scheduled = self._scheduled.pop(key, None)
        if scheduled is None:
            return False
        scheduled.task.cancel()
        return True

    def is_pending(self, key: t.Hashable) -> bool:
        return key in self._scheduled

    async def _fire_later(self, key: t.Hashable) -> None:
        await asyncio.sleep(self.delay)
        scheduled = self._scheduled.pop(key, None)
        if scheduled is None:
            return
        # From here on the write is in flight
        current = asyncio.current_task()
        if current is not None:
            self._in_flight.add(current)
        try:
            await self._run(key, scheduled)
        finally:
            if current is not None:
                self._in_flight.discard(current)

    @staticmethod
    async def _run(key: t.Hashable, scheduled: _Scheduled) -> None:
        logger.debug("Running debounced write for %r", key)
        try:
            result = scheduled.callback(*scheduled.args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Debounced write for %r failed", key)
            raise

    async def flush(self) -> None:
        """Run every waiting write now and wait for in-flight ones to finish."""
        waiting = list(self._scheduled.items())
        self._scheduled.clear()
        for key, scheduled in waiting:
            scheduled.task.cancel()
            await self._run(key, scheduled)
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
