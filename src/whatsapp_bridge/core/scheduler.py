"""
Reconnect scheduling for WhatsApp Bridge

Runs at most one delayed retry at a time. Every retry is tagged with the
session generation it was scheduled for, so a Stop or DeleteAuth that bumps
the generation (or calls cancel) keeps a stale retry from firing.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from ..utils.logging_setup import get_logger

logger = get_logger('scheduler')


class ReconnectScheduler:
    """Cancellable single-slot delayed task"""

    def __init__(self, current_generation: Callable[[], int]):
        self._current_generation = current_generation
        self._task: Optional[asyncio.Task] = None
        self._generation: Optional[int] = None

    @property
    def pending(self) -> bool:
        """True while a retry is waiting or running for the current generation"""
        return (
            self._task is not None
            and not self._task.done()
            and self._generation == self._current_generation()
        )

    def schedule(self, delay: float, generation: int,
                 callback: Callable[[int], Awaitable[None]]) -> asyncio.Task:
        """Run callback(generation) after delay seconds, replacing any pending retry"""
        self.cancel()
        self._generation = generation
        self._task = asyncio.create_task(self._run(delay, generation, callback))
        logger.debug(f"Reconnect scheduled in {delay:.2f}s for generation {generation}")
        return self._task

    async def _run(self, delay: float, generation: int,
                   callback: Callable[[int], Awaitable[None]]):
        await asyncio.sleep(delay)
        if generation != self._current_generation():
            logger.debug(f"Dropping stale reconnect for generation {generation}")
            return
        await callback(generation)

    def cancel(self):
        """Cancel the pending retry, if any"""
        task = self._task
        self._task = None
        self._generation = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            logger.debug("Pending reconnect cancelled")
