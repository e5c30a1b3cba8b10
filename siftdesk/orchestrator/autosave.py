"""Debounced auto-save."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from siftdesk.config import settings

logger = logging.getLogger(__name__)


class AutoSaver:
    """Runs ``save`` once things have been quiet for ``delay`` seconds.

    Every ``schedule()`` replaces the pending task, so a burst of changes
    produces a single save.
    """

    def __init__(self, save: Callable[[], Awaitable[object]], delay: float | None = None) -> None:
        self._save = save
        self.delay = settings.autosave_delay if delay is None else delay
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._run())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush(self) -> None:
        """Save now, dropping any pending delayed save."""
        self.cancel()
        await self._save()

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        try:
            await self._save()
        except Exception:
            logger.exception("Auto-save failed")
