"""Render buffer — rate-limits visible-text updates to the live message."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from siftdesk.config import settings

logger = logging.getLogger(__name__)


class RenderBuffer:
    """Accumulates visible text and releases it at most once per interval.

    The sink always receives the full text accumulated so far, so the live
    message only ever grows. ``flush()`` releases immediately and is called
    on completion, error and cancellation.
    """

    def __init__(
        self,
        sink: Callable[[str], None],
        interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sink = sink
        self.interval = settings.render_interval if interval is None else interval
        self._clock = clock
        self._text = ""
        self._released = ""
        self._last_release: float | None = None
        self._timer: asyncio.TimerHandle | None = None
        self.closed = False

    @property
    def text(self) -> str:
        return self._text

    @property
    def released(self) -> str:
        return self._released

    def append(self, fragment: str) -> None:
        if self.closed:
            raise RuntimeError("RenderBuffer is closed")
        if not fragment:
            return
        self._text += fragment

        now = self._clock()
        if self._last_release is None or now - self._last_release >= self.interval:
            self._release()
            return

        if self._timer is None:
            delay = self.interval - (now - self._last_release)
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(delay, self._on_timer)

    def flush(self) -> str:
        """Release everything received so far; safe to call repeatedly."""
        self._cancel_timer()
        if self._text != self._released:
            self._release()
        return self._released

    def close(self) -> str:
        text = self.flush()
        self.closed = True
        return text

    def _on_timer(self) -> None:
        self._timer = None
        if self._text != self._released:
            self._release()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _release(self) -> None:
        self._last_release = self._clock()
        self._released = self._text
        try:
            self._sink(self._released)
        except Exception:
            logger.exception("Render sink failed")
