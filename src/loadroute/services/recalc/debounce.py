"""Cancellable delayed call used to collapse bursts of edits."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """Calls ``callback`` once, ``delay`` seconds after the most recent trigger.

    Each trigger cancels the previous delayed task and starts a new one, so at
    most one timer is ever pending. Must be triggered from a running event loop.
    """

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self) -> None:
        restarted = self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._fire())
        if restarted:
            logger.debug(f"Debounce window restarted ({self.delay}s)")

    def cancel(self) -> bool:
        """Drop the pending call. Returns True if one was pending."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            return True
        return False

    async def wait(self) -> None:
        """Wait until no call is pending, including any restarted while waiting."""
        while self.pending:
            await asyncio.wait({self._task})

    async def _fire(self) -> None:
        await asyncio.sleep(self.delay)
        self._task = None
        try:
            self.callback()
        except Exception:
            logger.exception("Debounced callback failed")
