"""FIFO buffer for sends attempted while the transport is not ready."""

import asyncio
from typing import Awaitable, Callable

from ..logging_config import get_logger

logger = get_logger(__name__)

DeferredSend = Callable[[], Awaitable[object]]


class OfflineBuffer:
    """
    Process-wide ordered list of deferred send actions.

    Actions queued while the transport is down run exactly once, oldest
    first, on the next flush. The list is swapped out before it is drained,
    so anything deferred as not-ready during a flush waits for the following
    one. Sends made while ready but mid-flush queue behind the batch being
    drained and run right after it.
    """

    def __init__(self):
        self._pending: list[DeferredSend] = []
        self._behind_flush: list[DeferredSend] = []
        self._flushing = False
        self._flush_lock = asyncio.Lock()

    async def defer_if_not_ready(self, ready: bool, action: DeferredSend) -> bool:
        """
        Run `action` now if `ready`, otherwise buffer it.

        Returns:
            True if the action was buffered, False if it ran immediately.
            Errors from an immediate run propagate to the caller.
        """
        if not ready:
            self._pending.append(action)
            logger.debug("Transport not ready, buffered send (%s pending)", len(self._pending))
            return True

        if self._flushing:
            # Older buffered sends are still going out
            self._behind_flush.append(action)
            return True

        await action()
        return False

    async def flush(self) -> int:
        """Run every buffered action once in FIFO order. Returns how many ran."""
        async with self._flush_lock:
            batch, self._pending = self._pending, []
            if not batch:
                return 0

            logger.info("Flushing %s buffered sends", len(batch))
            self._flushing = True
            ran = 0
            try:
                while batch:
                    for action in batch:
                        ran += 1
                        try:
                            await action()
                        except Exception as e:
                            logger.error("Buffered send %s failed: %s", ran, e, exc_info=True)
                    batch, self._behind_flush = self._behind_flush, []
            finally:
                self._flushing = False
                if self._behind_flush:
                    self._pending = self._behind_flush + self._pending
                    self._behind_flush = []
            return ran

    def clear(self) -> int:
        """Discard buffered actions without running them."""
        dropped = len(self._pending) + len(self._behind_flush)
        self._pending = []
        self._behind_flush = []
        return dropped

    def __len__(self) -> int:
        return len(self._pending) + len(self._behind_flush)
