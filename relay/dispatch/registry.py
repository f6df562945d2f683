"""Per-conversation registry of pending outbound fragments."""

import uuid
from collections import deque
from typing import Iterable

from ..models import DispatchState


class DispatchQueue:
    """Pending fragments of one reply; its identity is the liveness token."""

    def __init__(self, key: str, fragments: Iterable[str]):
        self.key = key
        self.token = uuid.uuid4().hex
        self._pending: deque[str] = deque(fragments)
        self.total = len(self._pending)
        self.state = DispatchState.IDLE

    def __len__(self) -> int:
        return len(self._pending)

    def __repr__(self) -> str:
        return f"DispatchQueue(key={self.key!r}, pending={len(self)}, total={self.total})"


class DeliveryRegistry:
    """
    Maps conversation keys to their single live DispatchQueue.

    Every method runs to completion without awaiting, so under asyncio a
    replacement or cancellation is always visible to the next liveness check
    of a superseded pacing loop.
    """

    def __init__(self):
        self._queues: dict[str, DispatchQueue] = {}

    def start_dispatch(self, key: str, fragments: Iterable[str]) -> DispatchQueue:
        """Register a new queue for `key`, superseding any existing one."""
        queue = DispatchQueue(key, fragments)
        self._queues[key] = queue
        return queue

    def cancel(self, key: str) -> bool:
        """Drop the queue for `key`. Returns True if one was live."""
        return self._queues.pop(key, None) is not None

    def is_live(self, key: str, queue: DispatchQueue) -> bool:
        """Check that `queue` is still the current dispatch for `key`."""
        return self._queues.get(key) is queue

    def pop_next(self, key: str, queue: DispatchQueue) -> str | None:
        """
        Take the next fragment of `queue`.

        Returns None when the queue was superseded or is exhausted; an
        exhausted current queue is removed from the registry.
        """
        if not self.is_live(key, queue):
            return None
        if not queue._pending:
            del self._queues[key]
            return None
        return queue._pending.popleft()

    def has_pending(self, key: str, queue: DispatchQueue) -> bool:
        return self.is_live(key, queue) and bool(queue._pending)

    def finish(self, key: str, queue: DispatchQueue) -> None:
        """Remove `queue` if it is still current; a newer queue is left alone."""
        if self.is_live(key, queue):
            del self._queues[key]

    def get(self, key: str) -> DispatchQueue | None:
        return self._queues.get(key)

    def clear(self) -> None:
        self._queues.clear()

    def active_keys(self) -> list[str]:
        return list(self._queues)

    def __contains__(self, key: object) -> bool:
        return key in self._queues

    def __len__(self) -> int:
        return len(self._queues)
