"""Paced, interruptible delivery of reply fragments."""

import asyncio
import random
from functools import partial
from typing import Awaitable, Callable, Protocol, Sequence

from ..config import DispatchSettings
from ..logging_config import get_logger
from ..models import DispatchOutcome, DispatchState, TypingState
from ..transport.base import ITransport
from .offline import OfflineBuffer
from .registry import DeliveryRegistry, DispatchQueue

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[object]]


class IDispatchTracker(Protocol):
    async def track(self, event_type: str, actor: str, data: dict) -> None:
        ...


class PacingScheduler:
    """
    Sends the fragments of a reply one at a time with typing delays.

    Per fragment: show typing, wait a randomized delay, re-check that the
    dispatch is still current, then send through the transport (or the
    offline buffer when the transport is down). A dispatch that was
    cancelled or replaced during the wait stops without sending.
    """

    def __init__(
        self,
        registry: DeliveryRegistry,
        transport: ITransport,
        offline_buffer: OfflineBuffer,
        settings: DispatchSettings | None = None,
        tracker: IDispatchTracker | None = None,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._registry = registry
        self._transport = transport
        self._offline = offline_buffer
        self._settings = settings or DispatchSettings()
        self._tracker = tracker
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

    def delay_for(self, fragment: str, single: bool) -> float:
        """Typing delay in seconds before `fragment` is sent."""
        s = self._settings
        if single:
            scaled = len(fragment) * s.typing_delay_per_char
            return max(s.single_delay_min, min(s.single_delay_max, scaled))
        return self._rng.uniform(s.typing_delay_min, s.typing_delay_max)

    def start(self, key: str, fragments: Sequence[str]) -> asyncio.Task | None:
        """
        Begin a dispatch in the background and return its task.

        The queue is registered before this returns, so any older dispatch
        for `key` is superseded immediately.
        """
        if not fragments:
            return None
        queue = self._registry.start_dispatch(key, fragments)
        task = asyncio.create_task(self._run(key, queue), name=f"dispatch:{key}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def dispatch(self, key: str, fragments: Sequence[str]) -> DispatchOutcome:
        """Run a dispatch to completion in the current task."""
        if not fragments:
            return DispatchOutcome(key=key, state=DispatchState.DONE, sent=0, total=0)
        queue = self._registry.start_dispatch(key, fragments)
        return await self._run(key, queue)

    async def stop(self) -> None:
        """Cancel all running dispatches."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    @property
    def running(self) -> int:
        return len(self._tasks)

    async def _run(self, key: str, queue: DispatchQueue) -> DispatchOutcome:
        single = queue.total == 1
        sent = 0
        try:
            while True:
                if not self._registry.is_live(key, queue):
                    return await self._finish(key, queue, DispatchState.CANCELLED, sent)

                fragment = self._registry.pop_next(key, queue)
                if fragment is None:
                    return await self._finish(key, queue, DispatchState.DONE, sent)

                queue.state = DispatchState.TYPING
                await self._signal(key, TypingState.TYPING)

                queue.state = DispatchState.WAITING
                await self._sleep(self.delay_for(fragment, single))

                if not self._registry.is_live(key, queue):
                    return await self._finish(key, queue, DispatchState.CANCELLED, sent)

                queue.state = DispatchState.SENDING
                try:
                    await self._offline.defer_if_not_ready(
                        self._transport.is_ready(),
                        partial(self._transport.send_fragment, key, fragment),
                    )
                except Exception as e:
                    logger.error(
                        f"Send failed for {key}, dropping {len(queue)} remaining fragments: {e}",
                        exc_info=True,
                        extra={"conversation": key},
                    )
                    self._registry.finish(key, queue)
                    return await self._finish(
                        key, queue, DispatchState.FAILED, sent, error=str(e)
                    )
                sent += 1

                if not self._registry.is_live(key, queue):
                    return await self._finish(key, queue, DispatchState.CANCELLED, sent)
                if not self._registry.has_pending(key, queue):
                    self._registry.finish(key, queue)
                    return await self._finish(key, queue, DispatchState.DONE, sent)
        except asyncio.CancelledError:
            self._registry.finish(key, queue)
            queue.state = DispatchState.CANCELLED
            raise

    async def _signal(self, key: str, state: TypingState) -> None:
        if not self._transport.is_ready():
            return
        try:
            await self._transport.set_typing_state(key, state)
        except Exception as e:
            logger.debug(f"Typing state {state.value} failed for {key}: {e}")

    async def _finish(
        self,
        key: str,
        queue: DispatchQueue,
        state: DispatchState,
        sent: int,
        error: str | None = None,
    ) -> DispatchOutcome:
        queue.state = state
        # A newer dispatch for the key owns the typing indicator.
        if key not in self._registry:
            await self._signal(key, TypingState.IDLE)

        outcome = DispatchOutcome(
            key=key, state=state, sent=sent, total=queue.total, error=error
        )
        logger.debug(
            "Dispatch %s for %s: %s/%s sent", state.value, key, sent, queue.total
        )
        if self._tracker:
            try:
                await self._tracker.track(
                    event_type=f"dispatch_{state.value}",
                    actor="pacing_scheduler",
                    data={
                        "key": key,
                        "sent": sent,
                        "total": queue.total,
                        "error": error,
                    },
                )
            except Exception as e:
                logger.warning(f"Failed to track dispatch outcome for {key}: {e}")
        return outcome
