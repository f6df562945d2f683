"""OutputRouter implementation."""

import re
from typing import Protocol

from ..config import DispatchSettings
from ..dispatch import PacingScheduler, count_sentences, segment
from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import BusMessage, Topic
from ..tracker import ITracker

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


class IOutputRouter(Protocol):
    """Preprocessing of output before delivery."""

    async def start(self) -> None:
        """Subscribe to EventBus topic: OUTPUT."""
        ...

    async def stop(self) -> None:
        """Unsubscribe from EventBus."""
        ...


def plan_fragments(text: str, settings: DispatchSettings) -> list[str]:
    """
    Decide how a reply is broken up for delivery.

    Short replies and single sentences go out as one message with runs of
    whitespace collapsed; anything longer is segmented.
    """
    if not text or not text.strip():
        return []
    if len(text) > settings.split_min_length and count_sentences(text) > 1:
        return segment(text, settings.fragment_max_length, settings.fragment_min_length)
    return [_WHITESPACE.sub(" ", text).strip()]


class OutputRouter:
    """Routes replies from the OUTPUT topic into paced dispatches."""

    def __init__(
        self,
        event_bus: IEventBus,
        scheduler: PacingScheduler,
        tracker: ITracker,
        settings: DispatchSettings | None = None,
    ):
        self._event_bus = event_bus
        self._scheduler = scheduler
        self._tracker = tracker
        self._settings = settings or DispatchSettings()

    async def start(self) -> None:
        """Subscribe to OUTPUT topic."""
        self._event_bus.subscribe(Topic.OUTPUT, self._handle_output)

    async def stop(self) -> None:
        """Unsubscribe and cancel in-flight dispatches."""
        self._event_bus.unsubscribe(Topic.OUTPUT, self._handle_output)
        await self._scheduler.stop()

    async def route(self, key: str, content: str) -> list[str]:
        """Segment `content` and start its paced delivery. Returns the fragments."""
        fragments = plan_fragments(content, self._settings)
        if not fragments:
            logger.info("Nothing to send after segmentation", extra={"conversation": key})
            return []

        self._scheduler.start(key, fragments)
        await self._tracker.track(
            event_type="output_routed",
            actor="output_router",
            data={
                "key": key,
                "content_summary": content[:100],
                "fragment_count": len(fragments),
            },
        )
        return fragments

    async def _handle_output(self, bus_message: BusMessage) -> None:
        """Handle incoming output BusMessage."""
        payload = bus_message.payload
        key = payload.get("key")
        if not key:
            logger.warning(f"Output message {bus_message.id} has no conversation key")
            return
        await self.route(key, payload.get("content", ""))
