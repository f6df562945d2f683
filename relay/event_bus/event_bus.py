"""EventBus implementation for pub/sub messaging."""

import asyncio
import uuid
from typing import Awaitable, Callable, Protocol

from ..logging_config import get_logger
from ..models import BusMessage, Topic
from ..storage import IStorage

logger = get_logger(__name__)


TopicHandler = Callable[[BusMessage], Awaitable[None]]


class IEventBus(Protocol):
    """In-memory pub/sub for exchanging BusMessages."""

    def subscribe(self, topic: Topic, handler: TopicHandler) -> None:
        """Subscribe a handler to a topic."""
        ...

    def unsubscribe(self, topic: Topic, handler: TopicHandler) -> None:
        """Remove a previously subscribed handler."""
        ...

    async def publish(self, message: BusMessage) -> None:
        """Publish BusMessage: calls subscriber callbacks, persists to Storage."""
        ...


class EventBus:
    """In-memory pub/sub event bus."""

    def __init__(self, storage: IStorage | None = None):
        self._storage = storage
        self._subscribers: dict[Topic, list[TopicHandler]] = {topic: [] for topic in Topic}

    def subscribe(self, topic: Topic, handler: TopicHandler) -> None:
        """Subscribe a handler to a topic."""
        self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: Topic, handler: TopicHandler) -> None:
        """Remove a handler; unknown handlers are ignored."""
        handlers = self._subscribers[topic]
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, message: BusMessage) -> None:
        """Publish BusMessage: calls subscriber callbacks, persists to Storage."""
        # Generate ID if not provided
        if not message.id:
            message.id = str(uuid.uuid4())

        # Get subscribers for this topic
        handlers = list(self._subscribers.get(message.topic, []))

        # Call all handlers concurrently
        if handlers:
            results = await asyncio.gather(
                *[handler(message) for handler in handlers],
                return_exceptions=True,
            )

            # Log any exceptions
            for handler, result in zip(handlers, results):
                if isinstance(result, Exception):
                    logger.error(
                        "Error in %s handler %s: %s",
                        message.topic.value,
                        getattr(handler, "__qualname__", handler),
                        result,
                    )

        # Persist to storage
        if self._storage is not None:
            await self._storage.save_bus_message(message)
