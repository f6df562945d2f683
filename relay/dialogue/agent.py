"""ConversationAgent implementation."""

import itertools
import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..dispatch import InterruptionController
from ..event_bus import IEventBus
from ..llm import GeneratedReply, ReplyGenerator
from ..logging_config import get_logger
from ..memory import MemoryStore
from ..models import BusMessage, InboundEvent, Topic
from ..tasks import TaskManager
from ..tracker import ITracker
from ..transport import ITransport
from .history import ConversationHistory

logger = get_logger(__name__)


class IConversationAgent(Protocol):
    """Turns inbound chat messages into replies."""

    async def handle_inbound(self, event: InboundEvent) -> str | None:
        """Interrupt any pending reply, generate a new one and publish it for delivery."""
        ...


class ConversationAgent:
    """
    Handles every inbound WhatsApp message.

    The pending reply for the conversation is interrupted before anything
    else, including for our own messages. A reply whose generation is
    overtaken by a newer inbound message for the same key is dropped.
    """

    def __init__(
        self,
        interruption: InterruptionController,
        replies: ReplyGenerator,
        history: ConversationHistory,
        event_bus: IEventBus,
        tracker: ITracker,
        memory_store: MemoryStore | None = None,
        task_manager: TaskManager | None = None,
        transport: ITransport | None = None,
    ):
        self._interruption = interruption
        self._replies = replies
        self._history = history
        self._event_bus = event_bus
        self._tracker = tracker
        self._memory = memory_store
        self._tasks = task_manager
        self._transport = transport
        self._generations: dict[str, int] = {}
        self._counter = itertools.count(1)

    async def handle_inbound(self, event: InboundEvent) -> str | None:
        key = event.key
        self._interruption.interrupt(key)
        generation = self._generations[key] = next(self._counter)
        try:
            return await self._handle(event, generation)
        finally:
            # Only the newest handler for a key owns its entry
            if self._generations.get(key) == generation:
                del self._generations[key]

    async def _handle(self, event: InboundEvent, generation: int) -> str | None:
        key = event.key
        if event.from_me:
            return None

        if self._transport is not None:
            await self._transport.send_seen(key)

        logger.info(
            f"Message received: {event.body[:100]}",
            extra={"conversation": key},
        )
        await self._tracker.track(
            event_type="message_received",
            actor="conversation_agent",
            data={
                "key": key,
                "message_id": event.message_id,
                "message_text": event.body,
                "media_type": event.media_type,
            },
        )
        await self._publish(Topic.INBOUND, self._inbound_payload(event))

        image = event.image
        if not event.has_text and image is None:
            logger.debug("No text or image to reply to", extra={"conversation": key})
            return None

        self._history.add(key, "user", event.body if event.has_text else "[image]")
        generated = None
        if event.has_text and image is None:
            generated = await self._answer_task_query(key, event.body)
        if generated is None:
            generated = await self._replies.generate(
                key, event.body, event.quoted_body, image=image
            )

        for request in generated.task_requests:
            await self._add_task(key, request)

        if self._generations.get(key) != generation:
            logger.info("Reply superseded by a newer message", extra={"conversation": key})
            return None

        reply = generated.text
        if reply:
            self._history.add(key, "assistant", reply)
            await self._publish(Topic.OUTPUT, {"key": key, "content": reply})
            await self._tracker.track(
                event_type="message_responded",
                actor="conversation_agent",
                data={"key": key, "response_text": reply, "fallback": generated.fallback},
            )

        await self._remember(key, event.body, reply if not generated.fallback else "")
        return reply or None

    def reset(self) -> None:
        self._history.clear()
        self._generations.clear()

    @staticmethod
    def _inbound_payload(event: InboundEvent) -> dict:
        return {
            "key": event.key,
            "chat_id": event.chat_id,
            "body": event.body,
            "sender_name": event.sender_name,
            "is_group": event.is_group,
            "media_type": event.media_type,
            "message_id": event.message_id,
        }

    async def _publish(self, topic: Topic, payload: dict) -> None:
        await self._event_bus.publish(
            BusMessage(
                id=str(uuid.uuid4()),
                topic=topic,
                payload=payload,
                source="conversation_agent",
                timestamp=datetime.now(timezone.utc),
            )
        )

    async def _answer_task_query(self, key: str, text: str) -> GeneratedReply | None:
        if self._tasks is None:
            return None
        try:
            answer = await self._tasks.answer_task_query(key, text)
        except Exception as e:
            logger.error(f"Task query failed: {e}", exc_info=True, extra={"conversation": key})
            return None
        if answer is None:
            return None
        await self._tracker.track(
            event_type="task_query_answered",
            actor="conversation_agent",
            data={"key": key, "response_text": answer},
        )
        return GeneratedReply(text=answer)

    async def _add_task(self, key: str, request: str) -> None:
        if self._tasks is None:
            logger.debug(f"Ignoring task request without a task manager: {request}")
            return
        try:
            task = await self._tasks.add_from_text(key, request)
        except Exception as e:
            logger.error(f"Failed to add task: {e}", exc_info=True, extra={"conversation": key})
            return
        await self._tracker.track(
            event_type="task_added",
            actor="conversation_agent",
            data={"key": key, "task_id": task.id, "title": task.title},
        )

    async def _remember(self, key: str, user_text: str, reply: str) -> None:
        if self._memory is None:
            return
        try:
            if reply:
                await self._memory.add_memory(key, reply)
            if not user_text.strip():
                return
            pinned = await self._replies.classify_memory(user_text)
            await self._memory.add_memory(key, user_text, pinned=pinned)
        except Exception as e:
            logger.warning(f"Failed to store memories: {e}", extra={"conversation": key})
