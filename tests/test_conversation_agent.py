"""Tests for ConversationAgent."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from relay.dialogue import ConversationAgent, ConversationHistory
from relay.dispatch import InterruptionController
from relay.errors import LLMError
from relay.llm import FALLBACK_REPLY, ReplyGenerator
from relay.memory import MemoryStore
from relay.models import InboundEvent, MediaAttachment, Task, Topic

KEY = "27761234567"


def inbound(body: str = "Hello", **kwargs) -> InboundEvent:
    return InboundEvent(key=KEY, body=body, chat_id=f"{KEY}@c.us", sender_name="Thabo", **kwargs)


@pytest.fixture
def published(event_bus):
    """Payloads published on each topic."""
    seen = {Topic.INBOUND: [], Topic.OUTPUT: []}

    async def record(message):
        seen[message.topic].append(message.payload)

    for topic in seen:
        event_bus.subscribe(topic, record)
    return seen


@pytest.fixture
def history():
    return ConversationHistory()


@pytest.fixture
def make_agent(registry, mock_llm, history, event_bus, tracker):
    def factory(memory_store=None, task_manager=None, transport=None):
        return ConversationAgent(
            interruption=InterruptionController(registry),
            replies=ReplyGenerator(mock_llm, history=history, memory_store=memory_store),
            history=history,
            event_bus=event_bus,
            tracker=tracker,
            memory_store=memory_store,
            task_manager=task_manager,
            transport=transport,
        )

    return factory


class TestHandleInbound:
    """Tests for ConversationAgent.handle_inbound()."""

    @pytest.mark.asyncio
    async def test_reply_is_published_for_delivery(self, make_agent, published, history):
        agent = make_agent()

        reply = await agent.handle_inbound(inbound("Hello"))

        assert reply == "Test response"
        assert published[Topic.OUTPUT] == [{"key": KEY, "content": "Test response"}]
        assert [(e.role, e.content) for e in history.get(KEY)] == [
            ("user", "Hello"),
            ("assistant", "Test response"),
        ]

    @pytest.mark.asyncio
    async def test_inbound_is_published_for_mirroring(self, make_agent, published):
        agent = make_agent()

        await agent.handle_inbound(inbound("Hello", is_group=True, message_id="m1"))

        payload = published[Topic.INBOUND][0]
        assert payload["key"] == KEY
        assert payload["body"] == "Hello"
        assert payload["sender_name"] == "Thabo"
        assert payload["is_group"] is True
        assert payload["message_id"] == "m1"

    @pytest.mark.asyncio
    async def test_tracks_events(self, make_agent, storage, published):
        agent = make_agent()

        await agent.handle_inbound(inbound("Hello"))

        events = await storage.get_trace_events(actor="conversation_agent")
        event_types = {e.event_type for e in events}
        assert {"message_received", "message_responded"} <= event_types

    @pytest.mark.asyncio
    async def test_interrupts_pending_dispatch(self, make_agent, registry, published):
        agent = make_agent()
        queue = registry.start_dispatch(KEY, ["old reply part 1", "old reply part 2"])

        await agent.handle_inbound(inbound("wait"))

        assert not registry.is_live(KEY, queue)

    @pytest.mark.asyncio
    async def test_own_message_interrupts_without_reply(
        self, make_agent, registry, mock_llm, published
    ):
        agent = make_agent()
        queue = registry.start_dispatch(KEY, ["pending"])

        reply = await agent.handle_inbound(inbound("typed on my phone", from_me=True))

        assert reply is None
        assert not registry.is_live(KEY, queue)
        mock_llm.complete.assert_not_called()
        assert published[Topic.INBOUND] == []
        assert published[Topic.OUTPUT] == []

    @pytest.mark.asyncio
    async def test_marks_conversation_seen(self, make_agent, transport, published):
        agent = make_agent(transport=transport)

        await agent.handle_inbound(inbound("Hello"))
        await agent.handle_inbound(inbound("from my phone", from_me=True))

        assert transport.seen == [KEY]

    @pytest.mark.asyncio
    async def test_media_only_is_mirrored_but_not_answered(
        self, make_agent, mock_llm, published
    ):
        agent = make_agent()
        voice_note = MediaAttachment(mimetype="audio/ogg; codecs=opus", data="T2dnUw==")

        reply = await agent.handle_inbound(inbound("", media_type="audio", media=voice_note))

        assert reply is None
        assert published[Topic.INBOUND][0]["media_type"] == "audio"
        assert published[Topic.OUTPUT] == []
        mock_llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_image_is_answered(self, make_agent, mock_llm, published, history):
        agent = make_agent()
        photo = MediaAttachment(mimetype="image/png", data="iVBORw0KGgo=")

        reply = await agent.handle_inbound(inbound("", media_type="image", media=photo))

        assert reply == "Test response"
        assert published[Topic.OUTPUT] == [{"key": KEY, "content": "Test response"}]
        content = mock_llm.complete.call_args.kwargs["messages"][0]["content"]
        assert content[0]["source"]["data"] == "iVBORw0KGgo="
        assert history.get(KEY)[0].content == "[image]"

    @pytest.mark.asyncio
    async def test_image_without_data_is_not_answered(self, make_agent, mock_llm, published):
        agent = make_agent()

        reply = await agent.handle_inbound(inbound("", media_type="image"))

        assert reply is None
        mock_llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_superseded_reply_is_dropped(self, make_agent, mock_llm, published):
        gate = asyncio.Event()
        calls = []

        async def complete(messages, system=None, max_tokens=1024):
            calls.append(messages)
            if len(calls) == 1:
                await gate.wait()
                return "stale reply"
            return "fresh reply"

        mock_llm.complete = AsyncMock(side_effect=complete)
        agent = make_agent()

        first = asyncio.create_task(agent.handle_inbound(inbound("are you there?")))
        while not calls:
            await asyncio.sleep(0.01)

        second = await agent.handle_inbound(inbound("hello??"))
        gate.set()
        stale = await first

        assert second == "fresh reply"
        assert stale is None
        assert published[Topic.OUTPUT] == [{"key": KEY, "content": "fresh reply"}]
        assert agent._generations == {}

    @pytest.mark.asyncio
    async def test_finished_conversations_are_not_tracked(self, make_agent, published):
        agent = make_agent()

        for n in range(5):
            await agent.handle_inbound(
                InboundEvent(key=f"2776000000{n}", body="Hello", chat_id=f"2776000000{n}@c.us")
            )
        await agent.handle_inbound(inbound("from my phone", from_me=True))

        assert agent._generations == {}
        assert len(published[Topic.OUTPUT]) == 5

    @pytest.mark.asyncio
    async def test_fallback_reply_when_models_fail(self, make_agent, mock_llm, published):
        mock_llm.complete.side_effect = LLMError("all down")
        agent = make_agent()

        reply = await agent.handle_inbound(inbound("Hello"))

        assert reply == FALLBACK_REPLY
        assert published[Topic.OUTPUT] == [{"key": KEY, "content": FALLBACK_REPLY}]


class TestTasks:
    """Tests for task requests embedded in replies."""

    @pytest.mark.asyncio
    async def test_task_marker_adds_task(self, make_agent, mock_llm, storage, published):
        mock_llm.complete.return_value = "sure thing!\n[TASKADD] buy milk tomorrow at 9am"
        task_manager = Mock()
        task_manager.answer_task_query = AsyncMock(return_value=None)
        task_manager.add_from_text = AsyncMock(
            return_value=Task(id="t1", key=KEY, title="Buy milk")
        )
        agent = make_agent(task_manager=task_manager)

        reply = await agent.handle_inbound(inbound("remind me to buy milk tomorrow at 9am"))

        assert reply == "sure thing!"
        task_manager.add_from_text.assert_awaited_once_with(KEY, "buy milk tomorrow at 9am")
        events = await storage.get_trace_events(event_types=["task_added"])
        assert events[0].data["task_id"] == "t1"

    @pytest.mark.asyncio
    async def test_task_failure_does_not_block_reply(self, make_agent, mock_llm, published):
        mock_llm.complete.return_value = "ok\n[TASKADD] something"
        task_manager = Mock()
        task_manager.answer_task_query = AsyncMock(return_value=None)
        task_manager.add_from_text = AsyncMock(side_effect=RuntimeError("db locked"))
        agent = make_agent(task_manager=task_manager)

        assert await agent.handle_inbound(inbound("remind me")) == "ok"

    @pytest.mark.asyncio
    async def test_task_query_is_answered_without_chat_model(
        self, make_agent, mock_llm, storage, published
    ):
        task_manager = Mock()
        task_manager.answer_task_query = AsyncMock(return_value="1. Gym 🟡")
        agent = make_agent(task_manager=task_manager)

        reply = await agent.handle_inbound(inbound("what are my tasks?"))

        assert reply == "1. Gym 🟡"
        task_manager.answer_task_query.assert_awaited_once_with(KEY, "what are my tasks?")
        mock_llm.complete.assert_not_called()
        assert published[Topic.OUTPUT] == [{"key": KEY, "content": "1. Gym 🟡"}]
        events = await storage.get_trace_events(event_types=["task_query_answered"])
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_failed_task_query_falls_back_to_chat(self, make_agent, published):
        task_manager = Mock()
        task_manager.answer_task_query = AsyncMock(side_effect=RuntimeError("db locked"))
        agent = make_agent(task_manager=task_manager)

        assert await agent.handle_inbound(inbound("what are my tasks?")) == "Test response"


class TestMemories:
    """Tests for memory capture."""

    @pytest.mark.asyncio
    async def test_user_text_and_reply_are_remembered(self, make_agent, storage, published):
        memory = MemoryStore(storage)
        agent = make_agent(memory_store=memory)

        await agent.handle_inbound(inbound("My name is Thabo"))

        memories = await storage.get_memories(KEY)
        assert {m.text for m in memories} == {"Test response", "My name is Thabo"}
        assert [m.text for m in await memory.get_pinned(KEY)] == ["My name is Thabo"]

    @pytest.mark.asyncio
    async def test_classifier_pins_personal_facts(
        self, make_agent, mock_llm, storage, published
    ):
        mock_llm.complete.side_effect = [
            "nice, Durban is lovely",
            "[Important Memory] lives in Durban",
        ]
        memory = MemoryStore(storage)
        agent = make_agent(memory_store=memory)

        await agent.handle_inbound(inbound("I live in Durban"))

        assert [m.text for m in await memory.get_pinned(KEY)] == ["I live in Durban"]

    @pytest.mark.asyncio
    async def test_fallback_reply_is_not_remembered(
        self, make_agent, mock_llm, storage, published
    ):
        mock_llm.complete.side_effect = LLMError("all down")
        agent = make_agent(memory_store=MemoryStore(storage))

        await agent.handle_inbound(inbound("I like sushi"))

        assert [m.text for m in await storage.get_memories(KEY)] == ["I like sushi"]


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_clears_history(self, make_agent, history, published):
        agent = make_agent()
        await agent.handle_inbound(inbound("Hello"))

        agent.reset()

        assert history.get(KEY) == []
