"""Tests for OutputRouter."""

import asyncio
from datetime import datetime, timezone

import pytest

from relay.config import DispatchSettings
from relay.models import BusMessage, Topic
from relay.output_router import OutputRouter, plan_fragments


LONG_REPLY = (
    "I went to the market this morning and it was packed. "
    "They had the best strawberries I have seen all year! "
    "Want me to bring some over tonight?"
)


class TestPlanFragments:
    """Tests for plan_fragments()."""

    def test_blank_reply_has_no_fragments(self, settings):
        assert plan_fragments("", settings) == []
        assert plan_fragments("  \n ", settings) == []

    def test_short_reply_is_sent_whole_with_whitespace_collapsed(self, settings):
        assert plan_fragments("sure,\n  see you   then. Bye!", settings) == [
            "sure, see you then. Bye!"
        ]

    def test_long_single_sentence_is_not_split(self, settings):
        text = "word " * 40
        assert len(text) > settings.split_min_length

        assert plan_fragments(text, settings) == [text.strip()]

    def test_long_multi_sentence_reply_is_segmented(self):
        settings = DispatchSettings(fragment_max_length=60)

        fragments = plan_fragments(LONG_REPLY, settings)

        assert fragments == [
            "I went to the market this morning and it was packed.",
            "They had the best strawberries I have seen all year!",
            "Want me to bring some over tonight?",
        ]

    def test_split_threshold_is_configurable(self):
        settings = DispatchSettings(split_min_length=1000)

        assert plan_fragments(LONG_REPLY, settings) == [LONG_REPLY]


class TestOutputRouterRoute:
    """Tests for OutputRouter.route()."""

    @pytest.mark.asyncio
    async def test_route_starts_paced_delivery(self, event_bus, scheduler, tracker, transport):
        router = OutputRouter(event_bus, scheduler, tracker)

        fragments = await router.route("k", "see you soon")
        await asyncio.gather(*scheduler._tasks)

        assert fragments == ["see you soon"]
        assert transport.texts("k") == ["see you soon"]

    @pytest.mark.asyncio
    async def test_route_tracks_event(self, event_bus, scheduler, tracker, storage):
        router = OutputRouter(event_bus, scheduler, tracker)

        await router.route("k", "hello")
        await scheduler.stop()

        events = await storage.get_trace_events(
            event_types=["output_routed"], actor="output_router"
        )
        assert len(events) == 1
        assert events[0].data["key"] == "k"
        assert events[0].data["fragment_count"] == 1

    @pytest.mark.asyncio
    async def test_route_blank_content_sends_nothing(self, event_bus, scheduler, tracker, registry):
        router = OutputRouter(event_bus, scheduler, tracker)

        assert await router.route("k", "   ") == []
        assert "k" not in registry
        assert scheduler.running == 0


class TestOutputRouterBus:
    """Tests for OUTPUT topic handling."""

    @pytest.mark.asyncio
    async def test_start_subscribes_and_stop_unsubscribes(self, event_bus, scheduler, tracker):
        router = OutputRouter(event_bus, scheduler, tracker)

        await router.start()
        assert router._handle_output in event_bus._subscribers[Topic.OUTPUT]

        await router.stop()
        assert router._handle_output not in event_bus._subscribers[Topic.OUTPUT]

    @pytest.mark.asyncio
    async def test_published_output_is_delivered(self, event_bus, scheduler, tracker, transport):
        router = OutputRouter(event_bus, scheduler, tracker)
        await router.start()

        await event_bus.publish(
            BusMessage(
                id="bus1",
                topic=Topic.OUTPUT,
                payload={"key": "27761234567", "content": "on my way"},
                source="conversation_agent",
                timestamp=datetime.now(timezone.utc),
            )
        )
        await asyncio.gather(*scheduler._tasks)

        assert transport.texts("27761234567") == ["on my way"]

    @pytest.mark.asyncio
    async def test_output_without_key_is_ignored(self, event_bus, scheduler, tracker, transport):
        router = OutputRouter(event_bus, scheduler, tracker)
        await router.start()

        await event_bus.publish(
            BusMessage(
                id="bus1",
                topic=Topic.OUTPUT,
                payload={"content": "orphan"},
                source="test",
                timestamp=datetime.now(timezone.utc),
            )
        )

        assert scheduler.running == 0
        assert transport.sent == []
