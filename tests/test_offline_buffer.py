"""Tests for OfflineBuffer."""

import pytest

from relay.dispatch import OfflineBuffer


def make_action(log: list, label: str, fail: bool = False):
    async def action():
        if fail:
            raise RuntimeError(f"{label} failed")
        log.append(label)

    return action


class TestDefer:
    """Tests for defer_if_not_ready()."""

    @pytest.mark.asyncio
    async def test_runs_immediately_when_ready(self, offline_buffer):
        log = []

        buffered = await offline_buffer.defer_if_not_ready(True, make_action(log, "a"))

        assert buffered is False
        assert log == ["a"]
        assert len(offline_buffer) == 0

    @pytest.mark.asyncio
    async def test_buffers_when_not_ready(self, offline_buffer):
        log = []

        buffered = await offline_buffer.defer_if_not_ready(False, make_action(log, "a"))

        assert buffered is True
        assert log == []
        assert len(offline_buffer) == 1

    @pytest.mark.asyncio
    async def test_immediate_errors_propagate(self, offline_buffer):
        with pytest.raises(RuntimeError, match="a failed"):
            await offline_buffer.defer_if_not_ready(True, make_action([], "a", fail=True))


class TestFlush:
    """Tests for flush()."""

    @pytest.mark.asyncio
    async def test_flush_runs_fifo_exactly_once(self, offline_buffer):
        log = []
        for label in ("first", "second", "third"):
            await offline_buffer.defer_if_not_ready(False, make_action(log, label))

        assert await offline_buffer.flush() == 3
        assert log == ["first", "second", "third"]

        assert await offline_buffer.flush() == 0
        assert log == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_failed_action_does_not_stop_flush(self, offline_buffer):
        log = []
        await offline_buffer.defer_if_not_ready(False, make_action(log, "a"))
        await offline_buffer.defer_if_not_ready(False, make_action(log, "b", fail=True))
        await offline_buffer.defer_if_not_ready(False, make_action(log, "c"))

        assert await offline_buffer.flush() == 3
        assert log == ["a", "c"]
        assert len(offline_buffer) == 0

    @pytest.mark.asyncio
    async def test_actions_deferred_during_flush_wait_for_next_flush(self):
        buffer = OfflineBuffer()
        log = []

        async def requeue():
            log.append("outer")
            await buffer.defer_if_not_ready(False, make_action(log, "inner"))

        await buffer.defer_if_not_ready(False, requeue)

        assert await buffer.flush() == 1
        assert log == ["outer"]
        assert len(buffer) == 1

        assert await buffer.flush() == 1
        assert log == ["outer", "inner"]

    @pytest.mark.asyncio
    async def test_clear_discards_pending(self, offline_buffer):
        log = []
        await offline_buffer.defer_if_not_ready(False, make_action(log, "a"))

        assert offline_buffer.clear() == 1
        assert await offline_buffer.flush() == 0
        assert log == []

    @pytest.mark.asyncio
    async def test_ready_sends_during_flush_queue_behind_older_entries(self):
        buffer = OfflineBuffer()
        log = []

        async def first():
            log.append("old 1")
            # Transport is back, a new dispatch sends while the backlog drains
            buffered = await buffer.defer_if_not_ready(True, make_action(log, "new"))
            assert buffered is True

        await buffer.defer_if_not_ready(False, first)
        await buffer.defer_if_not_ready(False, make_action(log, "old 2"))

        assert await buffer.flush() == 3
        assert log == ["old 1", "old 2", "new"]
        assert len(buffer) == 0

        assert await buffer.defer_if_not_ready(True, make_action(log, "later")) is False
        assert log[-1] == "later"
