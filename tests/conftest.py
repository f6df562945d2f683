"""Pytest configuration and fixtures."""

import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from relay.errors import TransportError  # noqa: E402


class FakeTransport:
    """In-memory ITransport that records every call."""

    def __init__(self, ready: bool = True):
        self.ready = ready
        self.sent: list[tuple[str, str]] = []
        self.states: list[tuple[str, object]] = []
        self.fail_on: set[str] = set()
        self.fail_typing = False
        self.seen: list[str] = []
        self._callbacks = []

    async def send_fragment(self, key: str, text: str) -> None:
        if text in self.fail_on:
            raise TransportError(f"refused: {text}", key=key)
        self.sent.append((key, text))

    async def set_typing_state(self, key, state) -> None:
        if self.fail_typing:
            raise TransportError("chat state failed", key=key)
        self.states.append((key, state))

    async def send_seen(self, key: str) -> None:
        self.seen.append(key)

    def is_ready(self) -> bool:
        return self.ready

    def on_ready(self, callback) -> None:
        self._callbacks.append(callback)

    async def mark_ready(self) -> None:
        if self.ready:
            return
        self.ready = True
        for callback in self._callbacks:
            await callback()

    def mark_disconnected(self, reason=None) -> None:
        self.ready = False

    def texts(self, key: str | None = None) -> list[str]:
        return [text for k, text in self.sent if key is None or k == key]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and only yields."""

    def __init__(self):
        self.delays: list[float] = []
        self.hooks: dict[int, object] = {}  # call index -> callable run before yielding

    async def __call__(self, delay: float) -> None:
        index = len(self.delays)
        self.delays.append(delay)
        hook = self.hooks.get(index)
        if hook is not None:
            hook()
        await asyncio.sleep(0)


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from relay.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def event_bus(storage):
    """Create EventBus with storage."""
    from relay.event_bus import EventBus

    return EventBus(storage)


@pytest.fixture
def tracker(storage, event_bus):
    """Create Tracker with storage and event bus."""
    from relay.tracker import Tracker

    return Tracker(event_bus=event_bus, storage=storage)


@pytest.fixture
def mock_llm():
    """Create mock LLM provider."""
    llm = Mock()
    llm.complete = AsyncMock(return_value="Test response")
    return llm


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def settings():
    from relay.config import DispatchSettings

    return DispatchSettings()


@pytest.fixture
def registry():
    from relay.dispatch import DeliveryRegistry

    return DeliveryRegistry()


@pytest.fixture
def offline_buffer():
    from relay.dispatch import OfflineBuffer

    return OfflineBuffer()


@pytest.fixture
def scheduler(registry, transport, offline_buffer, settings, sleep):
    """PacingScheduler wired to the fake transport with instant sleeps."""
    import random

    from relay.dispatch import PacingScheduler

    return PacingScheduler(
        registry,
        transport,
        offline_buffer,
        settings=settings,
        rng=random.Random(42),
        sleep=sleep,
    )


@pytest.fixture
def fast_settings():
    """Dispatch settings with no typing delays."""
    from relay.config import DispatchSettings

    return DispatchSettings(
        typing_delay_min=0.0,
        typing_delay_max=0.0,
        single_delay_min=0.0,
        single_delay_max=0.0,
    )


@pytest.fixture
def make_application(mock_llm, transport, fast_settings):
    """Factory for an unstarted Application wired to test doubles."""
    from relay.app import Application

    def factory(db_path=":memory:", settings=None):
        return Application(
            db_path=db_path,
            llm_provider=mock_llm,
            transport=transport,
            settings=settings or fast_settings,
            enable_discord=False,
        )

    return factory


@pytest_asyncio.fixture
async def application(make_application):
    """A started Application."""
    app = make_application()
    await app.start()
    yield app
    await app.stop()
