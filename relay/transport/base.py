"""Transport interface consumed by the dispatch core."""

from typing import Awaitable, Callable, Protocol

from ..models import TypingState

ReadyCallback = Callable[[], Awaitable[object]]


class ITransport(Protocol):
    """A chat connection that can deliver text to a conversation key."""

    async def send_fragment(self, key: str, text: str) -> None:
        """Deliver one message. Raises TransportError on failure."""
        ...

    async def set_typing_state(self, key: str, state: TypingState) -> None:
        """Show typing/idle presence. Best-effort; callers ignore failures."""
        ...

    async def send_seen(self, key: str) -> None:
        """Mark the conversation as read. Best-effort; never raises."""
        ...

    def is_ready(self) -> bool:
        """Whether sends can go out right now."""
        ...

    def on_ready(self, callback: ReadyCallback) -> None:
        """Register a callback run on every not-ready to ready transition."""
        ...
