"""HTTP client for a WhatsApp Web bridge process."""

import re

import httpx

from ..errors import TransportError
from ..logging_config import get_logger
from ..models import TypingState
from .base import ReadyCallback

logger = get_logger(__name__)

_NON_DIGITS = re.compile(r"\D")


def conversation_key(chat_id: str) -> str:
    """
    Conversation key for a WhatsApp chat id.

    One-to-one chats (`<digits>@c.us`) are keyed by the phone number. Groups
    and other chat kinds keep the full id so replies go back to the same chat.
    """
    user, _, server = chat_id.partition("@")
    if not user:
        return ""
    if server in ("", "c.us"):
        return user
    return chat_id


def chat_id_for(key: str) -> str:
    """Map a conversation key (phone number or chat id) to a WhatsApp chat id."""
    if "@" in key:
        return key
    return f"{_NON_DIGITS.sub('', key)}@c.us"


class WhatsAppBridgeTransport:
    """
    ITransport over the bridge's HTTP API.

    The bridge owns the WhatsApp Web session. It reports connection changes
    to our status webhook, which calls mark_ready / mark_disconnected.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout
        )
        self._ready = False
        self._callbacks: list[ReadyCallback] = []

    async def send_fragment(self, key: str, text: str) -> None:
        chat_id = chat_id_for(key)
        try:
            response = await self._client.post(
                "/send", json={"chatId": chat_id, "text": text}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to send to {chat_id}: {e}", key=key) from e
        logger.info(f"Sent {len(text)} chars", extra={"conversation": key})

    async def set_typing_state(self, key: str, state: TypingState) -> None:
        try:
            response = await self._client.post(
                "/chat-state", json={"chatId": chat_id_for(key), "state": state.value}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to set chat state: {e}", key=key) from e

    async def send_seen(self, key: str) -> None:
        """Mark the chat as read. Best-effort."""
        try:
            response = await self._client.post("/seen", json={"chatId": chat_id_for(key)})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.debug(f"Failed to mark {key} as seen: {e}")

    def is_ready(self) -> bool:
        return self._ready

    def on_ready(self, callback: ReadyCallback) -> None:
        self._callbacks.append(callback)

    async def mark_ready(self) -> None:
        """Record that the bridge is connected; runs on_ready callbacks on transition."""
        if self._ready:
            return
        self._ready = True
        logger.info("WhatsApp bridge is ready")
        for callback in list(self._callbacks):
            try:
                await callback()
            except Exception as e:
                logger.error(f"Ready callback failed: {e}", exc_info=True)

    def mark_disconnected(self, reason: str | None = None) -> None:
        if self._ready:
            logger.warning(f"WhatsApp bridge disconnected: {reason or 'unknown'}")
        self._ready = False

    async def close(self) -> None:
        await self._client.aclose()
