"""Message-related data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Image types the chat model accepts as input
IMAGE_MIMETYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})


@dataclass
class MediaAttachment:
    """Downloaded media carried with an inbound message."""

    mimetype: str  # e.g. "image/jpeg"
    data: str  # base64

    @property
    def media_type(self) -> str:
        """Mimetype without parameters, lowercased."""
        return self.mimetype.split(";", 1)[0].strip().lower()

    @property
    def kind(self) -> str:
        return self.media_type.split("/", 1)[0]

    @property
    def is_image(self) -> bool:
        return self.media_type in IMAGE_MIMETYPES


@dataclass
class InboundEvent:
    """A message that arrived from the chat transport."""

    key: str  # conversation key: sender phone digits or chat id
    body: str
    chat_id: str = ""
    sender_name: str = ""
    message_id: str | None = None
    from_me: bool = False
    is_group: bool = False
    media_type: str | None = None  # "image", "audio", "video", ...
    quoted_body: str | None = None
    media: MediaAttachment | None = None
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def has_text(self) -> bool:
        return bool(self.body and self.body.strip())

    @property
    def image(self) -> MediaAttachment | None:
        """The attached image, if the chat model can look at it."""
        if self.media is not None and self.media.is_image:
            return self.media
        return None


@dataclass
class HistoryEntry:
    """A single turn in a conversation history."""

    role: Literal["user", "assistant"]
    content: str
