"""Discord bridge module."""

from .bridge import DiscordBridge
from .embeds import (
    build_inbound_embed,
    normalize_phone,
    phone_from_channel_name,
    phone_from_footer,
    stalk_channel_name,
)

__all__ = [
    "DiscordBridge",
    "build_inbound_embed",
    "normalize_phone",
    "phone_from_channel_name",
    "phone_from_footer",
    "stalk_channel_name",
]
