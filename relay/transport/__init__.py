"""Chat transports."""

from .base import ITransport, ReadyCallback
from .whatsapp import WhatsAppBridgeTransport, chat_id_for, conversation_key

__all__ = [
    "ITransport",
    "ReadyCallback",
    "WhatsAppBridgeTransport",
    "chat_id_for",
    "conversation_key",
]
