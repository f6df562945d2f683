"""WhatsApp relay with paced, interruptible replies."""

from .app import Application, IApplication
from .config import DispatchSettings
from .dialogue import ConversationAgent, ConversationHistory
from .dispatch import (
    DeliveryRegistry,
    InterruptionController,
    OfflineBuffer,
    PacingScheduler,
    segment,
)
from .event_bus import EventBus, IEventBus
from .llm import FallbackLLMProvider, ILLMProvider, LLMProvider, ReplyGenerator
from .models import (
    BusMessage,
    DispatchOutcome,
    DispatchState,
    InboundEvent,
    Topic,
    TraceEvent,
    TypingState,
)
from .output_router import IOutputRouter, OutputRouter
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker
from .transport import ITransport, WhatsAppBridgeTransport

__all__ = [
    # Application
    "Application",
    "IApplication",
    "DispatchSettings",
    # Models
    "BusMessage",
    "DispatchOutcome",
    "DispatchState",
    "InboundEvent",
    "Topic",
    "TraceEvent",
    "TypingState",
    # Dispatch core
    "DeliveryRegistry",
    "InterruptionController",
    "OfflineBuffer",
    "PacingScheduler",
    "segment",
    # Components
    "IStorage",
    "Storage",
    "IEventBus",
    "EventBus",
    "ITracker",
    "Tracker",
    "ILLMProvider",
    "LLMProvider",
    "FallbackLLMProvider",
    "ReplyGenerator",
    "ConversationAgent",
    "ConversationHistory",
    "IOutputRouter",
    "OutputRouter",
    "ITransport",
    "WhatsAppBridgeTransport",
]
