"""Core data models for the relay service."""

from .messages import HistoryEntry, InboundEvent, MediaAttachment
from .agents import BusMessage, Topic
from .dispatch import DispatchOutcome, DispatchState, TypingState
from .tasks import Memory, Task
from .tracing import TraceEvent

__all__ = [
    # Messages
    "InboundEvent",
    "HistoryEntry",
    "MediaAttachment",
    # Bus
    "BusMessage",
    "Topic",
    # Dispatch
    "DispatchOutcome",
    "DispatchState",
    "TypingState",
    # Tasks
    "Task",
    "Memory",
    # Tracing
    "TraceEvent",
]
