"""Outbound dispatch data models."""

from dataclasses import dataclass
from enum import Enum


class TypingState(str, Enum):
    """Presence signal shown to the other side of a chat."""

    TYPING = "typing"
    IDLE = "idle"


class DispatchState(str, Enum):
    """Lifecycle of a single paced dispatch."""

    IDLE = "idle"
    TYPING = "typing"
    WAITING = "waiting"
    SENDING = "sending"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DispatchState.DONE, DispatchState.CANCELLED, DispatchState.FAILED)


@dataclass
class DispatchOutcome:
    """Result of driving one dispatch to a terminal state."""

    key: str
    state: DispatchState
    sent: int  # fragments handed to the transport or the offline buffer
    total: int
    error: str | None = None
