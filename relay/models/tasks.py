"""Task and memory data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

Priority = Literal["high", "medium", "low"]


@dataclass
class Task:
    """A to-do item extracted from a conversation."""

    id: str
    key: str
    title: str
    description: str = ""
    due_at: datetime | None = None
    priority: Priority = "medium"
    category: str = "other"
    completed: bool = False
    created_at: datetime | None = None


@dataclass
class Memory:
    """A remembered piece of conversation text."""

    id: int
    key: str
    text: str
    pinned: bool
    created_at: datetime
    score: float = 0.0
