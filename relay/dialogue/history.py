"""ConversationHistory implementation."""

from collections import deque

from ..models import HistoryEntry

MAX_HISTORY_LENGTH = 10


class ConversationHistory:
    """Recent turns per conversation key, oldest dropped first."""

    def __init__(self, max_length: int = MAX_HISTORY_LENGTH):
        self._max_length = max_length
        self._histories: dict[str, deque[HistoryEntry]] = {}

    def add(self, key: str, role: str, content: str) -> None:
        """Append a turn to the history of `key`."""
        history = self._histories.get(key)
        if history is None:
            history = self._histories[key] = deque(maxlen=self._max_length)
        history.append(HistoryEntry(role=role, content=content))

    def get(self, key: str) -> list[HistoryEntry]:
        """Get a copy of the turns for `key`."""
        return list(self._histories.get(key, ()))

    def format(self, key: str) -> str:
        return "\n".join(
            f"{'User' if entry.role == 'user' else 'Assistant'}: {entry.content}"
            for entry in self.get(key)
        )

    def clear(self, key: str | None = None) -> None:
        """Clear one conversation, or all of them."""
        if key is None:
            self._histories.clear()
        else:
            self._histories.pop(key, None)
