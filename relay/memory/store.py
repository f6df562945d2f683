"""Long-term conversation memories with pinning and relevance lookup."""

import re

from ..logging_config import get_logger
from ..models import Memory
from ..storage import IStorage

logger = get_logger(__name__)

DEFAULT_KEEP = 10000

_IDENTITY_PATTERNS = [
    re.compile(r"^(?:i'?m|i am|my name is|call me)\s+", re.IGNORECASE),
    re.compile(r"^(?:this is|it's me)\s+", re.IGNORECASE),
]

_SKIP_SUBSTRINGS = (
    "sorry, there was an error",
    "sorry, i could not generate",
    "memory search results for",
    "rate limited",
    "error with the ai service",
)
_SKIP_PREFIXES = ("[AI]", "[System]")

_WORD = re.compile(r"[a-z0-9']+")
_STOPWORDS = frozenset(
    "a an and are as at be but by do for from has have i in is it me my of on or "
    "so that the this to was we what you your".split()
)


def is_identity_message(text: str) -> bool:
    stripped = text.strip()
    return any(pattern.match(stripped) for pattern in _IDENTITY_PATTERNS)


def should_skip(text: str) -> bool:
    """Error replies and system chatter never become memories."""
    stripped = text.strip()
    if not stripped:
        return True
    lower = stripped.lower()
    return stripped.startswith(_SKIP_PREFIXES) or any(s in lower for s in _SKIP_SUBSTRINGS)


def _terms(text: str) -> set[str]:
    return {word for word in _WORD.findall(text.lower()) if word not in _STOPWORDS}


def relevance(query: str, text: str) -> float:
    """Share of the query's terms that also appear in `text`."""
    query_terms = _terms(query)
    if not query_terms:
        return 0.0
    return len(query_terms & _terms(text)) / len(query_terms)


class MemoryStore:
    """Stores memories per conversation and builds prompt context from them."""

    def __init__(self, storage: IStorage, keep: int = DEFAULT_KEEP):
        self._storage = storage
        self._keep = keep

    async def add_memory(self, key: str, text: str, pinned: bool = False) -> int | None:
        """
        Remember `text` for `key`.

        Identity statements ("my name is ...", "call me ...") are pinned
        automatically. Returns the new memory id, or None when skipped.
        """
        if should_skip(text):
            return None
        pin = pinned or is_identity_message(text)
        memory_id = await self._storage.add_memory(key, text.strip(), pinned=pin)
        if pin:
            logger.info("Pinned memory", extra={"conversation": key})
        return memory_id

    async def get_pinned(self, key: str) -> list[Memory]:
        return await self._storage.get_memories(key, pinned=True)

    async def search(self, key: str, query: str, limit: int = 5) -> list[Memory]:
        """Non-pinned memories ranked by relevance, newest first on ties."""
        scored = []
        for memory in await self._storage.get_memories(key, pinned=False):
            memory.score = relevance(query, memory.text)
            if memory.score > 0:
                scored.append(memory)
        scored.sort(key=lambda m: (m.score, m.id), reverse=True)
        return scored[:limit]

    async def get_memory_context(self, key: str, query: str, limit: int = 10) -> list[Memory]:
        """Pinned memories first, then the most relevant others, up to `limit`."""
        pinned = await self.get_pinned(key)
        remaining = max(limit - len(pinned), 0)
        relevant = await self.search(key, query, remaining) if remaining else []
        return pinned + relevant

    async def cleanup(self, keep: int | None = None) -> int:
        """Drop the oldest non-pinned memories beyond `keep`."""
        deleted = await self._storage.delete_oldest_memories(keep or self._keep)
        if deleted:
            logger.info(f"Cleaned {deleted} old memories")
        return deleted
