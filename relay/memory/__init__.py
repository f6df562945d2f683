"""Memory module."""

from .store import MemoryStore, is_identity_message, relevance, should_skip

__all__ = ["MemoryStore", "is_identity_message", "relevance", "should_skip"]
