"""Dialogue module."""

from .agent import ConversationAgent, IConversationAgent
from .history import ConversationHistory

__all__ = ["ConversationAgent", "IConversationAgent", "ConversationHistory"]
