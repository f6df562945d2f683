"""LLM module."""

from .llm_provider import FallbackLLMProvider, ILLMProvider, LLMProvider
from .reply import (
    FALLBACK_REPLY,
    GeneratedReply,
    ReplyGenerator,
    clean_reply,
    extract_task_markers,
    image_content,
)

__all__ = [
    "FALLBACK_REPLY",
    "FallbackLLMProvider",
    "GeneratedReply",
    "ILLMProvider",
    "LLMProvider",
    "ReplyGenerator",
    "clean_reply",
    "extract_task_markers",
    "image_content",
]
