"""LLM Provider implementation using Anthropic Claude API."""

import os
from typing import Protocol, Sequence

import anthropic

from ..config import llm_models_from_env
from ..errors import LLMError
from ..logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MODELS = ("claude-3-5-sonnet-20241022", "claude-3-5-haiku-20241022")


class ILLMProvider(Protocol):
    """Abstraction for LLM access."""

    async def complete(
        self,
        messages: list[dict],  # [{"role": "user", "content": "..."}]
        system: str | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """Generate completion."""
        ...


class LLMProvider:
    """Anthropic Claude API provider for a single model."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODELS[0],
        client: anthropic.AsyncAnthropic | None = None,
    ):
        if client is None:
            api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
            if not api_key:
                raise ValueError("ANTHROPIC_API_KEY environment variable not set")
            client = anthropic.AsyncAnthropic(api_key=api_key)

        self._model = model
        self._client = client

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """Generate completion using Claude API."""
        kwargs = {"model": self._model, "messages": messages, "max_tokens": max_tokens}
        if system:
            kwargs["system"] = system
        try:
            response = await self._client.messages.create(**kwargs)
        except Exception as e:
            # Re-raise for handling by caller
            raise RuntimeError(f"LLM API error ({self._model}): {e}") from e

        # Only text blocks carry a `text` attribute
        return "".join(getattr(block, "text", "") for block in response.content)


class FallbackLLMProvider:
    """
    Tries providers in priority order.

    A provider that raises or returns blank text hands over to the next one;
    LLMError is raised only when the whole chain is exhausted.
    """

    def __init__(self, providers: Sequence[ILLMProvider]):
        if not providers:
            raise ValueError("FallbackLLMProvider needs at least one provider")
        self._providers = list(providers)

    @classmethod
    def from_env(cls, api_key: str | None = None) -> "FallbackLLMProvider":
        """Build the chain from LLM_MODELS, sharing one Anthropic client."""
        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")
        client = anthropic.AsyncAnthropic(api_key=api_key)
        return cls(
            [
                LLMProvider(model=model, client=client)
                for model in llm_models_from_env(DEFAULT_MODELS)
            ]
        )

    async def complete(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 1024,
    ) -> str:
        errors = []
        for index, provider in enumerate(self._providers):
            try:
                text = await provider.complete(
                    messages=messages, system=system, max_tokens=max_tokens
                )
            except Exception as e:
                logger.warning(f"Provider {index} failed, trying next: {e}")
                errors.append(str(e))
                continue
            if text and text.strip():
                return text
            logger.warning(f"Provider {index} returned an empty completion")
            errors.append("empty completion")

        raise LLMError(f"All {len(self._providers)} LLM providers failed: {'; '.join(errors)}")
