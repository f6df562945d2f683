"""Tests for LLMProvider."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from relay.errors import LLMError
from relay.llm import FallbackLLMProvider, LLMProvider


class TestLLMProviderInit:
    """Tests for LLMProvider initialization."""

    def test_init_with_api_key(self, monkeypatch):
        """Test initialization with API key."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")

        with patch("relay.llm.llm_provider.anthropic.AsyncAnthropic"):
            provider = LLMProvider()
            assert provider is not None

    def test_init_without_api_key(self, monkeypatch):
        """Test initialization without API key raises error."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with patch("relay.llm.llm_provider.anthropic.AsyncAnthropic"):
            with pytest.raises(Exception):
                LLMProvider()


class TestLLMProviderComplete:
    """Tests for LLMProvider.complete() method."""

    @pytest.mark.asyncio
    async def test_complete_returns_response(self, monkeypatch):
        """Test that complete() returns LLM response."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")

        # Mock Anthropic client
        mock_client = Mock()
        mock_response = Mock()
        mock_response.content = [Mock(text="Test response")]
        mock_client.messages.create = AsyncMock(return_value=mock_response)

        with patch(
            "relay.llm.llm_provider.anthropic.AsyncAnthropic",
            return_value=mock_client,
        ):
            provider = LLMProvider()
            response = await provider.complete(
                messages=[{"role": "user", "content": "Hello"}]
            )

            assert response == "Test response"

    @pytest.mark.asyncio
    async def test_complete_sends_correct_format(self, monkeypatch):
        """Test that complete() sends correct format to API."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")

        mock_client = Mock()
        mock_response = Mock()
        mock_response.content = [Mock(text="Response")]
        mock_client.messages.create = AsyncMock(return_value=mock_response)

        with patch(
            "relay.llm.llm_provider.anthropic.AsyncAnthropic",
            return_value=mock_client,
        ):
            provider = LLMProvider()
            await provider.complete(
                messages=[
                    {"role": "user", "content": "Hello"},
                    {"role": "assistant", "content": "Hi"},
                ],
                system="You are helpful",
                max_tokens=2048,
            )

            # Verify API was called with correct parameters
            mock_client.messages.create.assert_called_once()
            call_args = mock_client.messages.create.call_args

            assert call_args.kwargs["model"] == "claude-3-5-sonnet-20241022"
            assert call_args.kwargs["max_tokens"] == 2048
            assert call_args.kwargs["system"] == "You are helpful"
            assert len(call_args.kwargs["messages"]) == 2

    @pytest.mark.asyncio
    async def test_complete_with_default_params(self, monkeypatch):
        """Test complete() with default parameters."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")

        mock_client = Mock()
        mock_response = Mock()
        mock_response.content = [Mock(text="Default response")]
        mock_client.messages.create = AsyncMock(return_value=mock_response)

        with patch(
            "relay.llm.llm_provider.anthropic.AsyncAnthropic",
            return_value=mock_client,
        ):
            provider = LLMProvider()
            response = await provider.complete(
                messages=[{"role": "user", "content": "Test"}]
            )

            assert response == "Default response"
            call_args = mock_client.messages.create.call_args
            assert call_args.kwargs["max_tokens"] == 1024  # default

    @pytest.mark.asyncio
    async def test_complete_propagates_errors(self, monkeypatch):
        """Test that API errors are propagated."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")

        mock_client = Mock()
        mock_client.messages.create = AsyncMock(
            side_effect=Exception("API Error")
        )

        with patch(
            "relay.llm.llm_provider.anthropic.AsyncAnthropic",
            return_value=mock_client,
        ):
            provider = LLMProvider()

            with pytest.raises(Exception, match="API Error"):
                await provider.complete(
                    messages=[{"role": "user", "content": "Test"}]
                )

    @pytest.mark.asyncio
    async def test_complete_empty_messages(self, monkeypatch):
        """Test complete() with empty messages list."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")

        mock_client = Mock()
        mock_response = Mock()
        mock_response.content = [Mock(text="")]
        mock_client.messages.create = AsyncMock(return_value=mock_response)

        with patch(
            "relay.llm.llm_provider.anthropic.AsyncAnthropic",
            return_value=mock_client,
        ):
            provider = LLMProvider()
            response = await provider.complete(messages=[])

            assert response == ""

    @pytest.mark.asyncio
    async def test_complete_omits_blank_system(self, monkeypatch):
        """Test that an empty system prompt is not sent."""
        mock_client = Mock()
        mock_response = Mock()
        mock_response.content = [Mock(text="ok")]
        mock_client.messages.create = AsyncMock(return_value=mock_response)

        provider = LLMProvider(model="claude-3-5-haiku-20241022", client=mock_client)
        await provider.complete(messages=[{"role": "user", "content": "Hi"}], system="")

        call_args = mock_client.messages.create.call_args
        assert "system" not in call_args.kwargs
        assert call_args.kwargs["model"] == "claude-3-5-haiku-20241022"


def make_provider(result=None, error=None):
    provider = Mock()
    provider.complete = AsyncMock(return_value=result, side_effect=error)
    return provider


class TestFallbackLLMProvider:
    """Tests for FallbackLLMProvider."""

    def test_requires_providers(self):
        with pytest.raises(ValueError):
            FallbackLLMProvider([])

    @pytest.mark.asyncio
    async def test_first_success_wins(self):
        first = make_provider("from first")
        second = make_provider("from second")

        chain = FallbackLLMProvider([first, second])
        result = await chain.complete(messages=[{"role": "user", "content": "Hi"}])

        assert result == "from first"
        second.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_error_falls_through_to_next(self):
        first = make_provider(error=RuntimeError("overloaded"))
        second = make_provider("from second")

        chain = FallbackLLMProvider([first, second])
        result = await chain.complete(
            messages=[{"role": "user", "content": "Hi"}], system="be brief"
        )

        assert result == "from second"
        assert second.complete.call_args.kwargs["system"] == "be brief"

    @pytest.mark.asyncio
    async def test_blank_completion_falls_through(self):
        first = make_provider("   ")
        second = make_provider("real answer")

        chain = FallbackLLMProvider([first, second])

        assert await chain.complete(messages=[]) == "real answer"

    @pytest.mark.asyncio
    async def test_exhausted_chain_raises_llm_error(self):
        chain = FallbackLLMProvider(
            [make_provider(error=RuntimeError("down")), make_provider("")]
        )

        with pytest.raises(LLMError, match="down"):
            await chain.complete(messages=[{"role": "user", "content": "Hi"}])

    def test_from_env_builds_chain_from_models(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")
        monkeypatch.setenv("LLM_MODELS", "model-a, model-b")

        with patch("relay.llm.llm_provider.anthropic.AsyncAnthropic") as client_cls:
            chain = FallbackLLMProvider.from_env()

        client_cls.assert_called_once_with(api_key="test_key")
        assert [p.model for p in chain._providers] == ["model-a", "model-b"]

    def test_from_env_without_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with pytest.raises(ValueError):
            FallbackLLMProvider.from_env()
