"""
STOCKCOUNT LLM Client Tests

Tests for token accounting, the mock backend and backend fallback.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from stockcount.exceptions import LLMTransportError
from stockcount.llm_client import (
    AnthropicClient,
    LLMBackend,
    LLMClient,
    LLMResponse,
    MockLLMClient,
    OpenAIClient,
    TokenUsage,
    create_llm_client,
)


class TestTokenUsage:

    def test_add_tracks_last_and_session(self):
        usage = TokenUsage()
        usage.add(100, 20)
        usage.add(50, 10)
        assert usage.total_tokens == 60
        assert usage.session_total_tokens == 180
        assert usage.to_dict()["session_prompt_tokens"] == 150


class TestMockLLMClient:

    @pytest.mark.asyncio
    async def test_queued_responses(self):
        client = MockLLMClient(["first", LLMResponse(content="second")])
        assert (await client.chat([])).content == "first"
        assert (await client.chat([])).content == "second"
        assert client.call_count == 2

    @pytest.mark.asyncio
    async def test_empty_queue_returns_no_commands(self):
        assert (await MockLLMClient().chat([])).content == '{"commands": []}'

    @pytest.mark.asyncio
    async def test_queued_exception_raised(self):
        client = MockLLMClient()
        client.set_response(LLMTransportError("boom"))
        with pytest.raises(LLMTransportError):
            await client.chat([])


class TestProviderClients:
    """Provider clients without credentials or network."""

    @pytest.mark.asyncio
    async def test_openai_without_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        client = OpenAIClient()
        assert not await client.health_check()
        with pytest.raises(LLMTransportError):
            await client.chat([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_openai_json_mode(self):
        client = OpenAIClient(api_key="test")
        completion = MagicMock()
        completion.choices = [MagicMock()]
        completion.choices[0].message.content = '{"commands": []}'
        completion.choices[0].finish_reason = "stop"
        completion.usage.prompt_tokens = 12
        completion.usage.completion_tokens = 4
        client._client = MagicMock()
        client._client.chat.completions.create = AsyncMock(return_value=completion)

        response = await client.chat([{"role": "user", "content": "add milk"}], json_mode=True)

        assert response.content == '{"commands": []}'
        assert response.usage.total_tokens == 16
        kwargs = client._client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_anthropic_splits_system_prompt(self):
        client = AnthropicClient(api_key="test")
        block = MagicMock(type="text", text='{"commands": []}')
        message = MagicMock(content=[block], stop_reason="end_turn")
        message.usage.input_tokens = 30
        message.usage.output_tokens = 5
        client._client = MagicMock()
        client._client.messages.create = AsyncMock(return_value=message)

        await client.chat(
            [{"role": "system", "content": "extract"}, {"role": "user", "content": "add milk"}],
            json_mode=True,
        )

        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["system"].startswith("extract")
        assert kwargs["messages"] == [{"role": "user", "content": "add milk"}]

    @pytest.mark.asyncio
    async def test_provider_failure_is_transport_error(self):
        client = OpenAIClient(api_key="test")
        client._client = MagicMock()
        client._client.chat.completions.create = AsyncMock(side_effect=RuntimeError("503"))
        with pytest.raises(LLMTransportError):
            await client.chat([])


class TestLLMClient:
    """Tests for backend fallback."""

    @pytest.mark.asyncio
    async def test_primary_backend(self):
        client = create_llm_client("mock")
        client.register_client(LLMBackend.MOCK, MockLLMClient(['{"commands": []}']))
        assert (await client.chat([])).content == '{"commands": []}'

    @pytest.mark.asyncio
    async def test_falls_back(self):
        client = LLMClient(LLMBackend.OPENAI, fallback_backends=[LLMBackend.MOCK])
        client.register_client(LLMBackend.OPENAI, MockLLMClient([LLMTransportError("down")]))
        client.register_client(LLMBackend.MOCK, MockLLMClient(["from fallback"]))

        assert (await client.chat([])).content == "from fallback"

    @pytest.mark.asyncio
    async def test_all_backends_fail(self):
        client = LLMClient(LLMBackend.OPENAI, fallback_backends=[LLMBackend.ANTHROPIC])
        client.register_client(LLMBackend.OPENAI, MockLLMClient([LLMTransportError("down")]))
        client.register_client(LLMBackend.ANTHROPIC, MockLLMClient([LLMTransportError("also down")]))

        with pytest.raises(LLMTransportError) as exc_info:
            await client.chat([])
        assert "also down" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_token_usage_accumulates(self):
        usage = TokenUsage()
        usage.add(10, 5)
        client = create_llm_client("mock")
        client.register_client(
            LLMBackend.MOCK, MockLLMClient([LLMResponse("{}", usage=usage), LLMResponse("{}", usage=usage)])
        )
        await client.chat([])
        await client.chat([])
        assert client.get_token_usage()["session_total_tokens"] == 30

    @pytest.mark.asyncio
    async def test_health_check(self):
        client = create_llm_client("mock")
        assert await client.health_check()
