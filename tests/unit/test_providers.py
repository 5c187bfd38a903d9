"""Unit tests for provider adapters."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from llm_relay.models.responses import CompletionResponse
from llm_relay.models.specs import CompletionRequest, ProviderModelSpec
from llm_relay.providers.anthropic import AnthropicMessagesAdapter, extract_text, split_system
from llm_relay.providers.base import CallableAdapter, ProviderError, ResponseParseError
from llm_relay.providers.openai import OpenAIChatAdapter, build_messages
from llm_relay.providers.usage import normalize_usage, usage_to_dict


def _spec(provider="openai", model="gpt-4o-mini", cost=0.001):
    return ProviderModelSpec(
        provider=provider, model=model, capabilities={"chat": 8},
        cost_per_1k_tokens=cost, max_context=128000,
    )


class TestBuildMessages:

    def test_string_prompt(self):
        assert build_messages("Hello") == [{"role": "user", "content": "Hello"}]

    def test_message_list_is_copied(self):
        messages = [{"role": "system", "content": "Be brief"}, {"role": "user", "content": "Hi"}]
        built = build_messages(messages)
        assert built == messages
        assert built[0] is not messages[0]

    def test_messages_dict(self):
        assert build_messages({"messages": [{"role": "user", "content": "Hi"}]}) == [
            {"role": "user", "content": "Hi"}
        ]

    def test_unsupported_payload(self):
        with pytest.raises(ProviderError) as exc_info:
            build_messages(42)
        assert exc_info.value.status_code == 400


class TestOpenAIChatAdapter:
    """Test OpenAI adapter."""

    @pytest.fixture
    def adapter(self):
        with patch.dict('os.environ', {'OPENAI_API_KEY': 'test-key'}):
            return OpenAIChatAdapter()

    @pytest.mark.asyncio
    async def test_dispatch_simple_prompt(self, adapter, mock_openai_client):
        adapter._client = mock_openai_client
        request = CompletionRequest(payload="Test prompt", parameters={"temperature": 0.7})

        response = await adapter.dispatch(request, _spec())

        assert response.output == "Test response"
        assert response.model == "gpt-4o-mini"
        assert response.provider == "openai"
        assert response.usage["total_tokens"] == 15
        assert response.finish_reason == "stop"

        call_kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert call_kwargs["model"] == "gpt-4o-mini"
        assert call_kwargs["temperature"] == 0.7
        assert call_kwargs["messages"] == [{"role": "user", "content": "Test prompt"}]
        assert "extra_headers" not in call_kwargs

    @pytest.mark.asyncio
    async def test_idempotency_key_sent_as_header(self, adapter, mock_openai_client):
        adapter._client = mock_openai_client
        request = CompletionRequest(payload="charge", idempotency_key="order-9")

        await adapter.dispatch(request, _spec())

        call_kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert call_kwargs["extra_headers"] == {"Idempotency-Key": "order-9"}

    @pytest.mark.asyncio
    async def test_idempotency_header_leaves_caller_headers_untouched(self, adapter, mock_openai_client):
        adapter._client = mock_openai_client
        request = CompletionRequest(
            payload="charge",
            idempotency_key="order-9",
            parameters={"extra_headers": {"X-Trace": "1"}},
        )

        await adapter.dispatch(request, _spec())
        await adapter.dispatch(request, _spec())

        call_kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert call_kwargs["extra_headers"] == {"X-Trace": "1", "Idempotency-Key": "order-9"}
        assert request.parameters["extra_headers"] == {"X-Trace": "1"}

    @pytest.mark.asyncio
    async def test_empty_choices_is_parse_error(self, adapter, mock_openai_client):
        mock_openai_client.chat.completions.create.return_value.choices = []
        adapter._client = mock_openai_client

        with pytest.raises(ResponseParseError):
            await adapter.dispatch(CompletionRequest(payload="x"), _spec())

    @pytest.mark.asyncio
    async def test_missing_content_is_parse_error(self, adapter, mock_openai_client):
        completion = mock_openai_client.chat.completions.create.return_value
        completion.choices = [Mock(message=Mock(content=None, tool_calls=None), finish_reason="stop")]
        adapter._client = mock_openai_client

        with pytest.raises(ResponseParseError):
            await adapter.dispatch(CompletionRequest(payload="x"), _spec())

    def test_missing_key_is_auth_failure(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        adapter = OpenAIChatAdapter()

        with pytest.raises(ProviderError) as exc_info:
            adapter.client
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_refresh_picks_up_rotated_key(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "old-key")
        adapter = OpenAIChatAdapter()

        assert not await adapter.refresh_credentials()

        monkeypatch.setenv("OPENAI_API_KEY", "new-key")
        assert await adapter.refresh_credentials()
        assert adapter.client.api_key == "new-key"


class TestAnthropicMessagesAdapter:
    """Test Anthropic adapter."""

    @pytest.fixture
    def adapter(self):
        with patch.dict('os.environ', {'ANTHROPIC_API_KEY': 'test-key'}):
            return AnthropicMessagesAdapter()

    @pytest.mark.asyncio
    async def test_dispatch_with_system_prompt(self, adapter, mock_anthropic_client):
        adapter._client = mock_anthropic_client
        request = CompletionRequest(payload=[
            {"role": "system", "content": "You are helpful"},
            {"role": "user", "content": "Hello"},
        ])

        response = await adapter.dispatch(request, _spec("anthropic", "claude-3-5-haiku-latest"))

        assert response.output == "Test response"
        assert response.finish_reason == "end_turn"
        assert response.usage == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}

        call_kwargs = mock_anthropic_client.messages.create.call_args.kwargs
        assert call_kwargs["system"] == "You are helpful"
        assert call_kwargs["messages"] == [{"role": "user", "content": "Hello"}]
        assert call_kwargs["max_tokens"] == 1024

    @pytest.mark.asyncio
    async def test_max_tokens_passthrough(self, adapter, mock_anthropic_client):
        adapter._client = mock_anthropic_client
        request = CompletionRequest(payload="Hi", parameters={"max_tokens": 50})

        await adapter.dispatch(request, _spec("anthropic", "claude-3-5-haiku-latest"))

        call_kwargs = mock_anthropic_client.messages.create.call_args.kwargs
        assert call_kwargs["max_tokens"] == 50
        assert "system" not in call_kwargs

    def test_split_system_joins_parts(self):
        system, rest = split_system([
            {"role": "system", "content": "One"},
            {"role": "user", "content": "Hi"},
            {"role": "system", "content": "Two"},
        ])
        assert system == "One\n\nTwo"
        assert rest == [{"role": "user", "content": "Hi"}]

    def test_extract_text_skips_tool_blocks(self):
        message = Mock(content=[
            Mock(type="tool_use", text=None),
            Mock(type="text", text="part one "),
            Mock(type="text", text="part two"),
        ])
        assert extract_text(message) == "part one part two"

    def test_extract_text_without_text_blocks(self):
        with pytest.raises(ResponseParseError):
            extract_text(Mock(content=[Mock(type="tool_use", text=None)]))
        with pytest.raises(ResponseParseError):
            extract_text(Mock(content=[]))


class TestCallableAdapter:

    @pytest.mark.asyncio
    async def test_wraps_raw_output(self):
        dispatch = AsyncMock(return_value={"answer": 42})
        adapter = CallableAdapter("custom", dispatch)

        response = await adapter.dispatch(CompletionRequest(payload="q"), _spec("custom", "m1"))

        assert response.output == {"answer": 42}
        assert response.provider == "custom"
        assert response.model == "m1"
        assert not adapter.supports_idempotent_replay

    @pytest.mark.asyncio
    async def test_passes_responses_through(self):
        ready = CompletionResponse(output="done", provider="custom", model="m1")
        adapter = CallableAdapter("custom", AsyncMock(return_value=ready))

        assert await adapter.dispatch(CompletionRequest(payload="q"), _spec("custom", "m1")) is ready

    @pytest.mark.asyncio
    async def test_refresh_sync_and_async(self):
        assert not await CallableAdapter("c", AsyncMock()).refresh_credentials()
        assert await CallableAdapter("c", AsyncMock(), refresh_func=lambda: True).refresh_credentials()
        assert await CallableAdapter(
            "c", AsyncMock(), refresh_func=AsyncMock(return_value=True)
        ).refresh_credentials()

    @pytest.mark.asyncio
    async def test_replay(self):
        replay = AsyncMock(side_effect=["stored", None])
        adapter = CallableAdapter("c", AsyncMock(), replay_func=replay)

        assert adapter.supports_idempotent_replay
        response = await adapter.replay("k1", _spec("c", "m"))
        assert response.replayed
        assert response.output == "stored"
        assert await adapter.replay("k2", _spec("c", "m")) is None

    def test_default_name_from_class(self):
        class EchoAdapter(CallableAdapter):
            def __init__(self):
                super().__init__(None, AsyncMock())

        assert EchoAdapter().name == "echo"


class TestCostAndUsage:

    def test_estimate_cost_from_total_tokens(self):
        adapter = CallableAdapter("c", AsyncMock())
        response = CompletionResponse(output="x", provider="c", model="m", usage={"total_tokens": 2000})
        assert adapter.estimate_cost(_spec(cost=0.003), response) == pytest.approx(0.006)

    def test_estimate_cost_from_parts(self):
        adapter = CallableAdapter("c", AsyncMock())
        response = CompletionResponse(
            output="x", provider="c", model="m",
            usage={"prompt_tokens": 300, "completion_tokens": 200},
        )
        assert adapter.estimate_cost(_spec(cost=0.002), response) == pytest.approx(0.001)

    def test_estimate_cost_without_usage(self):
        adapter = CallableAdapter("c", AsyncMock())
        response = CompletionResponse(output="x", provider="c", model="m")
        assert adapter.estimate_cost(_spec(), response) is None

    def test_reported_cost_wins(self):
        adapter = CallableAdapter("c", AsyncMock())
        response = CompletionResponse(
            output="x", provider="c", model="m", usage={"total_tokens": 10}, cost_usd=1.5
        )
        assert adapter.estimate_cost(_spec(), response) == 1.5

    def test_normalize_anthropic_usage(self):
        usage = normalize_usage(
            {"input_tokens": 100, "output_tokens": 20, "cache_read_input_tokens": 80}, "anthropic"
        )
        assert usage["prompt_tokens"] == 100
        assert usage["completion_tokens"] == 20
        assert usage["total_tokens"] == 120
        assert usage["cache_info"] == {"cache_read_input_tokens": 80}

    def test_normalize_openai_usage(self):
        usage = normalize_usage(
            {"prompt_tokens": 50, "completion_tokens": 10, "total_tokens": 60,
             "prompt_tokens_details": {"cached_tokens": 32}},
            "openai",
        )
        assert usage["total_tokens"] == 60
        assert usage["cache_info"] == {"cached_tokens": 32}

    def test_normalize_empty_usage(self):
        assert normalize_usage(None, "openai") == {
            "prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0
        }

    def test_usage_to_dict(self):
        assert usage_to_dict(None) is None
        assert usage_to_dict({"a": 1}) == {"a": 1}
        model_like = Mock()
        model_like.model_dump.return_value = {"prompt_tokens": 3}
        assert usage_to_dict(model_like) == {"prompt_tokens": 3}
