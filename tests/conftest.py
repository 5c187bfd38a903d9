"""Shared pytest fixtures for llm-relay tests."""

from pathlib import Path
from typing import List
from unittest.mock import AsyncMock, Mock

import pytest

from llm_relay.config.settings import ProviderSettings, RelayConfig, RetryPolicy
from llm_relay.models.specs import ProviderModelSpec
from tests.helpers.fakes import FakeClock

TESTS_DIR = Path(__file__).parent


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: end-to-end tests through RelayClient")
    config.addinivalue_line("markers", "slow: tests that wait on real time")


def pytest_collection_modifyitems(config, items):
    for item in items:
        path = Path(str(item.fspath))
        if TESTS_DIR / "integration" in path.parents:
            item.add_marker(pytest.mark.integration)
        elif TESTS_DIR / "unit" in path.parents:
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock environment variables for testing."""
    env_vars = {
        "OPENAI_API_KEY": "test-openai-key",
        "ANTHROPIC_API_KEY": "test-anthropic-key",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def clock():
    """Manual clock; ``clock.sleep`` advances it without real waiting."""
    return FakeClock()


@pytest.fixture
def sample_specs() -> List[ProviderModelSpec]:
    """Small table: two general models on different providers plus a long-context one."""
    return [
        ProviderModelSpec(
            provider="alpha",
            model="alpha-large",
            capabilities={"chat": 9, "code": 8, "reasoning": 8},
            cost_per_1k_tokens=0.002,
            max_context=128000,
            avg_latency_ms=1500,
        ),
        ProviderModelSpec(
            provider="beta",
            model="beta-medium",
            capabilities={"chat": 8, "code": 7, "reasoning": 6},
            cost_per_1k_tokens=0.002,
            max_context=200000,
            avg_latency_ms=1200,
        ),
        ProviderModelSpec(
            provider="gamma",
            model="gamma-long",
            capabilities={"chat": 7, "code": 5, "long_context": 10},
            cost_per_1k_tokens=0.004,
            max_context=1000000,
            avg_latency_ms=2500,
        ),
    ]


@pytest.fixture
def relay_config(sample_specs) -> RelayConfig:
    """Config over the sample table with jitter off and generous buckets."""
    return RelayConfig(
        models=sample_specs,
        providers={
            name: ProviderSettings(tokens_per_second=10.0, max_tokens=10.0, failure_threshold=5)
            for name in ("alpha", "beta", "gamma")
        },
        retry=RetryPolicy(per_candidate_retry_cap=3, base_delay=0.5, max_delay=30.0, jitter_max=0.0),
    )


@pytest.fixture
def mock_openai_client():
    """Mock AsyncOpenAI client."""
    client = AsyncMock()

    completion = Mock()
    completion.choices = [Mock(message=Mock(content="Test response"), finish_reason="stop")]
    usage_mock = Mock()
    usage_mock.model_dump.return_value = {
        "prompt_tokens": 10,
        "completion_tokens": 5,
        "total_tokens": 15
    }
    completion.usage = usage_mock

    client.chat.completions.create = AsyncMock(return_value=completion)
    return client


@pytest.fixture
def mock_anthropic_client():
    """Mock AsyncAnthropic client."""
    client = AsyncMock()

    message = Mock()
    message.content = [Mock(type="text", text="Test response")]
    message.stop_reason = "end_turn"
    usage_mock = Mock()
    usage_mock.model_dump.return_value = {
        "input_tokens": 10,
        "output_tokens": 5
    }
    message.usage = usage_mock

    client.messages.create = AsyncMock(return_value=message)
    return client
