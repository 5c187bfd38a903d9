"""
llm-relay - Resilient multi-provider LLM request routing.

This package sends abstract completion requests to whichever provider/model
suits them best and keeps them flowing when providers misbehave:
- Capability and cost based candidate ranking
- Per-provider token bucket rate limiting
- Classified retry with backoff and Retry-After support
- Per-provider circuit breakers with half-open trials
- Cross-provider fallback and idempotent dispatch
- Rolling health, latency and cost telemetry
"""

__version__ = "0.1.0"

from .api.client import RelayClient
from .config import RelayConfig, load_config
from .core.errors import (
    AmbiguousOutcomeError,
    CandidateFailure,
    ExhaustionError,
    NoCandidateError,
    RelayError,
    RequestCancelledError,
)
from .models import CompletionRequest, CompletionResponse, ProviderModelSpec, RequestConstraints
from .providers import (
    AnthropicMessagesAdapter,
    CallableAdapter,
    OpenAIChatAdapter,
    ProviderAdapter,
    ProviderError,
    ResponseParseError,
)
from .reliability import CircuitState, ErrorCategory

__all__ = [
    # Main client
    "RelayClient",

    # Configuration
    "RelayConfig",
    "load_config",

    # Models
    "CompletionRequest",
    "CompletionResponse",
    "ProviderModelSpec",
    "RequestConstraints",

    # Providers
    "ProviderAdapter",
    "CallableAdapter",
    "OpenAIChatAdapter",
    "AnthropicMessagesAdapter",
    "ProviderError",
    "ResponseParseError",

    # Errors
    "RelayError",
    "NoCandidateError",
    "ExhaustionError",
    "RequestCancelledError",
    "AmbiguousOutcomeError",
    "CandidateFailure",
    "ErrorCategory",
    "CircuitState",
]
