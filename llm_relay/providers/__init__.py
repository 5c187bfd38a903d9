from .anthropic import AnthropicMessagesAdapter
from .base import CallableAdapter, ProviderAdapter, ProviderError, ResponseParseError
from .openai import OpenAIChatAdapter

__all__ = [
    "AnthropicMessagesAdapter",
    "CallableAdapter",
    "OpenAIChatAdapter",
    "ProviderAdapter",
    "ProviderError",
    "ResponseParseError",
]
