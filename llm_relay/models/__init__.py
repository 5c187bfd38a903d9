"""Data models shared across the relay."""

from .responses import CompletionResponse
from .specs import CompletionRequest, ProviderModelSpec, RequestConstraints

__all__ = [
    "CompletionRequest",
    "CompletionResponse",
    "ProviderModelSpec",
    "RequestConstraints",
]
