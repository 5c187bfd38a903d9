import os
from typing import Any, Dict, List, Optional, Tuple

from anthropic import AsyncAnthropic

from ..models.responses import CompletionResponse
from ..models.specs import CompletionRequest, ProviderModelSpec
from .base import ProviderAdapter, ProviderError, ResponseParseError
from .openai import build_messages
from .usage import normalize_usage, usage_to_dict

API_KEY_ENV_VAR = "ANTHROPIC_API_KEY"
DEFAULT_MAX_TOKENS = 1024


def split_system(messages: List[Dict[str, Any]]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Anthropic takes the system prompt as a separate parameter."""
    system_parts = []
    rest = []
    for message in messages:
        if message.get("role") == "system":
            system_parts.append(str(message.get("content", "")))
        else:
            rest.append(message)
    return ("\n\n".join(system_parts) or None), rest


def extract_text(response: Any) -> str:
    blocks = getattr(response, "content", None)
    if not blocks:
        raise ResponseParseError("Messages response has no content blocks", provider="anthropic")
    texts = [getattr(b, "text", None) for b in blocks if getattr(b, "type", None) == "text"]
    texts = [t for t in texts if t is not None]
    if not texts:
        raise ResponseParseError("Messages response has no text blocks", provider="anthropic")
    return "".join(texts)


class AnthropicMessagesAdapter(ProviderAdapter):
    """Anthropic Messages API through an AsyncAnthropic client."""

    def __init__(self, client: Optional[AsyncAnthropic] = None, name: str = "anthropic"):
        super().__init__(name)
        self._client = client
        self._api_key = os.getenv(API_KEY_ENV_VAR)

    @property
    def client(self) -> AsyncAnthropic:
        """Lazy initialization of the Anthropic client."""
        if self._client is None:
            if not self._api_key:
                raise ProviderError(
                    f"{API_KEY_ENV_VAR} not found in environment variables",
                    provider=self.name,
                    status_code=401,
                )
            self._client = AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def dispatch(self, request: CompletionRequest, spec: ProviderModelSpec) -> CompletionResponse:
        system, messages = split_system(build_messages(request.payload, self.name))
        params = dict(request.parameters)
        params.setdefault("max_tokens", DEFAULT_MAX_TOKENS)
        params["model"] = spec.model
        params["messages"] = messages
        if system:
            params["system"] = system

        response = await self.client.messages.create(**params)

        return CompletionResponse(
            output=extract_text(response),
            provider=self.name,
            model=spec.model,
            usage=normalize_usage(usage_to_dict(getattr(response, "usage", None)), "anthropic"),
            finish_reason=getattr(response, "stop_reason", None),
            raw=response,
        )

    async def refresh_credentials(self) -> bool:
        """Pick up a rotated key from the environment, if there is one."""
        api_key = os.getenv(API_KEY_ENV_VAR)
        if not api_key or api_key == self._api_key:
            return False
        self._api_key = api_key
        self._client = AsyncAnthropic(api_key=api_key)
        return True
