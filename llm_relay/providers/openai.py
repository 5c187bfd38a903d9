import os
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from ..models.responses import CompletionResponse
from ..models.specs import CompletionRequest, ProviderModelSpec
from .base import ProviderAdapter, ProviderError, ResponseParseError
from .usage import normalize_usage, usage_to_dict

API_KEY_ENV_VAR = "OPENAI_API_KEY"


def build_messages(payload: Any, provider: str = "openai") -> List[Dict[str, Any]]:
    """Chat messages from a string prompt or an existing message list."""
    if isinstance(payload, str):
        return [{"role": "user", "content": payload}]
    if isinstance(payload, list):
        return [dict(m) for m in payload]
    if isinstance(payload, dict) and "messages" in payload:
        return [dict(m) for m in payload["messages"]]
    raise ProviderError(
        f"Unsupported payload type for chat completion: {type(payload).__name__}",
        provider=provider,
        status_code=400,
    )


class OpenAIChatAdapter(ProviderAdapter):
    """OpenAI Chat Completions through an AsyncOpenAI client."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, name: str = "openai"):
        super().__init__(name)
        self._client = client
        self._api_key = os.getenv(API_KEY_ENV_VAR)

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise ProviderError(
                    f"{API_KEY_ENV_VAR} not found in environment variables",
                    provider=self.name,
                    status_code=401,
                )
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def dispatch(self, request: CompletionRequest, spec: ProviderModelSpec) -> CompletionResponse:
        params = dict(request.parameters)
        params["model"] = spec.model
        params["messages"] = build_messages(request.payload, self.name)
        if request.idempotency_key:
            # Copied so the caller's parameters stay untouched across retries
            headers = dict(params.get("extra_headers") or {})
            headers["Idempotency-Key"] = request.idempotency_key
            params["extra_headers"] = headers

        response = await self.client.chat.completions.create(**params)

        choices = getattr(response, "choices", None)
        if not choices:
            raise ResponseParseError(
                "Chat completion response has no choices", provider=self.name
            )
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if content is None and not getattr(message, "tool_calls", None):
            raise ResponseParseError(
                "Chat completion choice has no content", provider=self.name
            )

        return CompletionResponse(
            output=content,
            provider=self.name,
            model=spec.model,
            usage=normalize_usage(usage_to_dict(getattr(response, "usage", None)), "openai"),
            finish_reason=getattr(choices[0], "finish_reason", None),
            raw=response,
        )

    async def refresh_credentials(self) -> bool:
        """Pick up a rotated key from the environment, if there is one."""
        api_key = os.getenv(API_KEY_ENV_VAR)
        if not api_key or api_key == self._api_key:
            return False
        self._api_key = api_key
        self._client = AsyncOpenAI(api_key=api_key)
        return True
