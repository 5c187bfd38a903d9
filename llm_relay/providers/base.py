"""
Base Provider Adapter Interface

This module defines the abstract base class every provider adapter
implements. The executor only talks to providers through this interface,
so vendor-specific behaviour (payload shape, usage fields, credential
handling, idempotent replay) stays inside the adapters.
"""

import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from ..models.responses import CompletionResponse
from ..models.specs import CompletionRequest, ProviderModelSpec


class ProviderAdapter(ABC):
    """
    Abstract base class for provider adapters.

    The adapter is responsible for:
    - Translating the opaque request payload into a provider call
    - Making the API call (exactly once per ``dispatch``)
    - Normalizing the response to CompletionResponse
    - Raising errors the classifier understands (ProviderError, vendor
      exceptions, httpx exceptions, ResponseParseError)

    Provider adapters should NOT contain:
    - Retry loops
    - Cross-provider fallback logic
    - Rate limiting
    """

    #: Whether ``replay`` can look up the outcome of an earlier dispatch
    #: made with the same idempotency key.
    supports_idempotent_replay: bool = False

    def __init__(self, name: Optional[str] = None):
        self._name = name

    @property
    def name(self) -> str:
        """
        Provider identifier this adapter serves.

        Defaults to the class name without an 'Adapter' suffix, lowercased.
        """
        if self._name:
            return self._name
        class_name = self.__class__.__name__
        if class_name.endswith("Adapter"):
            return class_name[:-7].lower()
        return class_name.lower()

    @abstractmethod
    async def dispatch(
        self,
        request: CompletionRequest,
        spec: ProviderModelSpec
    ) -> CompletionResponse:
        """
        Perform one provider call for ``request`` against ``spec.model``.

        Raises:
            ProviderError: For provider-reported failures
            ResponseParseError: When the provider answered with an unusable body
        """

    def context_limit(self, spec: ProviderModelSpec) -> int:
        """
        Maximum context size the adapter will accept for this model.

        Defaults to the catalogue's ``max_context``. Adapters bound to a
        smaller deployment override it so the executor skips them for
        requests that need more.
        """
        return spec.max_context

    def estimate_cost(self, spec: ProviderModelSpec, response: CompletionResponse) -> Optional[float]:
        """
        Cost of a served response in USD, from its usage and ``spec.cost_per_1k_tokens``.

        Returns None when the response carries no token usage.
        """
        if response.cost_usd is not None:
            return response.cost_usd
        total = _total_tokens(response.usage)
        if total is None:
            return None
        return (total / 1000) * spec.cost_per_1k_tokens

    async def refresh_credentials(self) -> bool:
        """
        Refresh credentials after an authentication failure.

        Returns True when fresh credentials are in place and a retry makes
        sense. The default adapter cannot refresh anything.
        """
        return False

    async def replay(
        self,
        idempotency_key: str,
        spec: ProviderModelSpec
    ) -> Optional[CompletionResponse]:
        """Look up the outcome of an earlier dispatch; None when unknown."""
        return None


DispatchFunc = Callable[[CompletionRequest, ProviderModelSpec], Awaitable[Any]]
RefreshFunc = Callable[[], Union[bool, Awaitable[bool]]]
ReplayFunc = Callable[[str, ProviderModelSpec], Awaitable[Any]]


class CallableAdapter(ProviderAdapter):
    """
    Adapter around an injected async dispatch function.

    The function receives ``(request, spec)`` and returns either a
    CompletionResponse or any raw output, which is wrapped as the response
    ``output``.
    """

    def __init__(
        self,
        name: str,
        dispatch_func: DispatchFunc,
        refresh_func: Optional[RefreshFunc] = None,
        replay_func: Optional[ReplayFunc] = None,
    ):
        super().__init__(name)
        self._dispatch_func = dispatch_func
        self._refresh_func = refresh_func
        self._replay_func = replay_func
        self.supports_idempotent_replay = replay_func is not None

    async def dispatch(self, request: CompletionRequest, spec: ProviderModelSpec) -> CompletionResponse:
        result = await self._dispatch_func(request, spec)
        return self._wrap(result, spec)

    async def refresh_credentials(self) -> bool:
        if self._refresh_func is None:
            return False
        refreshed = self._refresh_func()
        if inspect.isawaitable(refreshed):
            refreshed = await refreshed
        return bool(refreshed)

    async def replay(self, idempotency_key: str, spec: ProviderModelSpec) -> Optional[CompletionResponse]:
        if self._replay_func is None:
            return None
        result = await self._replay_func(idempotency_key, spec)
        if result is None:
            return None
        return self._wrap(result, spec).model_copy(update={"replayed": True})

    def _wrap(self, result: Any, spec: ProviderModelSpec) -> CompletionResponse:
        if isinstance(result, CompletionResponse):
            return result
        return CompletionResponse(output=result, provider=self.name, model=spec.model, raw=result)


def _total_tokens(usage: Dict[str, Any]) -> Optional[int]:
    if not usage:
        return None
    if usage.get("total_tokens") is not None:
        return int(usage["total_tokens"])
    prompt = usage.get("prompt_tokens")
    completion = usage.get("completion_tokens")
    if prompt is None and completion is None:
        return None
    return int(prompt or 0) + int(completion or 0)


class ProviderError(Exception):
    """
    Base exception for provider-related errors.

    This should be raised for:
    - API transport errors
    - Authentication failures
    - Rate limiting
    - Transient failures that may be retryable

    Attributes:
        message: Error message
        provider: Provider name
        status_code: HTTP status code if applicable
        retry_after: Seconds to wait before retry if the provider said so
        original_error: The original exception if wrapped
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        original_error: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after
        self.original_error = original_error


class ResponseParseError(ProviderError):
    """The provider answered, but the body could not be turned into a response."""
