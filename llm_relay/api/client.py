"""Main client interface for the relay."""

import asyncio
import logging
import random
import time
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from ..config.loader import default_config, load_config
from ..config.settings import RelayConfig
from ..core.executor import ResilientExecutor
from ..models.responses import CompletionResponse
from ..models.specs import CompletionRequest
from ..observability.health import HealthTracker
from ..observability.models import ProviderTelemetry
from ..observability.sinks.base import MetricsSink
from ..providers.base import ProviderAdapter
from ..reliability.circuit_breaker import CircuitBreakerConfig, CircuitBreakerManager
from ..reliability.error_classifier import ErrorClassifier
from ..reliability.idempotency import IdempotencyManager
from ..reliability.rate_limiter import BucketSettings, TokenBucketLimiter
from ..reliability.retry import RetryScheduler
from ..routing.selector import CandidateExplanation, CapabilityRouter

logger = logging.getLogger(__name__)


class RelayClient:
    """
    High-level entry point: routes, rate-limits, retries and falls back.

    Provider calls are injected as adapters keyed by provider name. Specs
    whose provider has no adapter are left out of routing.
    """

    def __init__(
        self,
        config: Optional[RelayConfig] = None,
        adapters: Optional[Iterable[ProviderAdapter]] = None,
        metrics_sinks: Optional[List[MetricsSink]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        random_func: Callable[[float, float], float] = random.uniform,
    ):
        """
        Initialize the client.

        Args:
            config: Relay configuration; built-in defaults when omitted
            adapters: Provider adapters to register
            metrics_sinks: Optional sinks receiving one record per attempt
            clock: Monotonic time source for buckets, breakers and deadlines
            sleep: Async sleep used for rate-limit waits and backoff
            random_func: Jitter source, ``uniform(a, b)``
        """
        self.config = config or default_config()
        self._adapters: Dict[str, ProviderAdapter] = {}
        self._warned_providers: set = set()

        self.limiter = TokenBucketLimiter(
            settings={
                name: BucketSettings(s.tokens_per_second, s.max_tokens)
                for name, s in self.config.providers.items()
            },
            clock=clock,
            sleep=sleep,
        )
        self.breakers = CircuitBreakerManager(
            configs={
                name: CircuitBreakerConfig(
                    failure_threshold=s.failure_threshold,
                    cool_down_seconds=s.cool_down_seconds,
                )
                for name, s in self.config.providers.items()
            },
            clock=clock,
        )
        self.tracker = HealthTracker(self.config.health, circuit_state=self.breakers.state_of)
        self.classifier = ErrorClassifier(
            self.config.classifier,
            rate_limit_defaults={
                name: s.rate_limit_retry_after for name, s in self.config.providers.items()
            },
        )
        self.executor = ResilientExecutor(
            router=self._build_router(),
            adapters=self._adapters,
            limiter=self.limiter,
            breakers=self.breakers,
            tracker=self.tracker,
            classifier=self.classifier,
            retry=RetryScheduler(self.config.retry, random_func=random_func),
            idempotency=IdempotencyManager(clock=clock),
            metrics_sinks=metrics_sinks or [],
            clock=clock,
            sleep=sleep,
        )

        for adapter in adapters or []:
            self.register_adapter(adapter)

    @classmethod
    def from_config(
        cls,
        path: Optional[Union[str, Path]] = None,
        **kwargs
    ) -> "RelayClient":
        """Create a client from ``load_config`` sources."""
        return cls(config=load_config(path), **kwargs)

    @property
    def router(self) -> CapabilityRouter:
        return self.executor.router

    @property
    def adapters(self) -> Dict[str, ProviderAdapter]:
        return dict(self._adapters)

    def register_adapter(self, adapter: ProviderAdapter) -> None:
        """Register (or replace) the adapter serving ``adapter.name``."""
        self._adapters[adapter.name] = adapter
        self.executor.router = self._build_router()
        logger.info(f"Registered adapter for provider {adapter.name}")

    async def submit(
        self,
        request: CompletionRequest,
        deadline: Optional[float] = None
    ) -> CompletionResponse:
        """
        Serve a request.

        Args:
            request: The request to serve
            deadline: Optional overall deadline in seconds

        Returns:
            CompletionResponse from the first candidate that succeeded

        Raises:
            NoCandidateError, ExhaustionError, RequestCancelledError,
            AmbiguousOutcomeError
        """
        self._warn_unroutable()
        return await self.executor.execute(request, deadline=deadline)

    def explain(self, request: CompletionRequest) -> List[CandidateExplanation]:
        """Dry-run routing: every routable spec with its score or rejection."""
        return self.router.explain(request)

    def provider_telemetry(self, provider: str) -> ProviderTelemetry:
        telemetry = self.tracker.snapshot(provider)
        breaker = self.breakers.get(provider)
        return telemetry.model_copy(update={
            "consecutive_failures": breaker.consecutive_failures if breaker else 0,
            "available_tokens": self.limiter.available_tokens(provider),
        })

    def telemetry(self) -> Dict[str, ProviderTelemetry]:
        """Telemetry for every provider that is registered or has been seen."""
        providers = set(self._adapters) | set(self.tracker.providers()) | set(self.breakers.circuit_breakers)
        return {p: self.provider_telemetry(p) for p in sorted(providers)}

    def _warn_unroutable(self) -> None:
        for spec in self.config.models:
            if spec.provider not in self._adapters and spec.provider not in self._warned_providers:
                self._warned_providers.add(spec.provider)
                logger.warning(
                    f"No adapter registered for provider {spec.provider}, its models are not routable"
                )

    def _build_router(self) -> CapabilityRouter:
        specs = [s for s in self.config.models if s.provider in self._adapters]
        return CapabilityRouter(
            specs, self.config.routing, latency_lookup=self.tracker.get_average_latency
        )
