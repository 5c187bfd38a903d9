"""
Rolling health and cost tracking per provider.

The tracker is a passive observer: the executor reports outcomes, the router
reads average latencies for tie-breaking and telemetry reads scores. Scores
are advisory; only the circuit breaker gates dispatch.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional

from ..config.settings import HealthSettings
from ..reliability.circuit_breaker import CircuitState
from ..reliability.error_classifier import ErrorCategory
from .models import ProviderTelemetry

CircuitStateLookup = Callable[[str], CircuitState]


@dataclass(frozen=True)
class Outcome:
    success: bool
    latency_ms: Optional[float] = None


@dataclass
class ProviderHealth:
    """Lifetime counters plus a sliding window of recent outcomes."""
    window_size: int
    success_count: int = 0
    failure_count: int = 0
    total_latency_ms: float = 0.0
    total_cost_usd: float = 0.0
    last_failure_at: Optional[float] = None
    failures_by_category: Dict[str, int] = field(default_factory=dict)
    window: Deque[Outcome] = field(init=False)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self):
        self.window = deque(maxlen=self.window_size)

    @property
    def success_rate(self) -> float:
        if not self.window:
            return 1.0
        return sum(1 for o in self.window if o.success) / len(self.window)

    @property
    def average_latency_ms(self) -> Optional[float]:
        latencies = [o.latency_ms for o in self.window if o.latency_ms is not None]
        if not latencies:
            return None
        return sum(latencies) / len(latencies)


class HealthTracker:
    """Per-provider health, latency and cost bookkeeping."""

    def __init__(
        self,
        settings: Optional[HealthSettings] = None,
        circuit_state: Optional[CircuitStateLookup] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            settings: Window size, latency ceiling and score weights
            circuit_state: Returns a provider's current circuit state;
                providers are treated as CLOSED when omitted
            clock: Timestamp source for last-failure times
        """
        self.settings = settings or HealthSettings()
        self._circuit_state = circuit_state
        self._clock = clock
        self._providers: Dict[str, ProviderHealth] = {}

    def _health(self, provider: str) -> ProviderHealth:
        health = self._providers.get(provider)
        if health is None:
            health = ProviderHealth(window_size=self.settings.window_size)
            self._providers[provider] = health
        return health

    async def record_success(self, provider: str, latency_ms: float, cost: Optional[float] = None) -> None:
        health = self._health(provider)
        async with health.lock:
            health.success_count += 1
            health.total_latency_ms += latency_ms
            if cost:
                health.total_cost_usd += cost
            health.window.append(Outcome(True, latency_ms))

    async def record_failure(
        self,
        provider: str,
        category: Optional[ErrorCategory] = None,
        latency_ms: Optional[float] = None
    ) -> None:
        health = self._health(provider)
        async with health.lock:
            health.failure_count += 1
            health.last_failure_at = self._clock()
            key = category.value if category else "unknown"
            health.failures_by_category[key] = health.failures_by_category.get(key, 0) + 1
            health.window.append(Outcome(False, latency_ms))

    def get_success_rate(self, provider: str) -> float:
        health = self._providers.get(provider)
        return health.success_rate if health else 1.0

    def get_average_latency(self, provider: str) -> Optional[float]:
        """Mean latency over the window; None before any sample."""
        health = self._providers.get(provider)
        return health.average_latency_ms if health else None

    def get_health_score(self, provider: str) -> float:
        """
        Score in [0, 1] blending rolling success rate and latency.

        A provider whose circuit is OPEN always scores 0.
        """
        if self._state_of(provider) == CircuitState.OPEN:
            return 0.0

        success_rate = self.get_success_rate(provider)
        avg_latency = self.get_average_latency(provider)
        if avg_latency is None:
            latency_score = 1.0
        else:
            latency_score = 1.0 - min(avg_latency / self.settings.latency_ceiling_ms, 1.0)

        score = (
            self.settings.success_weight * success_rate
            + self.settings.latency_weight * latency_score
        )
        return min(max(score, 0.0), 1.0)

    def snapshot(self, provider: str) -> ProviderTelemetry:
        health = self._providers.get(provider)
        telemetry = ProviderTelemetry(
            provider=provider,
            circuit_state=self._state_of(provider).value,
            health_score=self.get_health_score(provider),
        )
        if health is None:
            return telemetry
        return telemetry.model_copy(update={
            "success_rate": health.success_rate,
            "average_latency_ms": health.average_latency_ms,
            "total_cost_usd": health.total_cost_usd,
            "success_count": health.success_count,
            "failure_count": health.failure_count,
            "window_samples": len(health.window),
            "last_failure_at": health.last_failure_at,
            "failures_by_category": dict(health.failures_by_category),
        })

    def providers(self) -> List[str]:
        return sorted(self._providers)

    def _state_of(self, provider: str) -> CircuitState:
        if self._circuit_state is None:
            return CircuitState.CLOSED
        return self._circuit_state(provider)
