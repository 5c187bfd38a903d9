"""
Circuit breaker pattern implementation for provider resilience.

Each provider gets its own three-state breaker. Callers ask for a permit
before dispatching; an OPEN breaker refuses without any network attempt,
and a HALF_OPEN breaker lets exactly one trial call through at a time.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..providers.base import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing recovery with a single trial


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration."""
    failure_threshold: int = 5          # Consecutive failures before opening
    cool_down_seconds: float = 60.0     # Seconds in OPEN before a trial

    # Optional callbacks, sync or async, called with the breaker
    on_open: Optional[Callable] = None
    on_close: Optional[Callable] = None
    on_half_open: Optional[Callable] = None


@dataclass
class CircuitStats:
    """Circuit breaker statistics."""
    consecutive_failures: int = 0
    total_successes: int = 0
    total_failures: int = 0
    times_opened: int = 0
    last_failure_time: Optional[datetime] = None
    last_success_time: Optional[datetime] = None
    last_state_change: Optional[datetime] = None


@dataclass(frozen=True)
class CircuitPermit:
    """Permission to make one call; ``trial`` marks the half-open trial call."""
    provider: str
    trial: bool = False


class CircuitOpenError(ProviderError):
    """Raised by ``CircuitBreaker.call`` when no permit is available."""

    def __init__(self, provider: str, state: CircuitState):
        super().__init__(
            f"Circuit breaker {provider} is {state.name}",
            provider=provider,
            status_code=503
        )
        self.state = state


class CircuitBreaker:
    """
    Circuit breaker for one provider.

    Prevents cascading failures by failing fast when a provider is
    experiencing issues.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.stats = CircuitStats()
        self.opened_at: Optional[float] = None
        self._clock = clock
        self._trial_in_flight = False
        self._state_lock = asyncio.Lock()

    @property
    def consecutive_failures(self) -> int:
        return self.stats.consecutive_failures

    async def acquire_permit(self) -> Optional[CircuitPermit]:
        """
        Ask to make a call.

        Returns:
            A CircuitPermit, or None when the circuit refuses the call
        """
        async with self._state_lock:
            if self.state == CircuitState.CLOSED:
                return CircuitPermit(self.name)

            if self.state == CircuitState.OPEN:
                if not self._cool_down_elapsed():
                    return None
                await self._transition_to_half_open()

            # HALF_OPEN: one trial at a time
            if self._trial_in_flight:
                return None
            self._trial_in_flight = True
            return CircuitPermit(self.name, trial=True)

    async def record_success(self, permit: Optional[CircuitPermit] = None) -> None:
        """Record a successful call."""
        async with self._state_lock:
            self.stats.total_successes += 1
            self.stats.last_success_time = datetime.now()

            if permit is not None and permit.trial:
                self._trial_in_flight = False
                if self.state == CircuitState.HALF_OPEN:
                    await self._transition_to_closed()
            elif self.state == CircuitState.CLOSED:
                self.stats.consecutive_failures = 0

    async def record_failure(self, permit: Optional[CircuitPermit] = None) -> None:
        """Record a provider-attributable failure."""
        async with self._state_lock:
            self.stats.total_failures += 1
            self.stats.consecutive_failures += 1
            self.stats.last_failure_time = datetime.now()

            if permit is not None and permit.trial:
                self._trial_in_flight = False
                if self.state == CircuitState.HALF_OPEN:
                    # Single failure in half-open goes back to open
                    await self._transition_to_open()
            elif self.state == CircuitState.CLOSED:
                if self.stats.consecutive_failures >= self.config.failure_threshold:
                    await self._transition_to_open()

            logger.warning(
                f"Circuit breaker {self.name} recorded failure",
                extra={
                    "circuit_breaker": self.name,
                    "state": self.state.value,
                    "consecutive_failures": self.stats.consecutive_failures,
                }
            )

    async def release(self, permit: Optional[CircuitPermit]) -> None:
        """
        Give back a permit whose call ended without a provider outcome.

        Used for cancellations and for failures that are not the
        provider's fault. State is unchanged; a released trial frees the
        half-open slot for the next caller.
        """
        if permit is None or not permit.trial:
            return
        async with self._state_lock:
            self._trial_in_flight = False

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Execute function through circuit breaker.

        Args:
            func: Async function to execute

        Returns:
            Result from successful function execution

        Raises:
            CircuitOpenError: If the circuit refuses the call
            Original exception: If function fails
        """
        permit = await self.acquire_permit()
        if permit is None:
            raise CircuitOpenError(self.name, self.state)

        try:
            result = await func()
        except asyncio.CancelledError:
            await self.release(permit)
            raise
        except Exception:
            await self.record_failure(permit)
            raise
        await self.record_success(permit)
        return result

    def _cool_down_elapsed(self) -> bool:
        if self.opened_at is None:
            return True
        return self._clock() - self.opened_at >= self.config.cool_down_seconds

    def seconds_until_trial(self) -> float:
        """Remaining cool-down; 0 when not OPEN."""
        if self.state != CircuitState.OPEN or self.opened_at is None:
            return 0.0
        return max(self.config.cool_down_seconds - (self._clock() - self.opened_at), 0.0)

    async def _transition_to_open(self):
        """Transition to OPEN state."""
        previous_state = self.state
        self.state = CircuitState.OPEN
        self.opened_at = self._clock()
        self.stats.times_opened += 1
        self.stats.last_state_change = datetime.now()

        logger.error(
            f"Circuit breaker {self.name} opened",
            extra={
                "circuit_breaker": self.name,
                "previous_state": previous_state.value,
                "consecutive_failures": self.stats.consecutive_failures
            }
        )
        await self._run_callback(self.config.on_open, "on_open")

    async def _transition_to_closed(self):
        """Transition to CLOSED state."""
        previous_state = self.state
        self.state = CircuitState.CLOSED
        self.opened_at = None
        self.stats.consecutive_failures = 0
        self.stats.last_state_change = datetime.now()

        logger.info(
            f"Circuit breaker {self.name} closed",
            extra={
                "circuit_breaker": self.name,
                "previous_state": previous_state.value,
            }
        )
        await self._run_callback(self.config.on_close, "on_close")

    async def _transition_to_half_open(self):
        """Transition to HALF_OPEN state."""
        previous_state = self.state
        self.state = CircuitState.HALF_OPEN
        self._trial_in_flight = False
        self.stats.last_state_change = datetime.now()

        logger.info(
            f"Circuit breaker {self.name} half-open",
            extra={
                "circuit_breaker": self.name,
                "previous_state": previous_state.value,
            }
        )
        await self._run_callback(self.config.on_half_open, "on_half_open")

    async def _run_callback(self, callback: Optional[Callable], label: str):
        """Call callback, handling both sync and async."""
        if callback is None:
            return
        try:
            if asyncio.iscoroutinefunction(callback):
                await callback(self)
            else:
                callback(self)
        except Exception as e:
            logger.error(f"Error in {label} callback: {e}")

    def get_state(self) -> CircuitState:
        """Get current circuit state."""
        return self.state

    async def reset(self):
        """Reset circuit breaker to closed state."""
        async with self._state_lock:
            self.state = CircuitState.CLOSED
            self.stats = CircuitStats()
            self.opened_at = None
            self._trial_in_flight = False
            logger.info(f"Circuit breaker {self.name} reset")


class CircuitBreakerManager:
    """Circuit breakers keyed by provider."""

    def __init__(
        self,
        configs: Optional[Dict[str, CircuitBreakerConfig]] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self._configs = dict(configs or {})
        self._clock = clock
        self.circuit_breakers: Dict[str, CircuitBreaker] = {}

    def get_or_create(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None
    ) -> CircuitBreaker:
        """Get existing or create new circuit breaker."""
        if name not in self.circuit_breakers:
            self.circuit_breakers[name] = CircuitBreaker(
                name, config or self._configs.get(name), clock=self._clock
            )
        return self.circuit_breakers[name]

    def get(self, name: str) -> Optional[CircuitBreaker]:
        """Get circuit breaker by name."""
        return self.circuit_breakers.get(name)

    def state_of(self, name: str) -> CircuitState:
        """Current state for a provider; CLOSED when it has no breaker yet."""
        breaker = self.circuit_breakers.get(name)
        return breaker.state if breaker else CircuitState.CLOSED

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        """Get stats for all circuit breakers."""
        return {
            name: {
                "state": cb.get_state().value,
                "consecutive_failures": cb.stats.consecutive_failures,
                "total_failures": cb.stats.total_failures,
                "total_successes": cb.stats.total_successes,
                "times_opened": cb.stats.times_opened,
            }
            for name, cb in self.circuit_breakers.items()
        }

    async def reset_all(self):
        """Reset all circuit breakers."""
        for cb in self.circuit_breakers.values():
            await cb.reset()
