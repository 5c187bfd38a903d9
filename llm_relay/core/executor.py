"""
Resilient execution of a single logical request.

The executor walks the router's ordered candidates. For each one it asks the
circuit breaker for a permit, waits on the provider's token bucket,
dispatches through the adapter and, on failure, classifies the error to
decide between retrying in place, advancing to the next candidate or
stopping. Every outcome is reported to the health tracker and to any
metrics sinks.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, NoReturn, Optional, Sequence, Union

from ..models.responses import CompletionResponse
from ..models.specs import CompletionRequest, ProviderModelSpec
from ..observability.health import HealthTracker
from ..observability.logging import RelayLogger
from ..observability.metrics import AttemptMetrics
from ..observability.sinks.base import MetricsSink
from ..providers.base import ProviderAdapter
from ..reliability.circuit_breaker import CircuitBreaker, CircuitBreakerManager, CircuitPermit
from ..reliability.error_classifier import ClassifiedError, ErrorCategory, ErrorClassifier
from ..reliability.idempotency import DispatchStatus, IdempotencyManager, IdempotencyRecord
from ..reliability.rate_limiter import RateLimitTimeoutError, TokenBucketLimiter
from ..reliability.retry import RetryScheduler
from ..routing.selector import CapabilityRouter
from .errors import (
    AmbiguousOutcomeError,
    CandidateFailure,
    ExhaustionError,
    RequestCancelledError,
)

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]

# The provider refused these before doing any work, so a keyed request may
# be dispatched again after one of them.
REJECTED_BEFORE_EXECUTION = {
    ErrorCategory.RATE_LIMIT,
    ErrorCategory.AUTH,
    ErrorCategory.CLIENT,
}


class _DeadlineExceeded(Exception):
    pass


@dataclass
class _RequestRun:
    """Mutable bookkeeping for one ``execute`` call."""
    request: CompletionRequest
    deadline_at: Optional[float]
    failures: List[CandidateFailure] = field(default_factory=list)
    dispatches: int = 0


class ResilientExecutor:
    """Runs requests against ranked candidates with retry and fallback."""

    def __init__(
        self,
        router: CapabilityRouter,
        adapters: Dict[str, ProviderAdapter],
        limiter: Optional[TokenBucketLimiter] = None,
        breakers: Optional[CircuitBreakerManager] = None,
        tracker: Optional[HealthTracker] = None,
        classifier: Optional[ErrorClassifier] = None,
        retry: Optional[RetryScheduler] = None,
        idempotency: Optional[IdempotencyManager] = None,
        metrics_sinks: Sequence[MetricsSink] = (),
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.router = router
        self.adapters = adapters
        self.limiter = limiter or TokenBucketLimiter(clock=clock, sleep=sleep)
        self.breakers = breakers or CircuitBreakerManager(clock=clock)
        self.tracker = tracker or HealthTracker(circuit_state=self.breakers.state_of)
        self.classifier = classifier or ErrorClassifier()
        self.retry = retry or RetryScheduler()
        self.idempotency = idempotency or IdempotencyManager(clock=clock)
        self.metrics_sinks = list(metrics_sinks)
        self._clock = clock
        self._sleep = sleep
        self._loggers: Dict[str, RelayLogger] = {}

    async def execute(
        self,
        request: CompletionRequest,
        deadline: Optional[float] = None
    ) -> CompletionResponse:
        """
        Serve ``request`` from the best available candidate.

        Args:
            request: The request to serve
            deadline: Seconds allowed for the whole request; overrides
                ``request.deadline_seconds``

        Raises:
            NoCandidateError: If the router finds nothing eligible
            ExhaustionError: If every candidate failed or was skipped
            RequestCancelledError: If the deadline passed first
            AmbiguousOutcomeError: If a keyed dispatch may have happened
                and cannot be confirmed
        """
        key = request.idempotency_key
        if key:
            record = self.idempotency.get(key)
            if record is not None:
                return await self._resolve_existing(key, record)

        candidates = self.router.select_candidates(request)

        if deadline is None:
            deadline = request.deadline_seconds
        run = _RequestRun(
            request=request,
            deadline_at=self._clock() + deadline if deadline is not None else None,
        )

        for spec in candidates:
            adapter = self.adapters.get(spec.provider)
            if adapter is None:
                run.failures.append(CandidateFailure(
                    spec.provider, spec.model, skip_reason="no_adapter"
                ))
                continue

            outcome = await self._try_candidate(run, spec, adapter)
            if isinstance(outcome, CompletionResponse):
                return outcome
            run.failures.append(outcome)

        logger.error(
            f"All candidates exhausted for request {request.request_id}",
            extra={
                "request_id": request.request_id,
                "failures": [f.to_dict() for f in run.failures],
            }
        )
        raise ExhaustionError(request.request_id, run.failures)

    async def _try_candidate(
        self,
        run: _RequestRun,
        spec: ProviderModelSpec,
        adapter: ProviderAdapter
    ) -> Union[CompletionResponse, CandidateFailure]:
        request = run.request
        provider_log = self._logger(spec.provider)
        breaker = self.breakers.get_or_create(spec.provider)

        min_context = request.constraints.min_context
        if min_context is not None and adapter.context_limit(spec) < min_context:
            provider_log.info(
                "Skipping candidate, adapter context limit too small",
                model=spec.model,
                request_id=request.request_id,
                context_limit=adapter.context_limit(spec),
                min_context=min_context,
            )
            return CandidateFailure(spec.provider, spec.model, skip_reason="context_limit")

        permit = await breaker.acquire_permit()
        if permit is None:
            provider_log.info(
                "Skipping candidate, circuit open",
                model=spec.model,
                request_id=request.request_id,
                state=breaker.state.value,
            )
            return CandidateFailure(spec.provider, spec.model, skip_reason="circuit_open")

        attempts = 0
        retries = 0
        last: Optional[ClassifiedError] = None
        while True:
            try:
                await self._acquire_tokens(run, spec)
            except ValueError as e:
                await breaker.release(permit)
                provider_log.warning(str(e), model=spec.model, request_id=request.request_id)
                return CandidateFailure(
                    spec.provider, spec.model, attempts=attempts, retries=retries,
                    error=e, skip_reason="rate_capacity",
                )
            except RateLimitTimeoutError:
                await self._raise_deadline(
                    run, spec, breaker, permit, attempts, retries, last,
                    f"rate limit wait for {spec.provider} exceeds deadline",
                )
            except BaseException:
                await breaker.release(permit)
                raise

            # Checked before claiming the key so a keyed request that never
            # reached the adapter stays free to resubmit
            timeout = self._remaining(run)
            if timeout is not None and timeout <= 0:
                await self._raise_deadline(
                    run, spec, breaker, permit, attempts, retries, last,
                    "deadline exceeded before dispatch",
                )

            key = request.idempotency_key
            if key and not self.idempotency.claim(key, spec.provider, spec.model):
                # Another submission claimed the key while this one waited
                await breaker.release(permit)
                record = self.idempotency.get(key)
                if record is None:
                    raise AmbiguousOutcomeError(key, spec.provider, spec.model)
                return await self._resolve_existing(key, record)

            attempts += 1
            run.dispatches += 1
            start = self._clock()
            try:
                with provider_log.track_dispatch(spec.model, request.request_id, attempts):
                    response = await self._dispatch(run, adapter, spec, timeout)
            except asyncio.CancelledError as e:
                await breaker.release(permit)
                if key:
                    self.idempotency.fail(key, e)
                raise
            except _DeadlineExceeded:
                if key:
                    self.idempotency.fail(key, TimeoutError("request deadline exceeded"))
                await self._raise_deadline(
                    run, spec, breaker, permit, attempts, retries, last,
                    "deadline exceeded during dispatch",
                )
            except Exception as e:
                latency_ms = (self._clock() - start) * 1000
                classified = self.classifier.classify(e, spec.provider)
                last = classified
                await self.tracker.record_failure(spec.provider, classified.category, latency_ms)

                terminal = permit.trial or not self.retry.should_retry(classified, retries)
                if not terminal and classified.requires_credential_refresh:
                    terminal = not await self._refresh_credentials(adapter, spec, request)
                delay = None if terminal else self.retry.compute_delay(classified, retries)

                await self._emit(AttemptMetrics(
                    request_id=request.request_id,
                    provider=spec.provider,
                    model=spec.model,
                    attempt=attempts,
                    latency_ms=latency_ms,
                    success=False,
                    error_category=classified.category.value,
                    error_class=classified.error_type,
                    retry_delay_s=delay,
                ))

                if key:
                    if classified.category in REJECTED_BEFORE_EXECUTION:
                        self.idempotency.release(key)
                    else:
                        self.idempotency.fail(key, e)
                        await self._report_terminal(breaker, permit, classified)
                        return await self._replay_or_raise(
                            key, adapter, spec, e, attempts=run.dispatches
                        )

                if terminal:
                    await self._report_terminal(breaker, permit, classified)
                    provider_log.error(
                        f"Candidate failed ({classified.category.value})",
                        model=spec.model,
                        request_id=request.request_id,
                        attempts=attempts,
                        error=e,
                    )
                    return CandidateFailure(
                        spec.provider, spec.model, category=classified.category,
                        attempts=attempts, retries=retries, error=e,
                    )

                provider_log.warning(
                    f"Retrying after {classified.category.value} error",
                    model=spec.model,
                    request_id=request.request_id,
                    attempt=attempts,
                    delay_s=round(delay, 3),
                )
                # A retry landing exactly on the deadline has no time left to run
                if run.deadline_at is not None and self._clock() + delay >= run.deadline_at:
                    await self._raise_deadline(
                        run, spec, breaker, permit, attempts, retries, last,
                        f"backoff of {delay:.2f}s exceeds deadline",
                    )
                if delay > 0:
                    try:
                        await self._sleep(delay)
                    except BaseException:
                        await breaker.release(permit)
                        raise
                retries += 1
                continue

            latency_ms = (self._clock() - start) * 1000
            response = response.model_copy(update={
                "provider": spec.provider,
                "model": spec.model,
                "latency_ms": response.latency_ms if response.latency_ms is not None else latency_ms,
                "attempts": run.dispatches,
            })
            cost = adapter.estimate_cost(spec, response)
            if cost is not None:
                response = response.model_copy(update={"cost_usd": cost})

            await breaker.record_success(permit)
            await self.tracker.record_success(spec.provider, response.latency_ms, cost)
            if key:
                self.idempotency.complete(key, response)
            provider_log.log_usage(response.usage, spec.model, request.request_id)
            await self._emit(AttemptMetrics(
                request_id=request.request_id,
                provider=spec.provider,
                model=spec.model,
                attempt=attempts,
                latency_ms=response.latency_ms,
                success=True,
                input_tokens=int(response.usage.get("prompt_tokens") or 0),
                output_tokens=int(response.usage.get("completion_tokens") or 0),
                cost_usd=cost,
            ))
            return response

    def _remaining(self, run: _RequestRun) -> Optional[float]:
        if run.deadline_at is None:
            return None
        return run.deadline_at - self._clock()

    async def _acquire_tokens(self, run: _RequestRun, spec: ProviderModelSpec) -> None:
        """Wait on the provider's bucket; raises RateLimitTimeoutError past the deadline."""
        timeout = self._remaining(run)
        if timeout is not None:
            timeout = max(timeout, 0.0)
        await self.limiter.acquire(spec.provider, run.request.tokens_needed, timeout=timeout)

    async def _raise_deadline(
        self,
        run: _RequestRun,
        spec: ProviderModelSpec,
        breaker: CircuitBreaker,
        permit: CircuitPermit,
        attempts: int,
        retries: int,
        last: Optional[ClassifiedError],
        reason: str
    ) -> NoReturn:
        """End the candidate at the deadline, keeping its last classified failure."""
        if last is not None:
            await self._report_terminal(breaker, permit, last)
        else:
            await breaker.release(permit)
        failure = CandidateFailure(
            spec.provider, spec.model,
            category=last.category if last is not None else None,
            attempts=attempts, retries=retries,
            error=last.error if last is not None else None,
            skip_reason="deadline",
        )
        raise RequestCancelledError(run.request.request_id, reason, run.failures + [failure])

    async def _dispatch(
        self,
        run: _RequestRun,
        adapter: ProviderAdapter,
        spec: ProviderModelSpec,
        timeout: Optional[float]
    ) -> CompletionResponse:
        """One adapter call, bounded by ``timeout`` seconds when one is set."""
        if timeout is None:
            return await adapter.dispatch(run.request, spec)

        # asyncio.wait keeps the adapter's own TimeoutError distinct from ours
        task = asyncio.ensure_future(adapter.dispatch(run.request, spec))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise _DeadlineExceeded()
        return task.result()

    async def _report_terminal(
        self,
        breaker: CircuitBreaker,
        permit: CircuitPermit,
        classified: ClassifiedError
    ) -> None:
        if classified.trips_breaker:
            await breaker.record_failure(permit)
        else:
            await breaker.release(permit)

    async def _refresh_credentials(
        self,
        adapter: ProviderAdapter,
        spec: ProviderModelSpec,
        request: CompletionRequest
    ) -> bool:
        try:
            refreshed = await adapter.refresh_credentials()
        except Exception as e:
            self._logger(spec.provider).error(
                "Credential refresh failed", model=spec.model,
                request_id=request.request_id, error=e,
            )
            return False
        if not refreshed:
            self._logger(spec.provider).warning(
                "No credential refresh available, advancing",
                model=spec.model, request_id=request.request_id,
            )
        return refreshed

    async def _resolve_existing(self, key: str, record: IdempotencyRecord) -> CompletionResponse:
        """Answer a repeated idempotency key without dispatching again."""
        if record.status == DispatchStatus.COMPLETED and record.response is not None:
            logger.info(
                f"Returning cached response for idempotency key {key}",
                extra={"idempotency_key": key, "provider": record.provider}
            )
            return record.response

        adapter = self.adapters.get(record.provider)
        spec = self._find_spec(record.provider, record.model)
        if adapter is None or spec is None:
            raise AmbiguousOutcomeError(key, record.provider, record.model, record.error)
        return await self._replay_or_raise(key, adapter, spec, record.error)

    async def _replay_or_raise(
        self,
        key: str,
        adapter: ProviderAdapter,
        spec: ProviderModelSpec,
        error: Optional[BaseException],
        attempts: int = 0
    ) -> CompletionResponse:
        if adapter.supports_idempotent_replay:
            response = await adapter.replay(key, spec)
            if response is not None:
                if attempts:
                    response = response.model_copy(update={"attempts": attempts})
                self.idempotency.complete(key, response)
                self._logger(spec.provider).info(
                    "Recovered outcome via idempotent replay",
                    model=spec.model, idempotency_key=key,
                )
                await self._emit(AttemptMetrics(
                    request_id=None,
                    provider=spec.provider,
                    model=spec.model,
                    attempt=0,
                    latency_ms=0.0,
                    success=True,
                    replayed=True,
                ))
                return response
        raise AmbiguousOutcomeError(key, spec.provider, spec.model, error)

    def _find_spec(self, provider: str, model: str) -> Optional[ProviderModelSpec]:
        for spec in self.router.specs:
            if spec.provider == provider and spec.model == model:
                return spec
        return None

    async def _emit(self, metrics: AttemptMetrics) -> None:
        for sink in self.metrics_sinks:
            try:
                await sink.record(metrics)
            except Exception as e:
                logger.error(f"Metrics sink {type(sink).__name__} failed: {e}")

    def _logger(self, provider: str) -> RelayLogger:
        if provider not in self._loggers:
            self._loggers[provider] = RelayLogger(provider)
        return self._loggers[provider]
