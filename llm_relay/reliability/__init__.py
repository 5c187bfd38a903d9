"""Reliability primitives: rate limiting, classification, breaking, retry."""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerManager,
    CircuitOpenError,
    CircuitPermit,
    CircuitState,
)
from .error_classifier import ClassifiedError, ErrorCategory, ErrorClassifier
from .idempotency import DispatchStatus, IdempotencyManager, IdempotencyRecord
from .rate_limiter import (
    AcquireResult,
    BucketSettings,
    RateLimitTimeoutError,
    TokenBucketLimiter,
)
from .retry import RetryScheduler

__all__ = [
    "AcquireResult",
    "BucketSettings",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerManager",
    "CircuitOpenError",
    "CircuitPermit",
    "CircuitState",
    "ClassifiedError",
    "DispatchStatus",
    "ErrorCategory",
    "ErrorClassifier",
    "IdempotencyManager",
    "IdempotencyRecord",
    "RateLimitTimeoutError",
    "RetryScheduler",
]
