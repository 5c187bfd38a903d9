"""
Terminal errors raised to callers of the relay.

Retryable provider failures never escape the executor on their own; they
surface only inside an ExhaustionError once every candidate has been tried.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from ..reliability.error_classifier import ErrorCategory


class RelayError(Exception):
    """Base class for every error the relay raises to its callers."""


@dataclass
class CandidateFailure:
    """Why one candidate did not serve the request."""
    provider: str
    model: str
    category: Optional[ErrorCategory] = None
    attempts: int = 0  # dispatches actually made
    retries: int = 0
    error: Optional[BaseException] = field(default=None, repr=False)
    skip_reason: Optional[str] = None  # e.g. circuit_open, context_limit, deadline

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "model": self.model,
            "category": self.category.value if self.category else None,
            "attempts": self.attempts,
            "retries": self.retries,
            "error_type": type(self.error).__name__ if self.error is not None else None,
            "error": str(self.error) if self.error is not None else None,
            "skip_reason": self.skip_reason,
        }


class NoCandidateError(RelayError):
    """No provider/model in the table satisfies the request."""

    def __init__(self, message: str, reasons: Optional[dict] = None):
        super().__init__(message)
        self.reasons = reasons or {}


class ExhaustionError(RelayError):
    """Every candidate was tried or skipped without success."""

    def __init__(self, request_id: str, failures: List[CandidateFailure]):
        summary = ", ".join(
            f"{f.provider}/{f.model}={f.skip_reason or (f.category.value if f.category else 'unknown')}"
            for f in failures
        )
        super().__init__(f"All candidates failed for request {request_id}: {summary}")
        self.request_id = request_id
        self.failures = failures

    @property
    def last_error(self) -> Optional[BaseException]:
        for failure in reversed(self.failures):
            if failure.error is not None:
                return failure.error
        return None


class RequestCancelledError(RelayError):
    """The request deadline passed before a candidate succeeded."""

    def __init__(self, request_id: str, reason: str, failures: Optional[List[CandidateFailure]] = None):
        super().__init__(f"Request {request_id} cancelled: {reason}")
        self.request_id = request_id
        self.reason = reason
        self.failures = failures or []


class AmbiguousOutcomeError(RelayError):
    """
    A side-effecting dispatch may have happened and cannot be confirmed.

    Raised for idempotent requests when an earlier dispatch under the same
    key failed or is still in flight and the adapter cannot replay it.
    """

    def __init__(self, idempotency_key: str, provider: str, model: str,
                 error: Optional[BaseException] = None):
        super().__init__(
            f"Outcome of dispatch {idempotency_key!r} on {provider}/{model} is unknown"
        )
        self.idempotency_key = idempotency_key
        self.provider = provider
        self.model = model
        self.error = error
