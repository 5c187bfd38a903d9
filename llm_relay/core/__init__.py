from .errors import (
    AmbiguousOutcomeError,
    CandidateFailure,
    ExhaustionError,
    NoCandidateError,
    RelayError,
    RequestCancelledError,
)

__all__ = [
    "AmbiguousOutcomeError",
    "CandidateFailure",
    "ExhaustionError",
    "NoCandidateError",
    "RelayError",
    "RequestCancelledError",
]
