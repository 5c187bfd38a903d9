"""
Error classification for retry, fallback and circuit breaker decisions.

Every exception that reaches the executor is mapped to exactly one
ErrorCategory. Known exception types (openai, anthropic, httpx, builtins)
are matched first, then HTTP status codes, then message patterns; anything
left over is FATAL.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Dict, Optional, Set, Tuple, Type

import anthropic
import httpx
import openai
import pydantic

from ..config.settings import ClassifierSettings
from ..providers.base import ResponseParseError


class ErrorCategory(Enum):
    """Standard error categories across all providers."""
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    SERVER = "server"
    TRANSIENT = "transient"
    PARSE = "parse"
    CLIENT = "client"
    FATAL = "fatal"


RETRYABLE_CATEGORIES: Set[ErrorCategory] = {
    ErrorCategory.RATE_LIMIT,
    ErrorCategory.AUTH,
    ErrorCategory.SERVER,
    ErrorCategory.TRANSIENT,
    ErrorCategory.PARSE,
}

# Rate limits are a separate state machine; client errors are the request's fault.
NON_TRIPPING_CATEGORIES: Set[ErrorCategory] = {
    ErrorCategory.RATE_LIMIT,
    ErrorCategory.CLIENT,
}


@dataclass(frozen=True)
class ClassifiedError:
    """Actionable view of a failure, derived on every failure."""
    category: ErrorCategory
    should_retry: bool
    retry_after: Optional[float] = None
    retry_after_is_hint: bool = False  # True when the provider itself said how long to wait
    requires_credential_refresh: bool = False
    user_message: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def trips_breaker(self) -> bool:
        """Whether this failure counts toward the provider's circuit breaker."""
        return self.category not in NON_TRIPPING_CATEGORIES

    @property
    def error_type(self) -> Optional[str]:
        return type(self.error).__name__ if self.error is not None else None


# Vendor exception types, most specific first.
VENDOR_ERROR_TYPES: Tuple[Tuple[Type[BaseException], ErrorCategory], ...] = (
    (openai.RateLimitError, ErrorCategory.RATE_LIMIT),
    (openai.AuthenticationError, ErrorCategory.AUTH),
    (openai.PermissionDeniedError, ErrorCategory.AUTH),
    (openai.InternalServerError, ErrorCategory.SERVER),
    (openai.APITimeoutError, ErrorCategory.TRANSIENT),
    (openai.APIConnectionError, ErrorCategory.TRANSIENT),
    (openai.APIResponseValidationError, ErrorCategory.PARSE),
    (openai.BadRequestError, ErrorCategory.CLIENT),
    (openai.NotFoundError, ErrorCategory.CLIENT),
    (openai.ConflictError, ErrorCategory.CLIENT),
    (openai.UnprocessableEntityError, ErrorCategory.CLIENT),
    (anthropic.RateLimitError, ErrorCategory.RATE_LIMIT),
    (anthropic.AuthenticationError, ErrorCategory.AUTH),
    (anthropic.PermissionDeniedError, ErrorCategory.AUTH),
    (anthropic.InternalServerError, ErrorCategory.SERVER),
    (anthropic.APITimeoutError, ErrorCategory.TRANSIENT),
    (anthropic.APIConnectionError, ErrorCategory.TRANSIENT),
    (anthropic.APIResponseValidationError, ErrorCategory.PARSE),
    (anthropic.BadRequestError, ErrorCategory.CLIENT),
    (anthropic.NotFoundError, ErrorCategory.CLIENT),
    (anthropic.ConflictError, ErrorCategory.CLIENT),
    (anthropic.UnprocessableEntityError, ErrorCategory.CLIENT),
    (httpx.TimeoutException, ErrorCategory.TRANSIENT),
    (httpx.NetworkError, ErrorCategory.TRANSIENT),
    (httpx.RemoteProtocolError, ErrorCategory.TRANSIENT),
    (httpx.DecodingError, ErrorCategory.PARSE),
    (ResponseParseError, ErrorCategory.PARSE),
    (json.JSONDecodeError, ErrorCategory.PARSE),
    (pydantic.ValidationError, ErrorCategory.PARSE),
    (TimeoutError, ErrorCategory.TRANSIENT),
    (ConnectionError, ErrorCategory.TRANSIENT),
)

# Type-name fragments for wrapped or mocked vendor errors.
ERROR_TYPE_NAMES: Tuple[Tuple[str, ErrorCategory], ...] = (
    ("RateLimit", ErrorCategory.RATE_LIMIT),
    ("Authentication", ErrorCategory.AUTH),
    ("PermissionDenied", ErrorCategory.AUTH),
    ("InternalServer", ErrorCategory.SERVER),
    ("Timeout", ErrorCategory.TRANSIENT),
    ("Connection", ErrorCategory.TRANSIENT),
)

# Message patterns, checked in this order.
ERROR_PATTERNS: Tuple[Tuple[ErrorCategory, Tuple[str, ...]], ...] = (
    (ErrorCategory.RATE_LIMIT, (
        "rate limit", "rate_limit", "too many requests", "too_many_requests",
        "quota exceeded", "throttled", "retry later",
    )),
    (ErrorCategory.AUTH, (
        "invalid api key", "invalid_api_key", "authentication failed",
        "unauthorized", "forbidden", "permission denied",
    )),
    (ErrorCategory.SERVER, (
        "server error", "internal error", "service unavailable", "bad gateway",
        "overloaded", "server_error",
    )),
    (ErrorCategory.TRANSIENT, (
        "timeout", "timed out", "connection reset", "connection refused",
        "connection error", "connection aborted", "temporarily unavailable",
    )),
    (ErrorCategory.PARSE, (
        "malformed response", "invalid json", "failed to parse", "unexpected response format",
        "decode error",
    )),
    (ErrorCategory.CLIENT, (
        "bad request", "invalid request", "invalid_request", "validation error",
        "context_length_exceeded", "malformed request",
    )),
)

USER_MESSAGES: Dict[ErrorCategory, str] = {
    ErrorCategory.RATE_LIMIT: "Rate limit exceeded, waiting before retrying",
    ErrorCategory.AUTH: "Authentication failed, credentials need a refresh",
    ErrorCategory.SERVER: "Provider server error, retrying shortly",
    ErrorCategory.TRANSIENT: "Transient network failure, retrying",
    ErrorCategory.PARSE: "Malformed provider response, regenerating",
    ErrorCategory.CLIENT: "Request rejected by the provider; retrying will not help",
    ErrorCategory.FATAL: "An unknown error occurred",
}


class ErrorClassifier:
    """Maps raw failures onto the relay's error taxonomy."""

    def __init__(
        self,
        settings: Optional[ClassifierSettings] = None,
        rate_limit_defaults: Optional[Dict[str, float]] = None
    ):
        """
        Args:
            settings: Default retry-after values per category
            rate_limit_defaults: Provider-specific retry-after for a 429
                without a Retry-After header
        """
        self.settings = settings or ClassifierSettings()
        self.rate_limit_defaults = dict(rate_limit_defaults or {})

    def classify(self, error: BaseException, provider: Optional[str] = None) -> ClassifiedError:
        """
        Classify an error.

        Args:
            error: The exception to classify
            provider: Provider the error came from, for provider defaults

        Returns:
            ClassifiedError with category, retry decision and delay
        """
        category = self._categorize(error)
        hint = self._get_retry_after_hint(error) if category in RETRYABLE_CATEGORIES else None
        return ClassifiedError(
            category=category,
            should_retry=category in RETRYABLE_CATEGORIES,
            retry_after=hint if hint is not None else self._default_delay(category, provider),
            retry_after_is_hint=hint is not None,
            requires_credential_refresh=category == ErrorCategory.AUTH,
            user_message=USER_MESSAGES[category],
            error=error,
        )

    def _categorize(self, error: BaseException) -> ErrorCategory:
        for error_type, category in VENDOR_ERROR_TYPES:
            if isinstance(error, error_type):
                return category

        status_code = self._get_status_code(error)
        if status_code is not None:
            category = self.categorize_status_code(status_code)
            if category is not None:
                return category

        error_type_name = type(error).__name__
        for fragment, category in ERROR_TYPE_NAMES:
            if fragment in error_type_name:
                return category

        error_str = self._error_text(error)
        for category, patterns in ERROR_PATTERNS:
            if any(pattern in error_str for pattern in patterns):
                return category

        return ErrorCategory.FATAL

    @staticmethod
    def categorize_status_code(status_code: int) -> Optional[ErrorCategory]:
        """Categorize an HTTP status code; None for codes that say nothing."""
        if status_code == 429:
            return ErrorCategory.RATE_LIMIT
        elif status_code in (401, 403):
            return ErrorCategory.AUTH
        elif status_code == 408:
            return ErrorCategory.TRANSIENT
        elif status_code >= 500:
            return ErrorCategory.SERVER
        elif status_code >= 400:
            return ErrorCategory.CLIENT
        return None

    def _default_delay(self, category: ErrorCategory, provider: Optional[str]) -> Optional[float]:
        if category == ErrorCategory.RATE_LIMIT:
            if provider and provider in self.rate_limit_defaults:
                return self.rate_limit_defaults[provider]
            return self.settings.rate_limit_retry_after
        elif category == ErrorCategory.SERVER:
            return self.settings.server_retry_after
        elif category == ErrorCategory.TRANSIENT:
            return self.settings.transient_retry_after
        elif category == ErrorCategory.PARSE:
            return 0.0
        return None

    @staticmethod
    def _get_status_code(error: BaseException) -> Optional[int]:
        status_code = getattr(error, "status_code", None)
        if status_code is None:
            response = getattr(error, "response", None)
            status_code = getattr(response, "status_code", None)
        if isinstance(status_code, int):
            return status_code
        return None

    @staticmethod
    def _get_retry_after_hint(error: BaseException) -> Optional[float]:
        """Extract a provider-supplied retry delay, if any."""
        retry_after = getattr(error, "retry_after", None)
        if isinstance(retry_after, (int, float)) and not isinstance(retry_after, bool):
            return max(float(retry_after), 0.0)

        response = getattr(error, "response", None)
        headers = getattr(response, "headers", None)
        if headers is None:
            return None
        try:
            value = headers.get("Retry-After") or headers.get("retry-after")
        except (AttributeError, TypeError):
            return None
        if not value or not isinstance(value, str):
            return None
        try:
            return max(float(value), 0.0)
        except ValueError:
            pass
        # HTTP-date form
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)

    @staticmethod
    def _error_text(error: BaseException) -> str:
        try:
            text = str(error)
        except Exception:  # noqa: BLE001
            text = ""
        message = getattr(error, "message", None)
        if isinstance(message, str) and message not in text:
            text = f"{text} {message}"
        return text.lower()
