"""
Structured logging for dispatches.

Every line carries the provider plus whatever request fields are known,
formatted as ``[provider=openai model=gpt-4o request_id=ab12cd34] message``.
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional


class RelayLogger:
    """Structured logger bound to one provider."""

    def __init__(self, provider_name: str):
        self.provider = provider_name
        self.logger = logging.getLogger(f"llm_relay.providers.{provider_name}")

    def _format_message(self, message: str, **kwargs) -> str:
        """Format message with structured fields."""
        fields = [f"provider={self.provider}"]
        for key, value in kwargs.items():
            if value is not None:
                fields.append(f"{key}={value}")
        return f"[{' '.join(fields)}] {message}"

    def debug(self, message: str, model: Optional[str] = None,
              request_id: Optional[str] = None, **kwargs):
        self.logger.debug(
            self._format_message(message, model=model, request_id=request_id, **kwargs)
        )

    def info(self, message: str, model: Optional[str] = None,
             request_id: Optional[str] = None, **kwargs):
        self.logger.info(
            self._format_message(message, model=model, request_id=request_id, **kwargs)
        )

    def warning(self, message: str, model: Optional[str] = None,
                request_id: Optional[str] = None, **kwargs):
        self.logger.warning(
            self._format_message(message, model=model, request_id=request_id, **kwargs)
        )

    def error(self, message: str, model: Optional[str] = None,
              request_id: Optional[str] = None, error: Optional[BaseException] = None, **kwargs):
        """Log error message; ``error`` adds its type and text as fields."""
        if error is not None:
            kwargs['error_type'] = type(error).__name__
            kwargs['error_msg'] = str(error)
        self.logger.error(
            self._format_message(message, model=model, request_id=request_id, **kwargs)
        )

    @contextmanager
    def track_dispatch(self, model: str, request_id: Optional[str] = None, attempt: int = 1):
        """
        Time one dispatch and log its start and successful end.

        Failures are not logged here; the executor logs them once it has
        classified the error.

        Yields:
            Dict with dispatch metadata; ``duration_ms`` is filled in on exit
        """
        start_time = time.monotonic()
        self.debug("Dispatching", model=model, request_id=request_id, attempt=attempt)

        metadata: Dict[str, Any] = {
            'request_id': request_id,
            'model': model,
            'attempt': attempt,
            'duration_ms': None,
        }
        try:
            yield metadata
        finally:
            metadata['duration_ms'] = (time.monotonic() - start_time) * 1000

        self.info(
            "Dispatch succeeded",
            model=model,
            request_id=request_id,
            attempt=attempt,
            duration_ms=int(metadata['duration_ms'])
        )

    def log_usage(self, usage: Dict[str, Any], model: str, request_id: Optional[str]):
        """Log token usage information."""
        self.debug(
            "Token usage",
            model=model,
            request_id=request_id,
            prompt_tokens=usage.get('prompt_tokens'),
            completion_tokens=usage.get('completion_tokens'),
            total_tokens=usage.get('total_tokens'),
        )
