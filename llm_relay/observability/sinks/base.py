"""Base interface for metrics sinks."""

from typing import Protocol

from ..metrics import AttemptMetrics


class MetricsSink(Protocol):
    """Protocol for metrics sink implementations."""

    async def record(self, metrics: AttemptMetrics) -> None:
        """Record metrics data."""
        ...

    async def flush(self) -> None:
        """Flush any buffered metrics."""
        ...
