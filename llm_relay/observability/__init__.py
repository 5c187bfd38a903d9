"""Health tracking, metrics and structured logging."""

from .health import HealthTracker, ProviderHealth
from .logging import RelayLogger
from .metrics import AttemptMetrics
from .models import ProviderTelemetry
from .sinks import InMemoryMetricsSink, MetricsSink, MetricsSummary

__all__ = [
    "AttemptMetrics",
    "HealthTracker",
    "InMemoryMetricsSink",
    "MetricsSink",
    "MetricsSummary",
    "ProviderHealth",
    "ProviderTelemetry",
    "RelayLogger",
]
