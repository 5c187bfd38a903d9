from .base import MetricsSink
from .in_memory import InMemoryMetricsSink, MetricsSummary

__all__ = ["MetricsSink", "InMemoryMetricsSink", "MetricsSummary"]
