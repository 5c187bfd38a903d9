"""
In-memory metrics sink for testing and debugging.

Keeps the most recent attempt records in a bounded buffer and answers
simple queries and summaries over them.
"""

from __future__ import annotations

import asyncio
import statistics
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple

from ..metrics import AttemptMetrics


@dataclass
class MetricsSummary:
    """Summary statistics for a set of attempts."""
    count: int = 0
    avg_latency_ms: float = 0.0
    p50_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    total_tokens: int = 0
    total_cost: float = 0.0
    error_rate: float = 0.0
    providers: Dict[str, int] = field(default_factory=dict)
    errors: Dict[str, int] = field(default_factory=dict)


class InMemoryMetricsSink:
    """
    In-memory attempt storage with query capabilities.

    Features:
    - Fixed-size circular buffer
    - Time-based windowing
    - Per-provider and per-category aggregation
    """

    def __init__(self, max_size: int = 10000, clock: Callable[[], float] = time.time):
        self.max_size = max_size
        self._clock = clock
        self._metrics: Deque[Tuple[float, AttemptMetrics]] = deque(maxlen=max_size)
        self._lock = asyncio.Lock()

    async def record(self, metrics: AttemptMetrics) -> None:
        """Record an attempt."""
        async with self._lock:
            self._metrics.append((self._clock(), metrics))

    async def flush(self) -> None:
        """No-op for in-memory sink."""
        pass

    async def get_metrics(
        self,
        provider: Optional[str] = None,
        request_id: Optional[str] = None,
        limit: int = 1000
    ) -> List[AttemptMetrics]:
        """Query recorded attempts, oldest first."""
        async with self._lock:
            results = []
            for _, metric in self._metrics:
                if provider and metric.provider != provider:
                    continue
                if request_id and metric.request_id != request_id:
                    continue
                results.append(metric)
                if len(results) >= limit:
                    break
            return results

    async def get_summary(
        self,
        window_seconds: float = 300,
        provider: Optional[str] = None
    ) -> MetricsSummary:
        """
        Get summary statistics for a time window.

        Args:
            window_seconds: Time window in seconds (default 5 minutes)
            provider: Optional provider filter
        """
        async with self._lock:
            start_time = self._clock() - window_seconds

            latencies = []
            total_tokens = 0
            total_cost = 0.0
            error_count = 0
            provider_counts: Dict[str, int] = defaultdict(int)
            error_counts: Dict[str, int] = defaultdict(int)

            for timestamp, metric in self._metrics:
                if timestamp < start_time:
                    continue
                if provider and metric.provider != provider:
                    continue

                latencies.append(metric.latency_ms)
                total_tokens += metric.input_tokens + metric.output_tokens
                total_cost += metric.cost_usd or 0.0
                provider_counts[metric.provider] += 1
                if not metric.success:
                    error_count += 1
                    error_counts[metric.error_category or "unknown"] += 1

            summary = MetricsSummary()
            summary.count = len(latencies)
            if latencies:
                summary.avg_latency_ms = statistics.mean(latencies)
                summary.p50_latency_ms = statistics.median(latencies)
                if len(latencies) >= 20:
                    sorted_latencies = sorted(latencies)
                    summary.p95_latency_ms = sorted_latencies[int(len(latencies) * 0.95)]
                summary.error_rate = error_count / len(latencies)

            summary.total_tokens = total_tokens
            summary.total_cost = total_cost
            summary.providers = dict(provider_counts)
            summary.errors = dict(error_counts)
            return summary

    def clear(self) -> None:
        self._metrics.clear()

    def __len__(self) -> int:
        return len(self._metrics)
