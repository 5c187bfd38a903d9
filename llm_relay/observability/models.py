"""Telemetry models exposed to callers and the HTTP layer."""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class ProviderTelemetry(BaseModel):
    """Point-in-time view of one provider."""
    provider: str
    circuit_state: str = "closed"
    health_score: float = Field(1.0, ge=0.0, le=1.0)
    success_rate: float = Field(1.0, ge=0.0, le=1.0, description="Over the rolling window")
    average_latency_ms: Optional[float] = Field(None, description="Over the rolling window")
    total_cost_usd: float = 0.0
    success_count: int = 0
    failure_count: int = 0
    window_samples: int = 0
    consecutive_failures: int = 0
    available_tokens: Optional[float] = None
    last_failure_at: Optional[float] = None
    failures_by_category: Dict[str, int] = Field(default_factory=dict)
