"""
Configuration schema for the relay.

Every tunable the core exposes lives here: per-provider rate and circuit
settings, routing weights, retry policy, classifier defaults and the health
window. Values are validated by pydantic so a bad config fails at startup
rather than on the first request.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.specs import ProviderModelSpec


class ProviderSettings(BaseModel):
    """Rate limit and circuit breaker settings for one provider."""
    model_config = ConfigDict(extra="forbid")

    # Token bucket
    tokens_per_second: float = Field(1.0, gt=0.0, description="Bucket refill rate")
    max_tokens: float = Field(10.0, gt=0.0, description="Bucket capacity (burst size)")

    # Circuit breaker
    failure_threshold: int = Field(5, ge=1, description="Consecutive failures before opening")
    cool_down_seconds: float = Field(60.0, ge=0.0, description="Seconds before a half-open trial")

    # Classifier default when a 429 carries no Retry-After
    rate_limit_retry_after: float = Field(60.0, ge=0.0)


class RoutingSettings(BaseModel):
    """Weights used by the capability router."""
    model_config = ConfigDict(extra="forbid")

    min_capability_score: int = Field(5, ge=0, le=10)
    required_weight: float = Field(3.0, ge=0.0)
    preferred_weight: float = Field(1.0, ge=0.0)
    cost_weight: float = Field(1000.0, ge=0.0, description="Score points per USD/1k saved")
    reference_cost_per_1k: Optional[float] = Field(
        None, ge=0.0, description="Cost the bonus is measured against; defaults to the table maximum"
    )


class RetryPolicy(BaseModel):
    """Per-candidate retry behaviour of the executor."""
    model_config = ConfigDict(extra="forbid")

    per_candidate_retry_cap: int = Field(3, ge=0)
    base_delay: float = Field(0.5, ge=0.0)
    max_delay: float = Field(30.0, ge=0.0)
    jitter_max: float = Field(1.0, ge=0.0, description="Upper bound of the uniform jitter in seconds")
    respect_retry_after: bool = True


class ClassifierSettings(BaseModel):
    """Default retry-after values per error category, in seconds."""
    model_config = ConfigDict(extra="forbid")

    rate_limit_retry_after: float = Field(60.0, ge=0.0)
    server_retry_after: float = Field(5.0, ge=0.0)
    transient_retry_after: float = Field(1.0, ge=0.0)


class HealthSettings(BaseModel):
    """Sliding window and weights for provider health scores."""
    model_config = ConfigDict(extra="forbid")

    window_size: int = Field(100, ge=1, description="Outcomes kept per provider")
    latency_ceiling_ms: float = Field(10000.0, gt=0.0, description="Latency scoring as 0")
    success_weight: float = Field(0.7, ge=0.0, le=1.0)
    latency_weight: float = Field(0.3, ge=0.0, le=1.0)


class RelayConfig(BaseModel):
    """Top-level configuration."""
    model_config = ConfigDict(extra="forbid")

    providers: Dict[str, ProviderSettings] = Field(default_factory=dict)
    models: List[ProviderModelSpec] = Field(default_factory=list)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)

    def provider_settings(self, provider: str) -> ProviderSettings:
        """Settings for a provider, falling back to defaults for unlisted ones."""
        return self.providers.get(provider) or ProviderSettings()
