"""
Provider/model reference data and the request unit of work.

ProviderModelSpec rows make up the static capability/cost table the router
ranks against. CompletionRequest is what callers hand to the relay.
"""

import uuid
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


MIN_CAPABILITY_SCORE = 1
MAX_CAPABILITY_SCORE = 10


class ProviderModelSpec(BaseModel):
    """One (provider, model) pair with its capability scores and limits."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: str = Field(..., min_length=1, description="Provider identifier (e.g., 'openai')")
    model: str = Field(..., min_length=1, description="Model identifier as the provider knows it")
    capabilities: Dict[str, int] = Field(default_factory=dict, description="Capability tag -> score 1..10")
    cost_per_1k_tokens: float = Field(0.0, ge=0.0, description="Blended USD cost per 1,000 tokens")
    max_context: int = Field(..., gt=0, description="Maximum context window in tokens")
    avg_latency_ms: float = Field(1000.0, ge=0.0, description="Typical latency used before live data exists")

    @field_validator("capabilities")
    def validate_capabilities(cls, v):
        for tag, score in v.items():
            if not MIN_CAPABILITY_SCORE <= score <= MAX_CAPABILITY_SCORE:
                raise ValueError(
                    f"Capability '{tag}' score {score} outside "
                    f"{MIN_CAPABILITY_SCORE}..{MAX_CAPABILITY_SCORE}"
                )
        return v

    @property
    def key(self) -> str:
        return f"{self.provider}/{self.model}"

    def capability_score(self, tag: str) -> int:
        """Score for a capability tag, 0 when the model does not declare it."""
        return self.capabilities.get(tag, 0)


class RequestConstraints(BaseModel):
    """Hard limits a candidate must satisfy to be considered at all."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_cost_per_1k_tokens: Optional[float] = Field(None, ge=0.0)
    max_latency_ms: Optional[float] = Field(None, ge=0.0)
    min_context: Optional[int] = Field(None, ge=0)


class CompletionRequest(BaseModel):
    """
    A single logical completion request.

    The payload is opaque to the relay and handed to whichever adapter ends
    up serving the request. Requests are immutable once created.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    payload: Any = Field(..., description="Prompt payload (string, messages, anything the adapter accepts)")
    required_capabilities: FrozenSet[str] = Field(default_factory=frozenset)
    preferred_capabilities: FrozenSet[str] = Field(default_factory=frozenset)
    constraints: RequestConstraints = Field(default_factory=RequestConstraints)
    idempotency_key: Optional[str] = Field(
        None, description="At-most-once key for side-effecting calls"
    )

    request_id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    parameters: Dict[str, Any] = Field(
        default_factory=dict, description="Generation parameters passed through to adapters"
    )
    tokens_needed: float = Field(1.0, gt=0.0, description="Rate-limit tokens one dispatch consumes")
    deadline_seconds: Optional[float] = Field(
        None, gt=0.0, description="Overall deadline for the request across all candidates"
    )
