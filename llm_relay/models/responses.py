from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CompletionResponse(BaseModel):
    """Response model for a served request."""
    output: Any
    provider: str
    model: str
    usage: Dict[str, Any] = Field(default_factory=dict)
    cost_usd: Optional[float] = None
    latency_ms: Optional[float] = None
    attempts: int = 1
    finish_reason: Optional[str] = None
    replayed: bool = False  # served from an idempotent replay instead of a dispatch
    raw: Any = Field(None, exclude=True)
