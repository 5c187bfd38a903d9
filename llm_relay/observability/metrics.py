from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class AttemptMetrics:
    request_id: Optional[str]
    provider: str
    model: str
    attempt: int  # 1-based dispatch number on this candidate
    latency_ms: float
    success: bool
    error_category: Optional[str] = None
    error_class: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: Optional[float] = None
    retry_delay_s: Optional[float] = None  # backoff scheduled after this attempt
    replayed: bool = False
