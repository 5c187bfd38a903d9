# Default capability/cost table, built from per-family defaults plus model
# overrides. Capability scores are relative judgements on a 1..10 scale.
from typing import Any, Dict, List

from ..models.specs import ProviderModelSpec

MODEL_FAMILIES: Dict[str, Dict[str, Any]] = {
    "gpt-4": {
        "provider": "openai",
        "max_context": 128000,
        "avg_latency_ms": 1800.0,
    },
    "gpt-5": {
        "provider": "openai",
        "max_context": 256000,
        "avg_latency_ms": 2500.0,
    },
    "claude": {
        "provider": "anthropic",
        "max_context": 200000,
        "avg_latency_ms": 2000.0,
    },
    "gemini": {
        "provider": "google",
        "max_context": 1000000,
        "avg_latency_ms": 2200.0,
    },
}


def create_model_spec(family: str, model: str, overrides: Dict[str, Any]) -> ProviderModelSpec:
    """Create a spec by combining family defaults with model overrides."""
    if family not in MODEL_FAMILIES:
        raise ValueError(f"Unknown model family: {family}")

    base = dict(MODEL_FAMILIES[family])
    base.update(overrides)
    base["model"] = model
    return ProviderModelSpec(**base)


DEFAULT_MODEL_SPECS: List[ProviderModelSpec] = [
    create_model_spec("gpt-4", "gpt-4o-mini", {
        "capabilities": {"chat": 7, "code": 6, "reasoning": 5, "speed": 9, "vision": 6},
        "cost_per_1k_tokens": 0.000375,
        "avg_latency_ms": 900.0,
    }),
    create_model_spec("gpt-4", "gpt-4o", {
        "capabilities": {"chat": 9, "code": 8, "reasoning": 8, "creative": 9, "speed": 6, "vision": 9},
        "cost_per_1k_tokens": 0.00625,
    }),
    create_model_spec("gpt-5", "gpt-5-mini", {
        "capabilities": {"chat": 8, "code": 8, "reasoning": 8, "speed": 7},
        "cost_per_1k_tokens": 0.001125,
        "avg_latency_ms": 1500.0,
    }),
    create_model_spec("gpt-5", "gpt-5", {
        "capabilities": {"chat": 9, "code": 9, "reasoning": 10, "creative": 8, "speed": 4},
        "cost_per_1k_tokens": 0.005625,
        "max_context": 400000,
    }),
    create_model_spec("claude", "claude-3-5-haiku-latest", {
        "capabilities": {"chat": 7, "code": 6, "reasoning": 5, "speed": 9},
        "cost_per_1k_tokens": 0.0024,
        "avg_latency_ms": 800.0,
    }),
    create_model_spec("claude", "claude-sonnet-4-20250514", {
        "capabilities": {"chat": 9, "code": 10, "reasoning": 9, "creative": 8, "speed": 6, "vision": 8},
        "cost_per_1k_tokens": 0.009,
    }),
    create_model_spec("gemini", "gemini-2.5-pro", {
        "capabilities": {"chat": 8, "code": 8, "reasoning": 9, "long_context": 10, "vision": 8},
        "cost_per_1k_tokens": 0.005625,
    }),
]
