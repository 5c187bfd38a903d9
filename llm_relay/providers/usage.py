"""
Usage normalization.

Adapters report token usage in one shape so cost estimation and metrics do
not need to know which vendor served a response:
``{"prompt_tokens": int, "completion_tokens": int, "total_tokens": int}``
with an optional ``cache_info`` dict.
"""

from typing import Any, Dict, Optional


def usage_to_dict(usage: Any) -> Optional[Dict[str, Any]]:
    """Turn an SDK usage object (pydantic model, dict or None) into a dict."""
    if usage is None:
        return None
    if isinstance(usage, dict):
        return usage
    if hasattr(usage, "model_dump"):
        return usage.model_dump()
    return dict(getattr(usage, "__dict__", {}))


def normalize_usage(usage_data: Optional[Dict[str, Any]], provider: str) -> Dict[str, Any]:
    """
    Normalize raw vendor usage into the standard shape.

    Args:
        usage_data: Raw usage dict from the provider, may be None
        provider: "openai", "anthropic" or anything else following the
            OpenAI field names

    Returns:
        Dict with prompt, completion and total token counts
    """
    normalized: Dict[str, Any] = {
        "prompt_tokens": 0,
        "completion_tokens": 0,
        "total_tokens": 0,
    }
    if not usage_data:
        return normalized

    cache: Dict[str, Any] = {}
    if provider == "anthropic":
        normalized["prompt_tokens"] = int(usage_data.get("input_tokens") or 0)
        normalized["completion_tokens"] = int(usage_data.get("output_tokens") or 0)
        for field in ("cache_read_input_tokens", "cache_creation_input_tokens"):
            if usage_data.get(field):
                cache[field] = usage_data[field]
    else:
        normalized["prompt_tokens"] = int(usage_data.get("prompt_tokens") or 0)
        normalized["completion_tokens"] = int(usage_data.get("completion_tokens") or 0)
        details = usage_data.get("prompt_tokens_details")
        if isinstance(details, dict) and details.get("cached_tokens"):
            cache["cached_tokens"] = details["cached_tokens"]

    total = usage_data.get("total_tokens")
    if total is None:
        total = normalized["prompt_tokens"] + normalized["completion_tokens"]
    normalized["total_tokens"] = int(total)
    if cache:
        normalized["cache_info"] = cache
    return normalized
