"""
Example: Fallback and Telemetry

This example routes requests over two providers, one of which keeps
failing, and shows the breaker opening and the telemetry the relay keeps.
It runs offline: both providers are plain async functions.
"""

import asyncio
import random

from llm_relay import (
    CallableAdapter,
    CompletionRequest,
    ExhaustionError,
    ProviderError,
    ProviderModelSpec,
    RelayClient,
    RelayConfig,
)
from llm_relay.config.settings import ProviderSettings, RetryPolicy


SPECS = [
    ProviderModelSpec(
        provider="flaky",
        model="flaky-large",
        capabilities={"chat": 9, "code": 9},
        cost_per_1k_tokens=0.002,
        max_context=128000,
        avg_latency_ms=800,
    ),
    ProviderModelSpec(
        provider="steady",
        model="steady-medium",
        capabilities={"chat": 8, "code": 7},
        cost_per_1k_tokens=0.003,
        max_context=200000,
        avg_latency_ms=1200,
    ),
]


async def flaky_dispatch(request, spec):
    await asyncio.sleep(0.01)
    raise ProviderError("upstream overloaded", provider="flaky", status_code=503)


async def steady_dispatch(request, spec):
    await asyncio.sleep(random.uniform(0.01, 0.05))
    return f"{spec.model} answered: {request.payload}"


async def example_fallback():
    """Send a few requests and watch the failing provider get skipped."""
    print("=== Fallback ===\n")

    config = RelayConfig(
        models=SPECS,
        providers={
            "flaky": ProviderSettings(failure_threshold=2, cool_down_seconds=30),
            "steady": ProviderSettings(tokens_per_second=5, max_tokens=5),
        },
        # Keep the example fast: no in-place retries
        retry=RetryPolicy(per_candidate_retry_cap=0),
    )
    client = RelayClient(
        config=config,
        adapters=[
            CallableAdapter("flaky", flaky_dispatch),
            CallableAdapter("steady", steady_dispatch),
        ],
    )

    for i in range(4):
        request = CompletionRequest(
            payload=f"question {i}",
            required_capabilities=frozenset({"chat"}),
        )
        try:
            response = await client.submit(request, deadline=5.0)
        except ExhaustionError as e:
            print(f"Request {i} failed everywhere: {[f.to_dict() for f in e.failures]}")
            continue
        print(f"Request {i}: {response.output} (attempts={response.attempts})")

    print("\nTelemetry:")
    for name, telemetry in client.telemetry().items():
        print(
            f"  {name}: circuit={telemetry.circuit_state} "
            f"health={telemetry.health_score:.2f} "
            f"successes={telemetry.success_count} failures={telemetry.failure_count}"
        )


async def example_explain():
    """Dry-run routing without dispatching anything."""
    print("\n=== Candidate Ranking ===\n")

    client = RelayClient(
        config=RelayConfig(models=SPECS),
        adapters=[
            CallableAdapter("flaky", flaky_dispatch),
            CallableAdapter("steady", steady_dispatch),
        ],
    )
    request = CompletionRequest(
        payload=None,
        required_capabilities=frozenset({"code"}),
    )
    for explanation in client.explain(request):
        print(f"  {explanation.to_dict()}")


async def main():
    await example_fallback()
    await example_explain()


if __name__ == "__main__":
    asyncio.run(main())
