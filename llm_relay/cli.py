"""CLI entry point for llm-relay."""

import argparse
import json
import sys
from typing import List, Optional

from .config.loader import ConfigError, load_config
from .models.specs import CompletionRequest, RequestConstraints
from .routing.selector import CapabilityRouter


def _split_tags(value: Optional[str]) -> frozenset:
    if not value:
        return frozenset()
    return frozenset(tag.strip() for tag in value.split(",") if tag.strip())


def list_models(config_path: Optional[str] = None, as_json: bool = False) -> int:
    """Print the capability/cost table."""
    config = load_config(config_path)

    if as_json:
        print(json.dumps([spec.model_dump() for spec in config.models], indent=2))
        return 0

    print("Configured Models:")
    print("-" * 50)
    for spec in config.models:
        print(f"{spec.provider}/{spec.model}")
        print(f"   Context: {spec.max_context:,} tokens, ~{spec.avg_latency_ms:.0f} ms")
        print(f"   Cost: ${spec.cost_per_1k_tokens}/1k tokens")
        capabilities = ", ".join(f"{k}={v}" for k, v in sorted(spec.capabilities.items()))
        print(f"   Capabilities: {capabilities}")
        print()
    return 0


def rank_candidates(
    required: Optional[str],
    preferred: Optional[str] = None,
    max_cost: Optional[float] = None,
    max_latency: Optional[float] = None,
    min_context: Optional[int] = None,
    config_path: Optional[str] = None,
    as_json: bool = False,
) -> int:
    """Rank the table for a capability query; exit code 1 when nothing qualifies."""
    config = load_config(config_path)
    router = CapabilityRouter(config.models, config.routing)
    request = CompletionRequest(
        payload=None,
        required_capabilities=_split_tags(required),
        preferred_capabilities=_split_tags(preferred),
        constraints=RequestConstraints(
            max_cost_per_1k_tokens=max_cost,
            max_latency_ms=max_latency,
            min_context=min_context,
        ),
    )
    explanations = router.explain(request)

    if as_json:
        print(json.dumps([e.to_dict() for e in explanations], indent=2))
    else:
        for e in explanations:
            if e.eligible:
                print(f"{e.rank:>2}. {e.spec.key:<45} score={e.score:.2f}")
            else:
                print(f" -  {e.spec.key:<45} rejected: {e.rejected_reason}")

    return 0 if any(e.eligible for e in explanations) else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI function."""
    parser = argparse.ArgumentParser(description="llm-relay CLI")
    parser.add_argument('--config', help='Path to a JSON config file')
    parser.add_argument('--json', action='store_true', help='Print JSON output')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('models', help='List the capability/cost table')

    candidates_parser = subparsers.add_parser('candidates', help='Rank models for a capability query')
    candidates_parser.add_argument('--require', help='Comma-separated required capabilities')
    candidates_parser.add_argument('--prefer', help='Comma-separated preferred capabilities')
    candidates_parser.add_argument('--max-cost', type=float, help='Maximum USD per 1k tokens')
    candidates_parser.add_argument('--max-latency', type=float, help='Maximum typical latency in ms')
    candidates_parser.add_argument('--min-context', type=int, help='Minimum context window')

    args = parser.parse_args(argv)

    try:
        if args.command == 'models':
            return list_models(args.config, args.json)
        elif args.command == 'candidates':
            return rank_candidates(
                args.require,
                args.prefer,
                args.max_cost,
                args.max_latency,
                args.min_context,
                args.config,
                args.json,
            )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
