"""
Capability-based candidate selection.

Ranks the static provider/model table against a request: hard constraints
and capability minimums filter, a weighted capability sum plus a cost bonus
scores, and observed latency breaks ties.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..config.settings import RoutingSettings
from ..core.errors import NoCandidateError
from ..models.specs import CompletionRequest, ProviderModelSpec

logger = logging.getLogger(__name__)

LatencyLookup = Callable[[str], Optional[float]]


@dataclass
class CandidateExplanation:
    """A spec's outcome in one routing decision."""
    spec: ProviderModelSpec
    score: Optional[float] = None
    rejected_reason: Optional[str] = None
    rank: Optional[int] = None

    @property
    def eligible(self) -> bool:
        return self.rejected_reason is None

    def to_dict(self) -> Dict:
        return {
            "provider": self.spec.provider,
            "model": self.spec.model,
            "score": self.score,
            "rank": self.rank,
            "rejected_reason": self.rejected_reason,
        }


class CapabilityRouter:
    """Orders provider/model specs for a request."""

    def __init__(
        self,
        specs: Iterable[ProviderModelSpec],
        settings: Optional[RoutingSettings] = None,
        latency_lookup: Optional[LatencyLookup] = None,
    ):
        """
        Args:
            specs: The capability/cost table; read-only after this point
            settings: Weights and the minimum capability score
            latency_lookup: Observed average latency per provider, used
                ahead of the static spec latency for tie-breaking
        """
        self._specs: Tuple[ProviderModelSpec, ...] = tuple(specs)
        self.settings = settings or RoutingSettings()
        self._latency_lookup = latency_lookup

        keys = [s.key for s in self._specs]
        duplicates = {k for k in keys if keys.count(k) > 1}
        if duplicates:
            raise ValueError(f"Duplicate provider/model specs: {sorted(duplicates)}")

    @property
    def specs(self) -> Tuple[ProviderModelSpec, ...]:
        return self._specs

    @property
    def reference_cost(self) -> float:
        if self.settings.reference_cost_per_1k is not None:
            return self.settings.reference_cost_per_1k
        if not self._specs:
            return 0.0
        return max(s.cost_per_1k_tokens for s in self._specs)

    def select_candidates(self, request: CompletionRequest) -> List[ProviderModelSpec]:
        """
        Return eligible specs, best first.

        Raises:
            NoCandidateError: If no spec satisfies the request
        """
        explanations = self.explain(request)
        ranked = [e for e in explanations if e.eligible]
        if not ranked:
            reasons = {e.spec.key: e.rejected_reason for e in explanations}
            raise NoCandidateError(
                f"No provider/model satisfies request {request.request_id}", reasons=reasons
            )

        logger.debug(
            f"Routing request {request.request_id}",
            extra={
                "request_id": request.request_id,
                "candidates": [e.spec.key for e in ranked],
            }
        )
        return [e.spec for e in ranked]

    def explain(self, request: CompletionRequest) -> List[CandidateExplanation]:
        """Every spec with its score and rank, or the reason it was filtered."""
        explanations = []
        for spec in self._specs:
            reason = self._rejection_reason(spec, request)
            if reason is not None:
                explanations.append(CandidateExplanation(spec, rejected_reason=reason))
            else:
                explanations.append(CandidateExplanation(spec, score=self.score(spec, request)))

        eligible = sorted(
            (e for e in explanations if e.eligible),
            key=lambda e: self._sort_key(e.spec, e.score),
        )
        for rank, explanation in enumerate(eligible, start=1):
            explanation.rank = rank
        rejected = [e for e in explanations if not e.eligible]
        return eligible + rejected

    def score(self, spec: ProviderModelSpec, request: CompletionRequest) -> float:
        required = sum(spec.capability_score(tag) for tag in request.required_capabilities)
        preferred = sum(spec.capability_score(tag) for tag in request.preferred_capabilities)
        cost_bonus = (self.reference_cost - spec.cost_per_1k_tokens) * self.settings.cost_weight
        return (
            self.settings.required_weight * required
            + self.settings.preferred_weight * preferred
            + cost_bonus
        )

    def _rejection_reason(self, spec: ProviderModelSpec, request: CompletionRequest) -> Optional[str]:
        constraints = request.constraints
        if (constraints.max_cost_per_1k_tokens is not None
                and spec.cost_per_1k_tokens > constraints.max_cost_per_1k_tokens):
            return "max_cost"
        if (constraints.max_latency_ms is not None
                and spec.avg_latency_ms > constraints.max_latency_ms):
            return "max_latency"
        if constraints.min_context is not None and spec.max_context < constraints.min_context:
            return "min_context"

        for tag in sorted(request.required_capabilities):
            if spec.capability_score(tag) < self.settings.min_capability_score:
                return f"capability:{tag}"
        return None

    def _sort_key(self, spec: ProviderModelSpec, score: float):
        observed = self._latency_lookup(spec.provider) if self._latency_lookup else None
        latency = observed if observed is not None else spec.avg_latency_ms
        return (-score, latency, spec.provider, spec.model)
