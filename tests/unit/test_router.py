"""Unit tests for capability-based routing."""

import pytest

from llm_relay.config.models import DEFAULT_MODEL_SPECS
from llm_relay.config.settings import RoutingSettings
from llm_relay.core.errors import NoCandidateError
from llm_relay.models.specs import CompletionRequest, ProviderModelSpec, RequestConstraints
from llm_relay.routing.selector import CapabilityRouter


def _request(required=(), preferred=(), **constraints):
    return CompletionRequest(
        payload="hi",
        required_capabilities=frozenset(required),
        preferred_capabilities=frozenset(preferred),
        constraints=RequestConstraints(**constraints),
    )


class TestCapabilityRouter:

    @pytest.fixture
    def router(self, sample_specs):
        return CapabilityRouter(sample_specs)

    def test_orders_by_score(self, router):
        candidates = router.select_candidates(_request(required={"chat"}))
        assert [c.model for c in candidates] == ["alpha-large", "beta-medium", "gamma-long"]

    def test_score_formula(self, router, sample_specs):
        alpha = sample_specs[0]
        request = _request(required={"chat", "code"}, preferred={"reasoning"})
        # 3 * (9 + 8) + 8 + (0.004 - 0.002) * 1000
        assert router.score(alpha, request) == pytest.approx(61.0)

    def test_missing_required_tag_filters(self, router):
        candidates = router.select_candidates(_request(required={"long_context"}))
        assert [c.model for c in candidates] == ["gamma-long"]

    def test_below_minimum_filters(self, router):
        # gamma scores 5 on code, which still qualifies; beta's reasoning of 6 too
        candidates = router.select_candidates(_request(required={"code"}))
        assert len(candidates) == 3
        candidates = router.select_candidates(_request(required={"reasoning"}))
        assert [c.provider for c in candidates] == ["alpha", "beta"]

    def test_missing_preferred_tag_scores_zero(self, router, sample_specs):
        gamma = sample_specs[2]
        assert router.score(gamma, _request(preferred={"vision"})) == pytest.approx(0.0)

    def test_hard_constraints(self, router):
        assert [c.provider for c in router.select_candidates(
            _request(required={"chat"}, max_cost_per_1k_tokens=0.003)
        )] == ["alpha", "beta"]
        assert [c.provider for c in router.select_candidates(
            _request(required={"chat"}, max_latency_ms=1300)
        )] == ["beta"]

    def test_min_context_leaves_single_candidate(self, router):
        candidates = router.select_candidates(_request(required={"chat"}, min_context=500000))
        assert [c.model for c in candidates] == ["gamma-long"]

    def test_no_candidate(self, router):
        with pytest.raises(NoCandidateError) as exc_info:
            router.select_candidates(_request(required={"vision"}))
        assert exc_info.value.reasons["alpha/alpha-large"] == "capability:vision"

    def test_tie_break_on_static_latency(self):
        specs = [
            ProviderModelSpec(provider="p1", model="m", capabilities={"chat": 8},
                              cost_per_1k_tokens=0.001, max_context=1000, avg_latency_ms=900),
            ProviderModelSpec(provider="p2", model="m", capabilities={"chat": 8},
                              cost_per_1k_tokens=0.001, max_context=1000, avg_latency_ms=300),
        ]
        router = CapabilityRouter(specs)
        assert [c.provider for c in router.select_candidates(_request(required={"chat"}))] == ["p2", "p1"]

    def test_tie_break_prefers_observed_latency(self):
        specs = [
            ProviderModelSpec(provider="p1", model="m", capabilities={"chat": 8},
                              cost_per_1k_tokens=0.001, max_context=1000, avg_latency_ms=900),
            ProviderModelSpec(provider="p2", model="m", capabilities={"chat": 8},
                              cost_per_1k_tokens=0.001, max_context=1000, avg_latency_ms=300),
        ]
        observed = {"p1": 100.0}
        router = CapabilityRouter(specs, latency_lookup=observed.get)
        assert [c.provider for c in router.select_candidates(_request(required={"chat"}))] == ["p1", "p2"]

    def test_cost_bonus_uses_reference(self, sample_specs):
        router = CapabilityRouter(
            sample_specs, RoutingSettings(cost_weight=100.0, reference_cost_per_1k=0.01)
        )
        assert router.score(sample_specs[2], _request()) == pytest.approx(0.6)

    def test_explain_lists_every_spec(self, router):
        explanations = router.explain(_request(required={"reasoning"}))

        assert [e.rank for e in explanations] == [1, 2, None]
        assert explanations[2].rejected_reason == "capability:reasoning"
        assert explanations[0].to_dict()["provider"] == "alpha"

    def test_duplicate_specs_rejected(self, sample_specs):
        with pytest.raises(ValueError):
            CapabilityRouter(sample_specs + [sample_specs[0]])

    def test_default_table_routes(self):
        router = CapabilityRouter(DEFAULT_MODEL_SPECS)
        candidates = router.select_candidates(_request(required={"code"}, min_context=500000))
        assert all(c.max_context >= 500000 for c in candidates)
