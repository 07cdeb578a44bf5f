"""
Unit Tests for In-Process Metrics
"""

from prometheus_client import REGISTRY

from sentinel.domain.enums.clinical_enums import TaskType
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.infrastructure.metrics import render_metrics
from sentinel.services.fallback import fallback_generator
from sentinel.services.safety import risk_combiner


def _sample(name: str, labels: dict) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetrics:
    """Counters move with the pipeline, without any exporter."""

    def test_fallback_counted(self):
        labels = {"task": "rerank_safety_plan", "reason": "timeout"}
        before = _sample("sentinel_fallback_results_total", labels)

        fallback_generator.wrap(TaskType.RERANK_SAFETY_PLAN, failure_reason="timeout", permutation=[1])

        assert _sample("sentinel_fallback_results_total", labels) == before + 1

    def test_final_risk_counted(self):
        labels = {"tier": "CRISIS", "source": "questionnaire"}
        before = _sample("sentinel_final_risk_total", labels)

        risk_combiner.combine(RiskTier.CRISIS, RiskTier.LOW)

        assert _sample("sentinel_final_risk_total", labels) == before + 1

    def test_render(self):
        text = render_metrics().decode()

        assert "sentinel_inference_requests_total" in text
        assert "sentinel_crisis_transitions_total" in text
