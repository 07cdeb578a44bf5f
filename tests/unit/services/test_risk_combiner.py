"""
Unit Tests for Risk Combiner

Exhaustively tests the floor/model combination across all tier pairs.
"""

import itertools

import pytest

from sentinel.domain.enums.clinical_enums import RiskSource
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.services.safety import (
    FLOOR_EXPLANATION,
    GENERIC_MODEL_EXPLANATION,
    RiskCombiner,
)


@pytest.fixture
def combiner():
    return RiskCombiner()


ALL_PAIRS = list(itertools.product(RiskTier, RiskTier))


class TestCombinationGrid:
    """The final tier is always max(floor, model)."""

    @pytest.mark.parametrize("floor,model", ALL_PAIRS)
    def test_final_tier_is_maximum(self, combiner, floor, model):
        """No pair can produce a tier below the floor."""
        result = combiner.combine(floor, model, "Model rationale.")

        assert result.final_tier == max(floor, model)
        assert result.final_tier >= floor

    @pytest.mark.parametrize("floor,model", ALL_PAIRS)
    def test_source_and_explanation(self, combiner, floor, model):
        """Ties go to the questionnaire with its fixed explanation."""
        result = combiner.combine(floor, model, "Model rationale.")

        if floor >= model:
            assert result.source == RiskSource.QUESTIONNAIRE
            assert result.explanation == FLOOR_EXPLANATION
        else:
            assert result.source == RiskSource.MODEL
            assert result.explanation == "Model rationale."


class TestExplanation:
    """Tests for the explanation text."""

    def test_blank_rationale_uses_generic_text(self, combiner):
        """A model win without rationale gets the generic explanation."""
        result = combiner.combine(RiskTier.LOW, RiskTier.HIGH_MONITORING, "   ")

        assert result.explanation == GENERIC_MODEL_EXPLANATION

    def test_model_rationale_ignored_when_floor_wins(self, combiner):
        """The model cannot lower the floor, nor explain it away."""
        result = combiner.combine(RiskTier.CRISIS, RiskTier.LOW, "Everything is fine.")

        assert result.final_tier == RiskTier.CRISIS
        assert result.explanation == FLOOR_EXPLANATION

    def test_audit_log_has_tiers(self, combiner):
        """Audit entries carry both inputs and the outcome."""
        audit = combiner.combine(RiskTier.MODERATE, RiskTier.CRISIS).to_audit_log()

        assert audit == {
            "final_tier": "CRISIS",
            "source": "model",
            "floor_tier": "MODERATE",
            "model_tier": "CRISIS",
        }
