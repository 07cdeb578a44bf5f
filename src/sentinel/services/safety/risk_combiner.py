"""
Risk Combiner

Merges the deterministic questionnaire floor with the model's
probabilistic tier.

SAFETY-CRITICAL: This is the single chokepoint for the final tier.
The model is structurally unable to lower the floor: the result is
always max(floor, model).

ARCHITECTURE: Pure function of its inputs. It never observes a failure
state; the fallback path always supplies a valid model tier.
"""

from dataclasses import dataclass

from sentinel.config.logging_config import get_logger
from sentinel.domain.enums.clinical_enums import RiskSource
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.infrastructure.metrics import track_final_risk

logger = get_logger(__name__)


FLOOR_EXPLANATION = "This was the minimum risk tier based on the screening questionnaire."
GENERIC_MODEL_EXPLANATION = "Model assessment identified elevated risk factors."


@dataclass(frozen=True)
class CombinedRisk:
    """
    Final risk classification.

    Attributes:
        final_tier: max(floor, model)
        source: Which input determined the final tier
        explanation: Fixed floor text or the model rationale
        floor_tier: Questionnaire floor
        model_tier: Model (or fallback) tier
    """

    final_tier: RiskTier
    source: RiskSource
    explanation: str
    floor_tier: RiskTier
    model_tier: RiskTier

    def to_audit_log(self) -> dict:
        return {
            "final_tier": self.final_tier.name,
            "source": self.source.value,
            "floor_tier": self.floor_tier.name,
            "model_tier": self.model_tier.name,
        }


class RiskCombiner:
    """
    Applies the floor rule.

    If floor >= model the floor wins with a fixed explanation;
    otherwise the model tier wins with its rationale.
    """

    def combine(
        self,
        floor_tier: RiskTier,
        model_tier: RiskTier,
        model_rationale: str = "",
    ) -> CombinedRisk:
        """
        Combine floor and model tiers.

        Args:
            floor_tier: Tier from the questionnaire
            model_tier: Tier from the model or the fallback
            model_rationale: Model explanation for its tier

        Returns:
            CombinedRisk with final tier, source and explanation
        """
        if floor_tier >= model_tier:
            result = CombinedRisk(
                final_tier=floor_tier,
                source=RiskSource.QUESTIONNAIRE,
                explanation=FLOOR_EXPLANATION,
                floor_tier=floor_tier,
                model_tier=model_tier,
            )
        else:
            rationale = model_rationale.strip()
            result = CombinedRisk(
                final_tier=model_tier,
                source=RiskSource.MODEL,
                explanation=rationale or GENERIC_MODEL_EXPLANATION,
                floor_tier=floor_tier,
                model_tier=model_tier,
            )

        track_final_risk(result.final_tier.name, result.source.value)
        logger.info("Risk combined", **result.to_audit_log())
        return result


# Global instance
risk_combiner = RiskCombiner()
