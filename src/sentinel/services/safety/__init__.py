"""Safety-critical services: floor combination and crisis lifecycle."""

from sentinel.services.safety.crisis_state_machine import (
    CrisisStateMachine,
    InvalidCrisisTransition,
)
from sentinel.services.safety.risk_combiner import (
    FLOOR_EXPLANATION,
    GENERIC_MODEL_EXPLANATION,
    CombinedRisk,
    RiskCombiner,
    risk_combiner,
)

__all__ = [
    # Crisis lifecycle
    "CrisisStateMachine",
    "InvalidCrisisTransition",
    # Risk combination
    "FLOOR_EXPLANATION",
    "GENERIC_MODEL_EXPLANATION",
    "CombinedRisk",
    "RiskCombiner",
    "risk_combiner",
]
