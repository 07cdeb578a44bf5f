"""
Risk Tier Enumeration

Ordered clinical severity classification shared by the questionnaire,
the model parser, the fallback generator and the risk combiner.

SAFETY-CRITICAL: The ordering is fixed and compared numerically.
Never infer ordering from names or colors at runtime.
"""

from enum import IntEnum
from typing import Optional


class RiskTier(IntEnum):
    """
    Ordered risk tier.

    Higher values indicate higher clinical severity. The final tier
    shown to any consumer is max(questionnaire floor, model tier).
    """

    LOW = 0
    """All clear - routine monitoring."""

    MODERATE = 1
    """Elevated - supportive intervention warranted."""

    HIGH_MONITORING = 2
    """High monitoring - close follow-up within 24-48 hours."""

    CRISIS = 3
    """
    Crisis - immediate safety concern.

    SAFETY_NOTE: Entering this tier always starts the crisis lifecycle.
    """

    @property
    def display_name(self) -> str:
        """Clinician-facing label."""
        return _DISPLAY_NAMES[self]

    @property
    def color_word(self) -> str:
        """Single color word the model is asked to emit for this tier."""
        return _COLOR_WORDS[self]

    @classmethod
    def from_string(cls, value: str) -> Optional["RiskTier"]:
        """
        Map a color word or tier name to a tier.

        Accepts green/low, yellow/moderate, orange/high/high_monitoring,
        red/crisis (case-insensitive). Returns None for anything else.
        """
        key = value.strip().lower().replace(" ", "_")
        return _ALIASES.get(key)


_DISPLAY_NAMES: dict[RiskTier, str] = {
    RiskTier.LOW: "ALL CLEAR",
    RiskTier.MODERATE: "ELEVATED",
    RiskTier.HIGH_MONITORING: "HIGH MONITORING",
    RiskTier.CRISIS: "CRISIS",
}

_COLOR_WORDS: dict[RiskTier, str] = {
    RiskTier.LOW: "green",
    RiskTier.MODERATE: "yellow",
    RiskTier.HIGH_MONITORING: "orange",
    RiskTier.CRISIS: "red",
}

_ALIASES: dict[str, RiskTier] = {
    "green": RiskTier.LOW,
    "low": RiskTier.LOW,
    "all_clear": RiskTier.LOW,
    "yellow": RiskTier.MODERATE,
    "moderate": RiskTier.MODERATE,
    "elevated": RiskTier.MODERATE,
    "orange": RiskTier.HIGH_MONITORING,
    "high": RiskTier.HIGH_MONITORING,
    "high_monitoring": RiskTier.HIGH_MONITORING,
    "highmonitoring": RiskTier.HIGH_MONITORING,
    "red": RiskTier.CRISIS,
    "crisis": RiskTier.CRISIS,
}
