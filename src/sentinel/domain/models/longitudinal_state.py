"""
Longitudinal State Model

Compressed cross-session clinical memory (Longitudinal Clinical State
Compression). Created on the first check-in and read-modify-written
every session afterwards.

PRIVACY: clinical_narrative is free text and is never logged.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sentinel.domain.enums.clinical_enums import PrimaryDriver, Trajectory
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.models.patterns import DetectedPattern


def utc_now() -> datetime:
    """Timezone-aware current time used for every persisted timestamp."""
    return datetime.now(timezone.utc)


@dataclass
class LongitudinalState:
    """
    Rolling clinical memory across check-ins.

    INVARIANT: trajectory is derived from consecutive tiers only and is
    never mutated independently.

    Attributes:
        last_updated: When the state was last written (check-in or ingestion)
        last_check_in_at: When a check-in was last folded in; crisis days
            are counted from here
        check_in_count: Number of check-ins folded into this state
        trajectory: Direction of the last tier change
        primary_driver: Source judged most responsible for current risk
        last_risk_tier: Final tier of the most recent check-in
        recent_crisis_count: Crisis-tier check-ins since state creation
        days_since_last_crisis: Whole days since the last crisis check-in
        clinical_narrative: Model-compressed narrative (or ingested history)
        detected_patterns: Latest detected pattern set
    """

    last_updated: datetime = field(default_factory=utc_now)
    last_check_in_at: Optional[datetime] = None
    check_in_count: int = 0
    trajectory: Trajectory = Trajectory.STABLE
    primary_driver: Optional[PrimaryDriver] = None
    last_risk_tier: Optional[RiskTier] = None
    recent_crisis_count: int = 0
    days_since_last_crisis: Optional[int] = None
    clinical_narrative: str = ""
    detected_patterns: list[DetectedPattern] = field(default_factory=list)

    def age_days(self, now: Optional[datetime] = None) -> float:
        """Days elapsed since the last update."""
        now = now or utc_now()
        return (now - self.last_updated).total_seconds() / 86400

    def to_audit_record(self) -> dict:
        """Create audit record (no narrative text)."""
        return {
            "check_in_count": self.check_in_count,
            "trajectory": self.trajectory.value,
            "primary_driver": self.primary_driver.value if self.primary_driver else None,
            "last_risk_tier": self.last_risk_tier.name if self.last_risk_tier is not None else None,
            "recent_crisis_count": self.recent_crisis_count,
            "days_since_last_crisis": self.days_since_last_crisis,
            "has_narrative": bool(self.clinical_narrative),
            "pattern_count": len(self.detected_patterns),
        }
