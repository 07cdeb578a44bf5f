"""Domain enumerations."""

from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.enums.clinical_enums import (
    DataSource,
    PatternSeverity,
    PatternType,
    PrimaryDriver,
    RecipientType,
    ResultProvenance,
    RiskSource,
    TaskType,
    Trajectory,
)
from sentinel.domain.enums.safety_plan import SafetyPlanSection

__all__ = [
    "RiskTier",
    "DataSource",
    "PatternSeverity",
    "PatternType",
    "PrimaryDriver",
    "RecipientType",
    "ResultProvenance",
    "RiskSource",
    "TaskType",
    "Trajectory",
    "SafetyPlanSection",
]
