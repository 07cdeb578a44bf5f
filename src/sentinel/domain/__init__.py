"""
Sentinel Domain Layer

Core clinical entities and value objects, independent of inference,
storage and presentation.
"""

from sentinel.domain.enums import RiskTier, PrimaryDriver, TaskType, Trajectory
from sentinel.domain.models import (
    CrisisSession,
    CrisisStatus,
    DetectedPattern,
    LongitudinalState,
    ModelTaskResult,
    QuestionnaireAnswers,
    SessionSignals,
)

__all__ = [
    # Enums
    "RiskTier",
    "PrimaryDriver",
    "TaskType",
    "Trajectory",
    # Models
    "CrisisSession",
    "CrisisStatus",
    "DetectedPattern",
    "LongitudinalState",
    "ModelTaskResult",
    "QuestionnaireAnswers",
    "SessionSignals",
]
