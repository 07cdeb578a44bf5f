"""Domain models."""

from sentinel.domain.models.signals import (
    HealthDeviations,
    HealthSnapshot,
    QuestionnaireAnswers,
    SessionSignals,
    VoiceFeatures,
)
from sentinel.domain.models.patterns import DetectedPattern
from sentinel.domain.models.longitudinal_state import LongitudinalState, utc_now
from sentinel.domain.models.task_results import ModelTaskResult, RiskTriagePayload
from sentinel.domain.models.crisis_session import (
    CrisisEpisode,
    CrisisSession,
    CrisisStatus,
    RecheckResponse,
)

__all__ = [
    # Signals
    "HealthDeviations",
    "HealthSnapshot",
    "QuestionnaireAnswers",
    "SessionSignals",
    "VoiceFeatures",
    # Patterns
    "DetectedPattern",
    # Longitudinal
    "LongitudinalState",
    "utc_now",
    # Task results
    "ModelTaskResult",
    "RiskTriagePayload",
    # Crisis
    "CrisisEpisode",
    "CrisisSession",
    "CrisisStatus",
    "RecheckResponse",
]
