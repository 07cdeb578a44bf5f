"""
Clinical Enumerations

Small closed vocabularies used across the engine: longitudinal trajectory,
primary risk driver, inference task types, report recipients, detected
pattern kinds and result provenance.
"""

from enum import StrEnum


class Trajectory(StrEnum):
    """Direction of risk between two consecutive check-ins."""

    STABLE = "stable"
    IMPROVING = "improving"
    WORSENING = "worsening"


class PrimaryDriver(StrEnum):
    """
    Single data source judged most responsible for the current risk.

    Drives the deterministic safety plan ordering.
    """

    SLEEP = "sleep"
    ACTIVITY = "activity"
    HRV = "hrv"
    MOOD = "mood"
    CSSRS = "cssrs"
    COMBINED = "combined"


class TaskType(StrEnum):
    """The six fixed clinical inference tasks."""

    RISK_ASSESSMENT = "risk_assessment"
    COMPRESSION = "compression"
    REPORT = "report"
    CONTEXT_INGESTION = "context_ingestion"
    EXPLAIN_RISK = "explain_risk"
    RERANK_SAFETY_PLAN = "rerank_safety_plan"


class RecipientType(StrEnum):
    """Audience of an SBAR handoff report."""

    PRIMARY_CARE = "Primary Care Provider"
    MENTAL_HEALTH = "Mental Health Provider"
    EMERGENCY_SERVICES = "Emergency Services"
    CAREGIVER = "Caregiver"


class PatternType(StrEnum):
    """Named cross-modal or biometric anomaly."""

    MASKING = "MASKING"
    """Positive verbal content with flat or low-energy prosody."""

    CONCORDANT_DECOMPENSATION = "CONCORDANT_DECOMPENSATION"
    """Slow speech together with visible behavioral decompensation."""

    AVOIDANCE = "AVOIDANCE"
    """Long pauses together with behavioral avoidance."""

    SLEEP_DISRUPTION = "SLEEP_DISRUPTION"
    ACTIVITY_DECLINE = "ACTIVITY_DECLINE"
    HRV_DROP = "HRV_DROP"


class PatternSeverity(StrEnum):
    """Severity of a detected pattern."""

    MILD = "mild"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class DataSource(StrEnum):
    """Modality that produced a detected pattern."""

    SLEEP = "sleep"
    ACTIVITY = "activity"
    HRV = "hrv"
    MOOD = "mood"
    VOICE = "voice"
    CSSRS = "cssrs"
    COMBINED = "combined"


class ResultProvenance(StrEnum):
    """Which path produced a task result."""

    MODEL = "model"
    FALLBACK = "fallback"


class RiskSource(StrEnum):
    """Which input determined the final tier."""

    QUESTIONNAIRE = "questionnaire"
    MODEL = "model"
