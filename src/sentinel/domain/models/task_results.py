"""
Model Task Results

Outcome of one inference task, whether produced by the model or by the
deterministic fallback. Both paths return the same shape so downstream
consumers cannot tell them apart; provenance is kept for audit only.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sentinel.domain.enums.clinical_enums import ResultProvenance, TaskType
from sentinel.domain.enums.risk_tier import RiskTier
from sentinel.domain.models.longitudinal_state import utc_now


@dataclass
class RiskTriagePayload:
    """
    Structured risk triage output.

    Attributes:
        tier: Assessed risk tier
        rationale: One or two sentence explanation
        confidence: Parser or rule confidence (0.0-1.0)
        risk_score: Optional 0-10 score (legacy payloads and fallback)
        key_deviations: Biometric sources that contributed
        action: Optional recommended next step
    """

    tier: RiskTier
    rationale: str = ""
    confidence: float = 0.0
    risk_score: Optional[float] = None
    key_deviations: list[str] = field(default_factory=list)
    action: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "tier": self.tier.name,
            "rationale": self.rationale,
            "confidence": round(self.confidence, 3),
            "risk_score": self.risk_score,
            "key_deviations": list(self.key_deviations),
            "action": self.action,
        }


@dataclass
class ModelTaskResult:
    """
    Outcome of one task invocation.

    Exactly one payload field is populated according to the task:
    triage for risk assessment, permutation for reranking and narrative
    for compression, ingestion, explanation and report.

    Attributes:
        task: Task type
        raw_text: Raw model text (empty for pure fallback)
        provenance: Model or fallback
        latency_ms: Wall time spent on the task
        model_attempted: Whether the backend produced any output
        failure_reason: Why the fallback was used, if it was
    """

    task: TaskType
    provenance: ResultProvenance
    raw_text: str = ""
    latency_ms: float = 0.0
    triage: Optional[RiskTriagePayload] = None
    permutation: Optional[list[int]] = None
    narrative: Optional[str] = None
    model_attempted: bool = False
    failure_reason: Optional[str] = None
    result_id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def used_model(self) -> bool:
        """True only when the model output was parsed successfully."""
        return self.provenance == ResultProvenance.MODEL

    def to_audit_log(self) -> dict:
        """Create audit log entry (no clinical free text)."""
        return {
            "result_id": str(self.result_id),
            "task": self.task.value,
            "provenance": self.provenance.value,
            "model_attempted": self.model_attempted,
            "failure_reason": self.failure_reason,
            "latency_ms": round(self.latency_ms, 1),
            "tier": self.triage.tier.name if self.triage else None,
            "permutation": self.permutation,
            "created_at": self.created_at.isoformat(),
        }
